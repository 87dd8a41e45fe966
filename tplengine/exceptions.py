from typing import Optional


class EngineError(Exception):
    # base exception for all application-specific errors.
    pass

class ConfigurationError(EngineError):
    # invalid helper/import names, delimiter patterns or config file data.
    pass

class CompileError(EngineError):
    # generated template source failed to compile.
    def __init__(self, message: str, source: str = "", source_url: Optional[str] = None):
        super().__init__(message)
        self.source = source
        self.source_url = source_url

class RenderError(EngineError):
    # a compiled template raised while rendering a context.
    def __init__(self, message: str, source: str = "", source_url: Optional[str] = None,
                 original_exception: Optional[BaseException] = None):
        super().__init__(message)
        self.source = source
        self.source_url = source_url
        self.original_exception = original_exception

class OutputError(EngineError):
    # errors during output operations.
    pass
