# tplengine/__init__.py
"""
tplengine: compile delimited template text into reusable rendering functions.
"""
__version__ = "0.1.0"

from tplengine.core.engine import Engine
from tplengine.core.compiler import CompiledTemplate
from tplengine.exceptions import EngineError, ConfigurationError, CompileError, RenderError
from tplengine.util import escape, unescape

__all__ = [
    "Engine",
    "CompiledTemplate",
    "EngineError",
    "ConfigurationError",
    "CompileError",
    "RenderError",
    "escape",
    "unescape",
    "__version__",
]
