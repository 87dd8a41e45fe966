import logging
import sys
from typing import Optional, TextIO
import structlog

VERBOSITY_LEVELS = {0: "warning", 1: "info"}

def level_for_verbosity(verbosity_level: int) -> str:
    # maps a -v count to a level name; anything past -v means debug.
    return VERBOSITY_LEVELS.get(verbosity_level, "debug")

def configure_logging(log_level_str: str = "warning", force_json_logs: bool = False,
                      stream: Optional[TextIO] = None):
    """
    Routes structlog events for the `tplengine` logger through stdlib logging.
    Events go to `stream` (stderr by default) rendered for the console, or as
    one JSON object per line when `force_json_logs` is set.
    """
    log_level = getattr(logging, log_level_str.upper(), logging.WARNING)
    stream = stream or sys.stderr

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    if force_json_logs:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=stream.isatty())

    handler = logging.StreamHandler(stream)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=[structlog.stdlib.add_log_level],
    ))

    package_logger = logging.getLogger("tplengine")
    package_logger.handlers.clear()
    package_logger.addHandler(handler)
    package_logger.setLevel(log_level)
    package_logger.propagate = False

    structlog.get_logger(__name__).info("logging_configured", level=log_level_str, json=force_json_logs)
