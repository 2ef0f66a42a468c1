import logging
import sys
from typing import Optional, Union

import structlog

FALLBACK_HANDLER = "mrpool_fallback_handler"


def configure_logging(
    handler: Optional[logging.Handler] = None, level: Union[None, int, str] = None
) -> None:
    """
    Renders mrpool's events as JSON lines through the standard library.

    A named `handler` is installed on the root logger in place of the
    fallback stderr handler and of any earlier handler with the same name,
    so calling this again (as the CLI does on every invocation) never stacks
    handlers. `level` sets the root logger's level.
    """
    root_logger = logging.getLogger()
    if handler is not None:
        replaced = {FALLBACK_HANDLER, handler.get_name()} - {None}
        for h in list(root_logger.handlers):
            if h.get_name() in replaced:
                root_logger.removeHandler(h)
        root_logger.addHandler(handler)
    if level is not None:
        root_logger.setLevel(level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            # Keys and values are user data and need not be JSON types
            structlog.processors.JSONRenderer(default=str),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def _install_fallback():
    # Warnings and errors go to stderr until the application configures logging
    root_logger = logging.getLogger()
    if FALLBACK_HANDLER in [h.get_name() for h in root_logger.handlers]:
        configure_logging()
        return
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(message)s"))
    handler.set_name(FALLBACK_HANDLER)
    configure_logging(handler, logging.WARNING if root_logger.level == logging.NOTSET else None)


class StructlogLogger:
    """Named structlog logger with keyword event data."""
    def __init__(self, name: str, logger=None):
        self.name = name
        self._logger = logger if logger is not None else structlog.get_logger(name)

    def info(self, event: str, **data):
        self._logger.info(event, **data)

    def warning(self, event: str, **data):
        self._logger.warning(event, **data)

    def error(self, event: str, **data):
        self._logger.error(event, **data)

    def debug(self, event: str, **data):
        self._logger.debug(event, **data)

    def bind(self, **new_values) -> "StructlogLogger":
        return StructlogLogger(self.name, self._logger.bind(**new_values))


def get_logger(name: str) -> StructlogLogger:
    """
    Returns the logger for `name`.

    If nothing has configured structlog yet, a fallback stderr handler is
    installed first.
    """
    if not structlog.is_configured():
        _install_fallback()
    return StructlogLogger(name)
