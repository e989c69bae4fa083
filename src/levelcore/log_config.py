"""structlog setup for hosts that let levelcore own logging."""

import logging
import sys

import structlog

from levelcore.config import Settings
from levelcore.exceptions import ConfigurationError

_RENDERERS = {
    "json": structlog.processors.JSONRenderer,
    "console": structlog.dev.ConsoleRenderer,
}

_DRIVER_LOGGERS = ("sqlalchemy.engine", "aiosqlite", "asyncpg")


def setup_logging(settings: Settings) -> None:
    """Render levelcore events as JSON or console lines on stderr at ``settings.log_level``."""
    renderer_cls = _RENDERERS.get(settings.log_format.lower())
    if renderer_cls is None:
        msg = f"Unknown log_format '{settings.log_format}'. Expected one of: {', '.join(_RENDERERS)}"
        raise ConfigurationError(msg)

    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        msg = f"Unknown log_level '{settings.log_level}'"
        raise ConfigurationError(msg)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            renderer_cls(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(sys.stderr),
        cache_logger_on_first_use=True,
    )

    # SQL echo only when explicitly debugging
    for name in _DRIVER_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
