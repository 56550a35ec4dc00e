"""
Structured logging setup.
"""
import logging
import sys

import structlog

from ledgervote.core.config import settings


def configure_logging(log_level: str = None, log_format: str = None) -> structlog.BoundLogger:
    """Configure structlog and the stdlib root handler.

    ``log_format`` of ``json`` renders one JSON object per line, anything
    else uses the console renderer.
    """
    level = (log_level or settings.LOG_LEVEL).upper()
    fmt = (log_format or settings.LOG_FORMAT).lower()

    logging.basicConfig(
        level=level,
        stream=sys.stderr,
        format="%(message)s",
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if fmt == "json"
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level)
        ),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    return structlog.get_logger()


def bind_identity(logger: structlog.BoundLogger, identity: str = None) -> structlog.BoundLogger:
    """Attach the acting identity to a logger when known."""
    if identity:
        return logger.bind(identity=identity)
    return logger
