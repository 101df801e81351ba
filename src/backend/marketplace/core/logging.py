"""
Structured logging configuration using structlog.

JSON lines in production so lifecycle events (RFQ sent, quote accepted,
expiry sweeps) can be aggregated; colored console output in development.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import Processor

from marketplace.core.config import get_settings

# Third-party loggers that are too chatty at INFO
_NOISY_LOGGERS = ("httpx", "httpcore", "asyncio", "sqlalchemy.engine", "aiosqlite")


def setup_logging() -> None:
    """
    Configure structured logging for the application.

    Safe to call more than once; the last call wins.
    """
    settings = get_settings()
    level = getattr(logging, settings.log_level)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    if settings.log_format == "json":
        processors: list[Processor] = [
            *shared_processors,
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None, **initial_context: Any) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (typically __name__ of the calling module)
        **initial_context: Initial context values to bind to the logger

    Returns:
        BoundLogger: Configured structured logger

    Example:
        >>> logger = get_logger(__name__, rfq_id="3f0c...")
        >>> logger.info("RFQ sent", invited=3)
    """
    logger = structlog.get_logger(name)
    if initial_context:
        logger = logger.bind(**initial_context)
    return logger


class LoggerMixin:
    """
    Mixin class that provides a logger property to any class.

    Example:
        >>> class RfqService(LoggerMixin):
        ...     async def send_rfq(self, rfq_id):
        ...         self.logger.info("RFQ sent", rfq_id=str(rfq_id))
    """

    @property
    def logger(self) -> structlog.stdlib.BoundLogger:
        """Get logger bound with class name."""
        return get_logger(self.__class__.__name__)
