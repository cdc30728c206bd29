"""Structured logging configuration with structlog.

Call configure_logging() once at startup; every module then does

    logger = get_logger(__name__)
    logger.info("Decision signed", decision_id=str(decision_id))

Draft content, key material and real-id/pseudonym pairs must never be passed
as log fields.
"""

import logging

import structlog
from structlog._config import BoundLoggerLazyProxy
from structlog.typing import Processor


def configure_logging(environment: str = "production", log_level: str = "INFO") -> None:
    """Configure structlog processors for the given environment.

    Args:
        environment: 'production' for JSON output, anything else for console output.
        log_level: Minimum level name (DEBUG, INFO, WARNING, ...).
    """
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if environment == "production":
        final_processor: Processor = structlog.processors.JSONRenderer()
    else:
        final_processor = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=shared_processors + [final_processor],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger whose events carry the module name under "logger"."""
    # "logger" collides with wrap_logger's first parameter, so pass it via initial_values.
    return BoundLoggerLazyProxy(None, initial_values={"logger": name}, logger_factory_args=())
