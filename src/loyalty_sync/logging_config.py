"""Structured logging configuration using structlog."""

import logging
import sys

import structlog
from structlog.types import Processor

from loyalty_sync.config import settings


def configure_logging(
    log_level: str | None = None,
    format_as_json: bool | None = None,
) -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level, defaults to settings.log_level
        format_as_json: Render JSON lines; defaults to True in production
    """
    level = logging.getLevelName((log_level or settings.log_level).upper())
    if format_as_json is None:
        format_as_json = settings.environment == "production"

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if format_as_json:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Service context on every line
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        service=settings.service_name,
        environment=settings.environment,
    )
