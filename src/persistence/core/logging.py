"""Structured logging configuration using structlog."""
import logging
import os
import sys

import structlog
from structlog.types import EventDict, Processor

from persistence.core.config import settings


def add_app_context(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Add application context to log entries."""
    event_dict["service"] = settings.otel_service_name
    event_dict["environment"] = settings.environment
    return event_dict


def _is_testing() -> bool:
    return bool(
        "pytest" in os.environ.get("_", "")
        or os.environ.get("PYTEST_CURRENT_TEST")
        or "pytest" in sys.modules
    )


def configure_logging() -> None:
    """Configure structlog for structured JSON logging."""
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        add_app_context,
        structlog.processors.StackInfoRenderer(),
    ]

    # JSONRenderer handles exception formatting on its own, so format_exc_info
    # is only added for the console renderer
    if settings.log_format == "json" or settings.is_production or _is_testing():
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a configured logger instance."""
    logger: structlog.BoundLogger = structlog.get_logger(name)
    return logger
