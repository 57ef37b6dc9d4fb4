"""
Structured logging configuration using structlog.
Provides JSON logging for production and human-readable logging for development.
"""
import logging
import sys
from typing import Any, Optional

import structlog
from structlog.types import EventDict, Processor

from dbaas_harness.config.settings import Settings, settings as default_settings


def _app_context_processor(app_settings: Settings):
    def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
        """Add application context to log events."""
        event_dict["app"] = app_settings.app_name
        event_dict["version"] = app_settings.app_version
        event_dict["environment"] = app_settings.environment
        return event_dict

    return add_app_context


def configure_logging(app_settings: Optional[Settings] = None) -> None:
    """Configure structured logging for the harness."""
    app_settings = app_settings or default_settings

    # Shared processors for all log records
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        _app_context_processor(app_settings),
    ]

    if app_settings.is_production or app_settings.log_json:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()),
        ]

    structlog.configure(
        processors=processors,  # type: ignore
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Configure standard library logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, app_settings.log_level),
    )

    # Set log levels for third-party libraries
    logging.getLogger("kubernetes_asyncio").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a configured structlog logger.

    Args:
        name: Logger name (typically __name__ of the module)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)
