"""Structured logging configuration with structlog."""

import logging

import structlog

from academy.config import Settings


def setup_logging(settings: Settings) -> None:
    """Configure structlog for JSON or console output.

    The learner engine logs through the same configuration when it runs
    inside the service process; standalone callers may invoke this directly.
    """
    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer() if settings.log_format == "json" else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
    # httpx logs every request at INFO; engine retries already log their own events
    logging.getLogger("httpx").setLevel(logging.WARNING)
