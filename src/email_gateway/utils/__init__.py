"""Utility functions for Email Gateway."""

import logging

import structlog

from email_gateway.config import Settings


def configure_logging(settings: Settings) -> None:
    """Configure structlog for the process.

    Events below ``settings.log_level`` are dropped. Production emits one JSON
    object per event; other environments use the console renderer.

    Args:
        settings: Application settings.
    """

    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    renderer = (
        structlog.processors.JSONRenderer()
        if settings.is_production
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=False,
    )
