"""Structured logging setup.

JSON lines in production, console rendering elsewhere. Events below
``Settings.LOG_LEVEL`` are dropped by the bound logger before any processor
runs.
"""

from __future__ import annotations

import logging

import structlog

from src.salesdesk.config import Environment, Settings, get_settings


def _level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def configure_structlog(settings: Settings | None = None) -> None:
    """Configure structlog for the current environment and log level."""
    if settings is None:
        settings = get_settings()

    level = _level(settings.LOG_LEVEL)
    logging.basicConfig(format="%(message)s", level=level)

    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    if settings.ENVIRONMENT == Environment.production:
        processors += [
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
