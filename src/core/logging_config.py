"""Structured logging configuration.

This module initializes structlog with a stable structured format.
Callers obtain loggers through get_logger and emit named events.
"""

from __future__ import annotations

import logging
from typing import Any

import structlog

from core.constants import DEFAULT_LOG_LEVEL

_CONFIGURED_LEVEL: str | None = None


def configure_logging(level_name: str = DEFAULT_LOG_LEVEL) -> None:
    """Configure structlog processors and level filtering.

    Reconfiguring with the level already in effect is a no-op.

    Args:
        level_name: Standard logging level name, e.g. INFO or DEBUG.
    """
    global _CONFIGURED_LEVEL
    normalized_level = level_name.upper()
    if _CONFIGURED_LEVEL == normalized_level:
        return
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(normalized_level)
        ),
        cache_logger_on_first_use=False,
    )
    _CONFIGURED_LEVEL = normalized_level


def get_logger(name: str) -> Any:
    """Return a module logger instance.

    Args:
        name: Logger name, usually __name__.

    Returns:
        A structlog logger with structured output.
    """
    if _CONFIGURED_LEVEL is None:
        configure_logging()
    return structlog.get_logger(name)
