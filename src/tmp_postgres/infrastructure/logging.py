"""structlog setup for tmp_postgres.

Server output is logged at DEBUG, one event per line, so the default INFO
level shows only lifecycle events (factory built, instance ready, stopped).
"""

from __future__ import annotations

import logging
import sys

import structlog


def setup_logging(level: str = "INFO", log_format: str = "console") -> None:
    """Configure structlog to write to stderr.

    Args:
        level: Minimum level name, e.g. "DEBUG" to include server output.
        log_format: "json" for one object per line, "console" otherwise.
    """
    numeric_level = getattr(logging, level.upper())
    renderer = (
        structlog.processors.JSONRenderer()
        if log_format == "json"
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Lazy module logger; it picks up setup_logging() even when called first."""
    return structlog.get_logger(name)
