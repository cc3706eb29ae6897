"""Logging utilities for the tool host and the peer bridge."""

from __future__ import annotations

import logging
import sys
from typing import Any, cast

import structlog

DEFAULT_LOG_LEVEL = "INFO"


def setup_logging(level: str = DEFAULT_LOG_LEVEL, *, json_output: bool = True) -> None:
    """Configure structlog with contextvars support.

    Logs go to stderr so a host speaking a protocol over stdout is never
    corrupted by log lines. ``json_output=False`` switches to the console
    renderer for local debugging.
    """
    log_level = _coerce_log_level(level)
    renderer: Any = (
        structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    )

    structlog.reset_defaults()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
    )

    logging.basicConfig(level=log_level, format="%(message)s", stream=sys.stderr)


def _coerce_log_level(level: str) -> int:
    numeric = logging.getLevelName(level.upper())
    if isinstance(numeric, int):
        return numeric
    return logging.INFO


def get_logger(name: str | None = None) -> structlog.types.FilteringBoundLogger:
    return cast(structlog.types.FilteringBoundLogger, structlog.get_logger(name))


def bind_context(**kwargs: Any) -> None:
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context(*keys: str) -> None:
    if keys:
        structlog.contextvars.unbind_contextvars(*keys)
    else:
        structlog.contextvars.clear_contextvars()
