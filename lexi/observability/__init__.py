"""Observability: structured logging."""

from lexi.observability.logging import (
    LogEvents,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
)

__all__ = [
    "LogEvents",
    "bind_context",
    "clear_context",
    "configure_logging",
    "get_logger",
]
