"""Structured logging for Lexi.

Library modules keep using logging.getLogger(__name__). configure_logging()
installs one root handler whose formatter runs those stdlib records through
the same structlog processors as structlog loggers, so a deployment sees a
single stream: JSON lines in production, colored console output otherwise.

Environment (used when the caller passes nothing):
    LOG_LEVEL     DEBUG | INFO | WARNING | ERROR, default INFO
    LOG_FORMAT    json | console, default json in production
    ENVIRONMENT   production switches the default format to json

Usage:
    >>> from lexi.observability.logging import LogEvents, bind_context, get_logger
    >>> logger = get_logger(__name__)
    >>> bind_context(conversation_id="c-42")
    >>> logger.info(LogEvents.SERVICES_STARTED, providers=["google", "openai"])
"""

import logging
import os
import sys
from typing import Any

import structlog
from structlog.types import Processor

_configured = False


def _shared_processors() -> list[Processor]:
    """Processors applied to both structlog and stdlib records."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def configure_logging(
    level: str | None = None,
    log_format: str | None = None,
    is_production: bool | None = None,
) -> None:
    """Install the root handler and configure structlog.

    Only the first call has an effect.

    Args:
        level: Root log level; LOG_LEVEL when None
        log_format: "json" or "console"; chosen from the environment when None
        is_production: Overrides ENVIRONMENT detection

    Example:
        >>> configure_logging(level="DEBUG", log_format="console")
    """
    global _configured
    if _configured:
        return

    level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    if is_production is None:
        is_production = os.getenv("ENVIRONMENT", "development").lower() == "production"
    log_format = log_format or os.getenv("LOG_FORMAT") or (
        "json" if is_production else "console"
    )

    processors = _shared_processors()
    renderer: Processor
    if log_format == "json":
        processors.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=processors,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(getattr(logging, level, logging.INFO))

    structlog.configure(
        processors=[*processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _configured = True


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger, configuring logging on first use."""
    if not _configured:
        configure_logging()
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Attach key/values to every log line emitted from this task.

    Example:
        >>> bind_context(conversation_id="c-42", user_id="u-7")
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Drop everything bound with bind_context() (call when a turn ends)."""
    structlog.contextvars.clear_contextvars()


class LogEvents:
    """Event names emitted by the service layer."""

    SERVICES_STARTED = "services_started"
    SERVICES_SHUTDOWN = "services_shutdown"
    INDEX_SETUP_FAILED = "index_setup_failed"
