"""
Structured logging for MatchGuard (structlog).

Every line carries an ISO-8601 UTC timestamp, the level, the event name as
event_type, and the emitting module as logger. Events are snake_case
identifiers with keyword context:

    logger = get_logger(__name__)
    logger.info("commitment_submitted", match_id="m-1", tx_hash="0x...")

LOG_LEVEL picks the threshold (default INFO). LOG_FORMAT=json (default)
renders one JSON object per line on stdout; any other value uses the
console renderer.

Imports nothing from backend_matchguard so every module can use it.
"""

from __future__ import annotations

import logging
import os
import sys
from enum import Enum
from typing import Any

import structlog

DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_FORMAT = "json"

_configured = False


def _event_type(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Rename structlog's 'event' key to event_type."""
    if "event" in event_dict and "event_type" not in event_dict:
        event_dict["event_type"] = event_dict.pop("event")
    return event_dict


def _plain_enums(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Log enum members (TxStatus, IssueSeverity, ...) by value."""
    for key, value in event_dict.items():
        if isinstance(value, Enum):
            event_dict[key] = value.value
    return event_dict


def configure_logging(level: str | None = None, fmt: str | None = None) -> None:
    """
    Configure structlog for the process.

    level and fmt default to LOG_LEVEL / LOG_FORMAT. Calling again replaces
    the configuration (loggers created earlier keep their old pipeline).
    """
    global _configured
    level_name = (level or os.getenv("LOG_LEVEL") or DEFAULT_LOG_LEVEL).strip().upper()
    level_value = getattr(logging, level_name, logging.INFO)
    fmt = (fmt or os.getenv("LOG_FORMAT") or DEFAULT_LOG_FORMAT).strip().lower()

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
        _event_type,
        _plain_enums,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if fmt == "json":
        processors.append(structlog.processors.JSONRenderer(default=str))
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty(), event_key="event_type"))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level_value),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )
    _configured = True


if not _configured and not structlog.is_configured():
    configure_logging()


def get_logger(name: str) -> structlog.BoundLogger:
    """Structured logger for a module; name is bound as logger."""
    return structlog.get_logger(name).bind(logger=name)


def bind_match(match_id: str) -> structlog.BoundLogger:
    """Logger with match_id bound to every subsequent call."""
    return get_logger("backend_matchguard.match").bind(match_id=match_id)
