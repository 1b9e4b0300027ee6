"""
Structured JSON logging: timestamp, level, event_type, slot / signature context.

structlog with ISO timestamps and consistent keys for aggregation: event_type
and message carry the event name, and provider API keys embedded in RPC URLs
are masked in every field. All modules use get_logger() and log a snake_case
event type plus keyword context, e.g.
logger.warning("block_unavailable", slot=123, reason="missing").

Uses only Python stdlib logging and structlog; no backend_blockscan imports to avoid circular imports.
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

import structlog

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_LEVEL_VALUE = getattr(logging, LOG_LEVEL, logging.INFO)

# JSON output for production (LOG_FORMAT=json); human-readable for local
LOG_FORMAT = os.getenv("LOG_FORMAT", "json").strip().lower()


def _add_timestamp(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Ensure timestamp is always present (ISO 8601)."""
    if "timestamp" not in event_dict:
        event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def _normalize_event(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Rename structlog 'event' to event_type; mirror it into message for aggregators that key on it."""
    if "event" in event_dict and "event_type" not in event_dict:
        event_dict["event_type"] = event_dict.pop("event")
    if "message" not in event_dict and "event_type" in event_dict:
        event_dict["message"] = str(event_dict["event_type"])
    return event_dict


def _mask_api_keys(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """RPC URLs may embed provider keys (?api-key=...); never emit them."""
    for key, value in event_dict.items():
        if isinstance(value, str) and "api-key=" in value:
            event_dict[key] = value.split("api-key=")[0] + "api-key=***"
    return event_dict


def configure_structlog() -> None:
    """Configure structlog once at import: JSON or console renderer, level filter."""
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        _add_timestamp,
        _normalize_event,
        _mask_api_keys,
    ]
    if LOG_FORMAT == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(LOG_LEVEL_VALUE),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


if not structlog.is_configured():
    configure_structlog()


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Return a structured logger for the given module name.

        logger = get_logger(__name__)
        logger.info("block_processed", slot=slot, records=12)
    """
    return structlog.get_logger(name).bind(logger=name)


def bind_run(run_id: str) -> structlog.BoundLogger:
    """Return a logger with run_id bound to all subsequent log calls."""
    return get_logger("backend_blockscan").bind(run_id=run_id)
