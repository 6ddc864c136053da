"""Structured logging for streaming sessions.

Each finished stream emits one JSON object on the dedicated
``ollama_stream.requests`` logger. When a request log path is configured the
logger writes JSON Lines (one object per line) to that file.

Log File Configuration:
    - Location: ``TELEMETRY_REQUEST_LOG_PATH`` or ``configure_request_log(path)``
    - Format: JSON Lines
    - Encoding: UTF-8
    - Isolation: Non-propagating logger once a file handler is attached

Event Schema:
    - event: "ollama_stream"
    - client_type: "sync" or "async"
    - operation: "chat_stream" or "generate_stream"
    - status: "completed", "failed" or "cancelled"
    - model, request_id, latency_ms, time_to_first_event_ms, events
    - error_type, error_message, http_status (failures only)
    - timestamp: ISO 8601, injected if missing
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter

from ollama_stream.core.config import settings

REQUEST_LOGGER = logging.getLogger("ollama_stream.requests")

_DATETIME_ADAPTER: TypeAdapter[datetime] = TypeAdapter(datetime)


def configure_request_log(path: Path | str) -> logging.Handler:
    """Attach a JSON Lines file handler to the request logger.

    Replaces any file handler attached earlier. Parent directories are
    created if needed.

    Args:
        path: Destination file.

    Returns:
        The attached handler.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    for existing in list(REQUEST_LOGGER.handlers):
        if isinstance(existing, logging.FileHandler):
            REQUEST_LOGGER.removeHandler(existing)
            existing.close()
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(logging.Formatter("%(message)s"))
    REQUEST_LOGGER.addHandler(handler)
    REQUEST_LOGGER.setLevel(logging.INFO)
    REQUEST_LOGGER.propagate = False
    return handler


if settings.telemetry.request_log_path is not None and not REQUEST_LOGGER.handlers:
    configure_request_log(settings.telemetry.request_log_path)


def _json_default(value: Any) -> Any:
    """Fallback serializer for datetime, Path and anything else."""
    match value:
        case datetime():
            return _DATETIME_ADAPTER.dump_python(value, mode="json")
        case Path():
            return str(value)
        case bytes():
            return value.decode("utf-8", errors="replace")
        case _:
            return str(value)


def log_request_event(event: dict[str, Any]) -> None:
    """Emit one structured event.

    Injects ``timestamp`` if absent (mutates ``event``) and writes the event
    as a single JSON line at INFO level.

    Example:
        >>> log_request_event({
        ...     "event": "ollama_stream",
        ...     "operation": "chat_stream",
        ...     "status": "completed",
        ...     "model": "llama3.2",
        ...     "latency_ms": 812.4,
        ... })
    """
    event.setdefault("timestamp", datetime.now(UTC).isoformat())
    REQUEST_LOGGER.info(json.dumps(event, default=_json_default))


__all__ = ["REQUEST_LOGGER", "configure_request_log", "log_request_event"]
