"""Frame decoding into typed events.

Each frame is decoded on its own; nothing carries over between frames.

Decision order for one frame:
    1. Not valid JSON, or not a JSON object -> MalformedFrameError
    2. Object with a string ``error`` field -> ServerReportedError (message
       verbatim), even if normal response fields are also present
    3. Object that fails the event schema -> MalformedFrameError
    4. Otherwise -> ChatEvent or GenerateEvent, according to the request kind
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from ollama_stream.domain.entities import RequestKind
from ollama_stream.domain.events import ChatEvent, GenerateEvent
from ollama_stream.domain.exceptions import MalformedFrameError, ServerReportedError
from ollama_stream.domain.json_value import decode_json_value

logger = logging.getLogger(__name__)

_EVENT_TYPES: dict[RequestKind, type[ChatEvent] | type[GenerateEvent]] = {
    RequestKind.CHAT: ChatEvent,
    RequestKind.GENERATE: GenerateEvent,
}


def error_message(data: Any) -> str | None:
    """Return the server's error text if ``data`` is an error envelope, else None."""
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, str):
            return error
    return None


def parse_error_body(body: bytes) -> str | None:
    """Extract the error text from a whole response body, if it is an envelope.

    Used for non-success HTTP responses, where the body may be an error
    envelope or anything else (HTML from a proxy, empty, etc.).
    """
    try:
        data = decode_json_value(body.strip())
    except MalformedFrameError:
        return None
    return error_message(data)


def decode_frame(frame: bytes, kind: RequestKind) -> ChatEvent | GenerateEvent:
    """Decode one frame into the event type matching ``kind``.

    Args:
        frame: Raw bytes of one line, without the newline.
        kind: Request kind the stream belongs to.

    Returns:
        ChatEvent for chat streams, GenerateEvent for generate streams.

    Raises:
        ServerReportedError: If the frame is an error envelope.
        MalformedFrameError: If the frame is not JSON or does not match the
            event schema. Carries the raw frame.
    """
    data = decode_json_value(frame)

    if not isinstance(data, dict):
        raise MalformedFrameError(
            f"Expected a JSON object per frame, got {type(data).__name__}", frame=frame
        )

    if (message := error_message(data)) is not None:
        logger.debug("Server reported error in stream: %s", message)
        raise ServerReportedError(message)

    event_type = _EVENT_TYPES[RequestKind(kind)]
    try:
        return event_type.model_validate(data)
    except ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first["loc"]) or "<root>"
        raise MalformedFrameError(
            f"Frame does not match {event_type.__name__} schema at {location}: {first['msg']}",
            frame=frame,
        ) from exc


__all__ = ["decode_frame", "error_message", "parse_error_body"]
