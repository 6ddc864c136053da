"""Synchronous Ollama streaming client.

Thin facade that pairs a RequestsTransport with StreamingSession. Streaming
calls return a session immediately; the HTTP request is sent when the caller
starts iterating.

Key behaviors:
    - ``chat`` / ``generate`` return lazy, cancellable StreamingSession objects
    - ``list_models`` and ``health_check`` are plain request-response calls
    - No automatic retries; capability errors surface as ServerReportedError
      so the caller can decide to retry with different request fields
"""

from __future__ import annotations

import logging
import types
from http import HTTPStatus
from typing import Any, Self

from ollama_stream.client.session import StreamingSession, status_error
from ollama_stream.core.config import ClientConfig, settings
from ollama_stream.domain.entities import ChatRequest, GenerateRequest
from ollama_stream.domain.events import ChatEvent, GenerateEvent
from ollama_stream.domain.exceptions import MalformedFrameError, TransportError
from ollama_stream.domain.json_value import decode_json_value
from ollama_stream.infrastructure.transports import RequestsTransport

logger = logging.getLogger(__name__)

TAGS_ENDPOINT = "/api/tags"


def models_from_body(body: bytes) -> list[dict[str, Any]]:
    """Extract the ``models`` list from a /api/tags response body.

    Raises:
        MalformedFrameError: If the body is not a JSON object with a list of
            model objects under ``models``.
    """
    data = decode_json_value(body)
    match data:
        case {"models": list() as models} if all(isinstance(m, dict) for m in models):
            return models
        case dict() if "models" not in data:
            return []
        case _:
            raise MalformedFrameError("Unexpected /api/tags response shape", frame=body)


class OllamaStreamClient:
    """Synchronous client for Ollama's streaming endpoints.

    Attributes:
        config: Client configuration.
        transport: RequestsTransport carrying every exchange.

    Example:
        >>> with OllamaStreamClient() as client:
        ...     request = ChatRequest(model="llama3.2", messages=[Message.user("Hi")])
        ...     for event in client.chat(request):
        ...         print(event.content, end="", flush=True)
    """

    __slots__ = ("config", "transport")

    def __init__(
        self, config: ClientConfig | None = None, transport: RequestsTransport | None = None
    ) -> None:
        self.config = config or settings.client
        self.transport = transport or RequestsTransport(self.config)

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        """Close the connection pool. Sessions still streaming lose their connection."""
        self.transport.close()

    def chat(self, request: ChatRequest) -> StreamingSession[ChatEvent]:
        """Start a chat stream. Nothing is sent until the session is iterated."""
        return StreamingSession(self.transport, request)

    def generate(self, request: GenerateRequest) -> StreamingSession[GenerateEvent]:
        """Start a generate stream. Nothing is sent until the session is iterated."""
        return StreamingSession(self.transport, request)

    def list_models(self) -> list[dict[str, Any]]:
        """List locally available models.

        Returns:
            Model dictionaries as reported by the server (name, size,
            modified_at, details, ...).

        Raises:
            TransportError: On network failure or an unexpected HTTP status.
            ServerReportedError: If the server answers with an error envelope.
            MalformedFrameError: If the body is not the expected shape.
        """
        status_code, body = self.transport.get(TAGS_ENDPOINT)
        if status_code != HTTPStatus.OK:
            raise status_error(status_code, body, TAGS_ENDPOINT)
        models = models_from_body(body)
        logger.debug("Listed %d models", len(models))
        return models

    def health_check(self) -> bool:
        """Return True if the server answers /api/tags with HTTP 200."""
        try:
            status_code, _ = self.transport.get(
                TAGS_ENDPOINT, timeout=self.config.health_check_timeout
            )
        except TransportError as exc:
            logger.debug("Health check failed: %s", exc)
            return False
        return status_code == HTTPStatus.OK


__all__ = ["OllamaStreamClient", "TAGS_ENDPOINT", "models_from_body"]
