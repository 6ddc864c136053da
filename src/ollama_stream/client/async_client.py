"""Asynchronous Ollama streaming client.

Counterpart of ``OllamaStreamClient`` for asyncio applications, built on
httpx.AsyncClient through HttpxTransport. Streaming calls return an
AsyncStreamingSession that sends its request on the first ``async for``
pull.
"""

from __future__ import annotations

import logging
import types
from http import HTTPStatus
from typing import Any, Self

from ollama_stream.client.session import AsyncStreamingSession, status_error
from ollama_stream.client.sync import TAGS_ENDPOINT, models_from_body
from ollama_stream.core.config import ClientConfig, settings
from ollama_stream.domain.entities import ChatRequest, GenerateRequest
from ollama_stream.domain.events import ChatEvent, GenerateEvent
from ollama_stream.domain.exceptions import TransportError
from ollama_stream.infrastructure.transports import HttpxTransport

logger = logging.getLogger(__name__)


class AsyncOllamaStreamClient:
    """Async client for Ollama's streaming endpoints.

    Attributes:
        config: Client configuration.
        transport: HttpxTransport carrying every exchange.

    Concurrency:
        Many sessions may stream concurrently from one client; they share
        the httpx connection pool and nothing else.

    Example:
        >>> async with AsyncOllamaStreamClient() as client:
        ...     request = GenerateRequest(model="llama3.2", prompt="Why is the sky blue?")
        ...     async for event in client.generate(request):
        ...         print(event.response, end="", flush=True)
    """

    __slots__ = ("config", "transport")

    def __init__(
        self, config: ClientConfig | None = None, transport: HttpxTransport | None = None
    ) -> None:
        self.config = config or settings.client
        self.transport = transport or HttpxTransport(self.config)

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the httpx connection pool."""
        await self.transport.aclose()

    def chat(self, request: ChatRequest) -> AsyncStreamingSession[ChatEvent]:
        return AsyncStreamingSession(self.transport, request)

    def generate(self, request: GenerateRequest) -> AsyncStreamingSession[GenerateEvent]:
        return AsyncStreamingSession(self.transport, request)

    async def list_models(self) -> list[dict[str, Any]]:
        """List locally available models.

        Raises:
            TransportError: On network failure or an unexpected HTTP status.
            ServerReportedError: If the server answers with an error envelope.
            MalformedFrameError: If the body is not the expected shape.
        """
        status_code, body = await self.transport.get(TAGS_ENDPOINT)
        if status_code != HTTPStatus.OK:
            raise status_error(status_code, body, TAGS_ENDPOINT)
        return models_from_body(body)

    async def health_check(self) -> bool:
        """Return True if the server answers /api/tags with HTTP 200."""
        try:
            status_code, _ = await self.transport.get(
                TAGS_ENDPOINT, timeout=self.config.health_check_timeout
            )
        except TransportError as exc:
            logger.debug("Health check failed: %s", exc)
            return False
        return status_code == HTTPStatus.OK


__all__ = ["AsyncOllamaStreamClient"]
