"""Infrastructure layer: HTTP transports."""

from ollama_stream.infrastructure.transports import (
    HttpxResponse,
    HttpxTransport,
    RequestsResponse,
    RequestsTransport,
)

__all__ = ["HttpxResponse", "HttpxTransport", "RequestsResponse", "RequestsTransport"]
