"""Interfaces (Protocols) for the transport collaborator.

A streaming session never talks HTTP itself. It hands a serialized request
body to a transport and gets back the response status plus a byte stream.
Concrete implementations live in ``ollama_stream.infrastructure.transports``;
tests substitute in-memory fakes.

Contract for every implementation:
    - ``open`` raises TransportError when the request cannot be sent or no
      response headers arrive (connection refused, deadline exceeded)
    - Reading the byte stream raises TransportError when the source fails
      mid-body
    - ``close``/``aclose`` is idempotent and may be called from another
      thread (sync) or task (async) while a read is blocked; the blocked
      read then ends or fails promptly
    - Non-success statuses are returned, not raised; the session decides
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterator
from typing import Protocol


class TransportResponse(Protocol):
    """HTTP response whose body is consumed as a stream of byte chunks."""

    @property
    def status_code(self) -> int: ...

    def iter_bytes(self) -> Iterator[bytes]:
        """Yield body chunks as they arrive, in order."""
        ...

    def read(self) -> bytes:
        """Read the whole remaining body (used for non-success statuses)."""
        ...

    def close(self) -> None:
        """Release the connection. Safe to call more than once."""
        ...


class Transport(Protocol):
    """Synchronous transport collaborator."""

    def open(self, path: str, body: bytes) -> TransportResponse:
        """POST ``body`` as JSON to ``path`` and return once headers arrive."""
        ...


class AsyncTransportResponse(Protocol):
    """Async HTTP response whose body is consumed as a stream of byte chunks."""

    @property
    def status_code(self) -> int: ...

    def aiter_bytes(self) -> AsyncIterator[bytes]:
        """Yield body chunks as they arrive, in order."""
        ...

    async def aread(self) -> bytes:
        """Read the whole remaining body (used for non-success statuses)."""
        ...

    async def aclose(self) -> None:
        """Release the connection. Safe to call more than once."""
        ...


class AsyncTransport(Protocol):
    """Asynchronous transport collaborator."""

    async def open(self, path: str, body: bytes) -> AsyncTransportResponse:
        """POST ``body`` as JSON to ``path`` and return once headers arrive."""
        ...


__all__ = ["AsyncTransport", "AsyncTransportResponse", "Transport", "TransportResponse"]
