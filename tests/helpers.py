"""Reusable test utilities for ollama_stream tests.

In-memory transports that satisfy the transport contract and record what the
session did with them: which endpoint was opened, with which body, how many
chunks were read and whether the response was closed.
"""

from __future__ import annotations

import asyncio
import json
import threading
from collections.abc import AsyncIterator, Iterator, Sequence
from typing import Any

from ollama_stream.domain.exceptions import TransportError


def ndjson(*frames: dict[str, Any]) -> bytes:
    """Serialize frames as newline-terminated JSON lines."""
    return b"".join(json.dumps(frame).encode("utf-8") + b"\n" for frame in frames)


def split_every(data: bytes, size: int) -> list[bytes]:
    """Split ``data`` into chunks of ``size`` bytes (last one may be shorter)."""
    return [data[i : i + size] for i in range(0, len(data), size)]


class FakeResponse:
    """Sync response replaying fixed chunks.

    Args:
        chunks: Body chunks yielded in order.
        status_code: HTTP status.
        body: Returned by ``read()`` for non-success statuses.
        error: Raised after all chunks have been yielded, if set.
    """

    def __init__(
        self,
        chunks: Sequence[bytes] = (),
        status_code: int = 200,
        body: bytes = b"",
        error: Exception | None = None,
    ) -> None:
        self.status_code = status_code
        self._chunks = list(chunks)
        self._body = body
        self._error = error
        self.chunks_read = 0
        self.closed = False
        self.close_calls = 0
        self.read_called = False

    def iter_bytes(self) -> Iterator[bytes]:
        for chunk in self._chunks:
            if self.closed:
                return
            self.chunks_read += 1
            yield chunk
        if self._error is not None:
            raise self._error

    def read(self) -> bytes:
        self.read_called = True
        return self._body

    def close(self) -> None:
        self.close_calls += 1
        self.closed = True


class BlockingResponse(FakeResponse):
    """Yields its chunks, then blocks until closed and fails like a dropped socket."""

    def __init__(self, chunks: Sequence[bytes] = ()) -> None:
        super().__init__(chunks)
        self.blocked = threading.Event()
        self._released = threading.Event()

    def iter_bytes(self) -> Iterator[bytes]:
        yield from super().iter_bytes()
        self.blocked.set()
        self._released.wait(timeout=5)
        raise TransportError("Stream read failed: connection closed")

    def close(self) -> None:
        super().close()
        self._released.set()


class FakeTransport:
    """Sync transport returning a prepared response and recording calls."""

    def __init__(self, response: FakeResponse | None = None, error: Exception | None = None) -> None:
        self.response = response or FakeResponse()
        self._error = error
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def open(self, path: str, body: bytes) -> FakeResponse:
        self.calls.append((path, json.loads(body)))
        if self._error is not None:
            raise self._error
        return self.response

    @property
    def opened(self) -> bool:
        return bool(self.calls)


class AsyncFakeResponse:
    """Async counterpart of FakeResponse."""

    def __init__(
        self,
        chunks: Sequence[bytes] = (),
        status_code: int = 200,
        body: bytes = b"",
        error: Exception | None = None,
        block_at_end: bool = False,
    ) -> None:
        self.status_code = status_code
        self._chunks = list(chunks)
        self._body = body
        self._error = error
        self._block_at_end = block_at_end
        self._released = asyncio.Event()
        self.blocked = asyncio.Event()
        self.chunks_read = 0
        self.closed = False

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        for chunk in self._chunks:
            if self.closed:
                return
            self.chunks_read += 1
            yield chunk
        if self._block_at_end:
            self.blocked.set()
            await self._released.wait()
            raise TransportError("Stream read failed: connection closed")
        if self._error is not None:
            raise self._error

    async def aread(self) -> bytes:
        return self._body

    async def aclose(self) -> None:
        self.closed = True
        self._released.set()


class AsyncFakeTransport:
    """Async transport returning a prepared response and recording calls."""

    def __init__(
        self, response: AsyncFakeResponse | None = None, error: Exception | None = None
    ) -> None:
        self.response = response or AsyncFakeResponse()
        self._error = error
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def open(self, path: str, body: bytes) -> AsyncFakeResponse:
        self.calls.append((path, json.loads(body)))
        if self._error is not None:
            raise self._error
        return self.response
