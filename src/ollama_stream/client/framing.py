"""Newline-delimited framing over arbitrary network reads.

The response body arrives as byte chunks whose boundaries have nothing to do
with line boundaries: one read may end in the middle of a JSON string, another
may hold several lines. ``FrameBuffer`` accumulates bytes and hands out one
complete line at a time; ``iter_frames`` and ``aiter_frames`` drive it over a
sync or async chunk source.

Key behaviors:
    - Frames exclude the ``\\n`` delimiter (and a ``\\r`` right before it)
    - Empty and whitespace-only lines are skipped
    - A trailing line without a final newline is flushed once at end of input
    - Output is identical however the input is chunked
    - A failing source surfaces as TransportError, with no further frames
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterable, AsyncIterator, Iterable, Iterator

from ollama_stream.domain.exceptions import TransportError

logger = logging.getLogger(__name__)

_NEWLINE = b"\n"


def _clean(line: bytes) -> bytes | None:
    if line.endswith(b"\r"):
        line = line[:-1]
    return line if line.strip() else None


class FrameBuffer:
    """Byte accumulator that splits a chunked body into lines.

    Not safe for concurrent use; one buffer belongs to one stream.

    Example:
        >>> buffer = FrameBuffer()
        >>> buffer.feed(b'{"a":1}\\n{"b"')
        >>> buffer.next_frame()
        b'{"a":1}'
        >>> buffer.next_frame() is None
        True
    """

    __slots__ = ("_buffer", "_scan_from")

    def __init__(self) -> None:
        self._buffer = bytearray()
        self._scan_from = 0

    def __len__(self) -> int:
        return len(self._buffer)

    def feed(self, chunk: bytes) -> None:
        """Append a chunk of bytes read from the source."""
        self._buffer.extend(chunk)

    def next_frame(self) -> bytes | None:
        """Pop the next complete, non-empty line, or None if none is buffered."""
        while True:
            index = self._buffer.find(_NEWLINE, self._scan_from)
            if index < 0:
                self._scan_from = len(self._buffer)
                return None
            line = bytes(self._buffer[:index])
            del self._buffer[: index + 1]
            self._scan_from = 0
            if (frame := _clean(line)) is not None:
                return frame

    def flush(self) -> bytes | None:
        """Return the unterminated remainder as a final frame and clear the buffer."""
        line = bytes(self._buffer)
        self._buffer.clear()
        self._scan_from = 0
        return _clean(line)


def iter_frames(chunks: Iterable[bytes]) -> Iterator[bytes]:
    """Yield complete frames from a synchronous chunk source, lazily.

    Args:
        chunks: Byte chunks of any size, in arrival order.

    Yields:
        One frame per non-empty line.

    Raises:
        TransportError: If the source raises while being read.
    """
    buffer = FrameBuffer()
    source = iter(chunks)
    while True:
        try:
            chunk = next(source)
        except StopIteration:
            break
        except TransportError:
            raise
        except OSError as exc:
            raise TransportError(f"Byte source failed: {exc}") from exc
        buffer.feed(chunk)
        while (frame := buffer.next_frame()) is not None:
            yield frame
    if (tail := buffer.flush()) is not None:
        logger.debug("Flushing unterminated final frame (%d bytes)", len(tail))
        yield tail


async def aiter_frames(chunks: AsyncIterable[bytes]) -> AsyncIterator[bytes]:
    """Yield complete frames from an asynchronous chunk source, lazily.

    Async counterpart of ``iter_frames`` with the same guarantees.
    """
    buffer = FrameBuffer()
    source = aiter(chunks)
    while True:
        try:
            chunk = await anext(source)
        except StopAsyncIteration:
            break
        except TransportError:
            raise
        except OSError as exc:
            raise TransportError(f"Byte source failed: {exc}") from exc
        buffer.feed(chunk)
        while (frame := buffer.next_frame()) is not None:
            yield frame
    if (tail := buffer.flush()) is not None:
        logger.debug("Flushing unterminated final frame (%d bytes)", len(tail))
        yield tail


__all__ = ["FrameBuffer", "aiter_frames", "iter_frames"]
