"""Streaming sessions: one HTTP exchange turned into a lazy sequence of events.

A session owns exactly one request. Nothing happens on the network until the
caller pulls the first event; from then on every pull reads just enough bytes
to complete the next frame, decodes it and hands the event over before
reading any further.

State machine:
    idle -> requesting -> streaming -> completed | failed | cancelled

    - requesting: the serialized request is handed to the transport
    - streaming: frames are read, decoded and delivered in arrival order
    - completed: a terminal (``done``) event was delivered, or the body ended
      cleanly. Nothing is read after a terminal event, even if the server
      sent more bytes
    - failed: transport, server or framing error (or any unexpected error
      while encoding or reading). The error is raised to the caller as the
      end of the sequence; events already delivered stay valid
    - cancelled: ``cancel()`` was called. Not an error; the sequence just ends

Every session records one metric and one structured log event when it
reaches a final state.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
import types
import uuid
from collections.abc import AsyncGenerator, Generator
from enum import StrEnum
from typing import Any, Generic, Self, TypeVar

from ollama_stream.client.decoding import decode_frame, parse_error_body
from ollama_stream.client.framing import aiter_frames, iter_frames
from ollama_stream.client.interfaces import (
    AsyncTransport,
    AsyncTransportResponse,
    Transport,
    TransportResponse,
)
from ollama_stream.client.payloads import encode_request
from ollama_stream.domain.entities import RequestKind, StreamRequest
from ollama_stream.domain.events import ChatEvent, GenerateEvent
from ollama_stream.domain.exceptions import (
    OllamaStreamError,
    ServerReportedError,
    TransportError,
)
from ollama_stream.telemetry.metrics import MetricsCollector
from ollama_stream.telemetry.structured_logging import log_request_event

logger = logging.getLogger(__name__)

EventT = TypeVar("EventT", ChatEvent, GenerateEvent)

_OPERATIONS: dict[RequestKind, str] = {
    RequestKind.CHAT: "chat_stream",
    RequestKind.GENERATE: "generate_stream",
}

_BODY_PREVIEW = 200


class SessionState(StrEnum):
    """Lifecycle state of a streaming session."""

    IDLE = "idle"
    REQUESTING = "requesting"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_final(self) -> bool:
        return self in _FINAL_STATES


_FINAL_STATES = frozenset({SessionState.COMPLETED, SessionState.FAILED, SessionState.CANCELLED})


def status_error(status_code: int, body: bytes, path: str) -> OllamaStreamError:
    """Map a non-success response to the error the caller should see.

    An error envelope in the body becomes ServerReportedError with the
    server's message verbatim; anything else becomes TransportError.
    """
    message = parse_error_body(body)
    if message is not None:
        return ServerReportedError(message, status_code=status_code)
    preview = body[:_BODY_PREVIEW].decode("utf-8", errors="replace").strip()
    detail = f": {preview}" if preview else ""
    return TransportError(f"HTTP {status_code} from {path}{detail}", status_code=status_code)


def _is_success(status_code: int) -> bool:
    return 200 <= status_code < 300


class _SessionBase(Generic[EventT]):
    """Bookkeeping shared by the sync and async sessions."""

    _client_type = "sync"

    def __init__(self, request: StreamRequest) -> None:
        self._request = request
        self.request_id = str(uuid.uuid4())
        self._state = SessionState.IDLE
        self._state_lock = threading.Lock()
        self._cancel_requested = False
        self._events = 0
        self._started: float | None = None
        self._first_event_ms: float | None = None

    @property
    def request(self) -> StreamRequest:
        return self._request

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def events_delivered(self) -> int:
        """Number of events handed to the caller so far."""
        return self._events

    @property
    def cancelled(self) -> bool:
        return self._state is SessionState.CANCELLED

    @property
    def operation(self) -> str:
        return _OPERATIONS[self._request.kind]

    def _elapsed_ms(self) -> float:
        if self._started is None:
            return 0.0
        return (time.perf_counter() - self._started) * 1000

    def _begin(self) -> bytes:
        self._started = time.perf_counter()
        self._state = SessionState.REQUESTING
        logger.debug(
            "Opening %s for %s (request_id=%s)",
            self._request.endpoint,
            self._request.model,
            self.request_id,
        )
        return encode_request(self._request)

    def _deliver(self, event: EventT) -> None:
        self._events += 1
        if self._first_event_ms is None:
            self._first_event_ms = self._elapsed_ms()
        if event.done:
            self._finish(SessionState.COMPLETED)

    def _finish(self, state: SessionState, error: BaseException | None = None) -> None:
        """Enter a final state and record it. Later calls are ignored."""
        # cancel() may race the consumer thread here; only one of them records.
        with self._state_lock:
            if self._state.is_final:
                return
            self._state = state
        latency_ms = self._elapsed_ms()
        error_type = error.__class__.__name__ if error is not None else None

        MetricsCollector.record_stream(
            model=self._request.model,
            operation=self.operation,
            outcome=state.value,
            latency_ms=latency_ms,
            first_event_ms=self._first_event_ms,
            events=self._events,
            error=error_type,
        )

        log_data: dict[str, Any] = {
            "event": "ollama_stream",
            "client_type": self._client_type,
            "operation": self.operation,
            "status": state.value,
            "model": self._request.model,
            "request_id": self.request_id,
            "latency_ms": round(latency_ms, 3),
            "time_to_first_event_ms": round(self._first_event_ms, 3)
            if self._first_event_ms is not None
            else None,
            "events": self._events,
        }
        if error is not None:
            log_data["error_type"] = error_type
            log_data["error_message"] = str(error)
            log_data["http_status"] = getattr(error, "status_code", None)
        log_request_event(log_data)

    def _fail(self, exc: Exception) -> None:
        self._finish(SessionState.FAILED, exc)
        logger.exception(
            "%s with %s failed after %d events (request_id=%s)",
            self.operation,
            self._request.model,
            self._events,
            self.request_id,
        )

    def _end_after_cancel(self, exc: Exception) -> None:
        logger.warning(
            "Read ended by cancellation of %s (request_id=%s): %s",
            self.operation,
            self.request_id,
            exc,
        )

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(model={self._request.model!r}, "
            f"state={self._state.value!r}, events={self._events})"
        )


class StreamingSession(_SessionBase[EventT]):
    """Synchronous streaming session.

    Iterate it to receive events; iteration raises TransportError,
    ServerReportedError or MalformedFrameError if the stream fails.

    Example:
        >>> with client.chat(request) as session:
        ...     for event in session:
        ...         print(event.content, end="")

    Thread safety:
        One consumer only. ``cancel()`` may be called from another thread
        while the consumer is blocked reading; the blocked pull then ends
        without an error.
    """

    def __init__(self, transport: Transport, request: StreamRequest) -> None:
        super().__init__(request)
        self._transport = transport
        self._response: TransportResponse | None = None
        self._iterator: Generator[EventT, None, None] | None = None

    def __iter__(self) -> Self:
        return self

    def __next__(self) -> EventT:
        if self._iterator is None:
            if self._state is not SessionState.IDLE:
                raise StopIteration
            self._iterator = self._run()
        if self._cancel_requested:
            self._iterator.close()
            raise StopIteration
        event = next(self._iterator)
        if event.done:
            # Terminal event delivered: release the body without reading on.
            self._iterator.close()
        return event

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        self.close()

    def cancel(self) -> None:
        """Stop the stream and release the connection. Idempotent.

        Safe to call from another thread. Has no effect once the session has
        reached a final state.
        """
        if self._state.is_final:
            return
        self._cancel_requested = True
        self._finish(SessionState.CANCELLED)
        logger.debug("Cancelled %s (request_id=%s)", self.operation, self.request_id)
        response = self._response
        if response is not None:
            response.close()

    def close(self) -> None:
        """Cancel if still running and drop the internal generator.

        Call from the consuming thread; use ``cancel()`` from other threads.
        """
        self.cancel()
        if self._iterator is not None:
            self._iterator.close()

    def _run(self) -> Generator[EventT, None, None]:
        try:
            body = self._begin()
            response = self._transport.open(self._request.endpoint, body)
        except Exception as exc:
            if self._cancel_requested:
                self._end_after_cancel(exc)
                return
            self._fail(exc)
            raise
        self._response = response
        try:
            if self._cancel_requested:
                return
            if not _is_success(response.status_code):
                raise status_error(response.status_code, response.read(), self._request.endpoint)
            self._state = SessionState.STREAMING
            for frame in iter_frames(response.iter_bytes()):
                if self._cancel_requested:
                    return
                event = decode_frame(frame, self._request.kind)
                self._deliver(event)
                yield event
            if not self._cancel_requested:
                logger.debug("Body ended without a terminal event (request_id=%s)", self.request_id)
                self._finish(SessionState.COMPLETED)
        except Exception as exc:
            if self._cancel_requested:
                self._end_after_cancel(exc)
                return
            self._fail(exc)
            raise
        finally:
            response.close()


class AsyncStreamingSession(_SessionBase[EventT]):
    """Asynchronous streaming session.

    Example:
        >>> async with client.chat(request) as session:
        ...     async for event in session:
        ...         print(event.content, end="")

    Concurrency:
        One consuming task. ``await cancel()`` may be called from another
        task while the consumer awaits the next chunk; that pull then ends
        without an error. Cancelling the consuming task itself also moves the
        session to cancelled before the CancelledError propagates.
    """

    _client_type = "async"

    def __init__(self, transport: AsyncTransport, request: StreamRequest) -> None:
        super().__init__(request)
        self._transport = transport
        self._response: AsyncTransportResponse | None = None
        self._iterator: AsyncGenerator[EventT, None] | None = None

    def __aiter__(self) -> Self:
        return self

    async def __anext__(self) -> EventT:
        if self._iterator is None:
            if self._state is not SessionState.IDLE:
                raise StopAsyncIteration
            self._iterator = self._run()
        if self._cancel_requested:
            await self._iterator.aclose()
            raise StopAsyncIteration
        event = await anext(self._iterator)
        if event.done:
            await self._iterator.aclose()
        return event

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        await self.aclose()

    async def cancel(self) -> None:
        """Stop the stream and release the connection. Idempotent."""
        if self._state.is_final:
            return
        self._cancel_requested = True
        self._finish(SessionState.CANCELLED)
        logger.debug("Cancelled %s (request_id=%s)", self.operation, self.request_id)
        response = self._response
        if response is not None:
            await response.aclose()

    async def aclose(self) -> None:
        """Cancel if still running and drop the internal generator."""
        await self.cancel()
        if self._iterator is not None:
            await self._iterator.aclose()

    def _cancelled_by_task(self) -> None:
        self._cancel_requested = True
        self._finish(SessionState.CANCELLED)

    async def _run(self) -> AsyncGenerator[EventT, None]:
        try:
            body = self._begin()
            response = await self._transport.open(self._request.endpoint, body)
        except Exception as exc:
            if self._cancel_requested:
                self._end_after_cancel(exc)
                return
            self._fail(exc)
            raise
        except asyncio.CancelledError:
            self._cancelled_by_task()
            raise
        self._response = response
        try:
            if self._cancel_requested:
                return
            if not _is_success(response.status_code):
                raise status_error(
                    response.status_code, await response.aread(), self._request.endpoint
                )
            self._state = SessionState.STREAMING
            async for frame in aiter_frames(response.aiter_bytes()):
                if self._cancel_requested:
                    return
                event = decode_frame(frame, self._request.kind)
                self._deliver(event)
                yield event
            if not self._cancel_requested:
                logger.debug("Body ended without a terminal event (request_id=%s)", self.request_id)
                self._finish(SessionState.COMPLETED)
        except Exception as exc:
            if self._cancel_requested:
                self._end_after_cancel(exc)
                return
            self._fail(exc)
            raise
        except asyncio.CancelledError:
            self._cancelled_by_task()
            raise
        finally:
            await response.aclose()


__all__ = ["AsyncStreamingSession", "SessionState", "StreamingSession", "status_error"]
