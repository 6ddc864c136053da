"""Metrics collection for streaming sessions.

This module keeps in-memory metrics about finished streams: how each one
ended, how long it took, how soon the first event arrived and how many events
were delivered.

Key behaviors:
    - In-memory storage with automatic size limiting (default 10,000 records)
    - Time-window filtering for recent metrics analysis
    - Percentile latency via statistics.quantiles
    - Automatic timestamp tracking with UTC timezone

Thread safety:
    Appends are guarded by a lock so sessions running in several threads can
    record concurrently. Aggregation works on a snapshot.
"""

from __future__ import annotations

import logging
import statistics
import threading
import time
from collections import Counter
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, ClassVar, Self

from ollama_stream.core.config import settings

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class StreamMetrics:
    """Metrics for a single finished stream.

    Attributes:
        model: Model name from the request.
        operation: "chat_stream" or "generate_stream".
        outcome: Final session state: "completed", "failed" or "cancelled".
        latency_ms: Time from opening the request to the final state.
        first_event_ms: Time until the first event was delivered. None if
            no event was delivered.
        events: Number of events delivered to the caller.
        error: Error type name if the stream failed.
        timestamp: When the record was taken (UTC).
    """

    model: str
    operation: str
    outcome: str
    latency_ms: float
    first_event_ms: float | None = None
    events: int = 0
    error: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(slots=True)
class ServiceMetrics:
    """Aggregated stream metrics.

    Attributes:
        total_streams: Number of streams in the aggregation window.
        completed_streams: Streams that reached their terminal event or a
            clean end of body.
        failed_streams: Streams that ended with an error.
        cancelled_streams: Streams cancelled by the caller.
        streams_by_model: Stream count per model.
        streams_by_operation: Stream count per operation.
        errors_by_type: Failure count per error type.
        total_events: Events delivered across all streams.
        average_latency_ms: Mean stream latency.
        p50_latency_ms / p95_latency_ms / p99_latency_ms: Latency percentiles.
        average_first_event_ms: Mean time to first event, over streams that
            delivered one.
        last_stream_time / first_stream_time: Window bounds. None if empty.
    """

    total_streams: int = 0
    completed_streams: int = 0
    failed_streams: int = 0
    cancelled_streams: int = 0
    streams_by_model: dict[str, int] = field(default_factory=dict)
    streams_by_operation: dict[str, int] = field(default_factory=dict)
    errors_by_type: dict[str, int] = field(default_factory=dict)
    total_events: int = 0
    average_latency_ms: float = 0.0
    p50_latency_ms: float = 0.0
    p95_latency_ms: float = 0.0
    p99_latency_ms: float = 0.0
    average_first_event_ms: float | None = None
    last_stream_time: datetime | None = None
    first_stream_time: datetime | None = None


class MetricsCollector:
    """Collects and aggregates stream metrics.

    Class-level storage, shared by every session in the process.

    Attributes:
        _metrics: Recorded StreamMetrics, oldest first.
        _max_metrics: Retention limit; oldest records are dropped beyond it.
    """

    _metrics: ClassVar[list[StreamMetrics]] = []
    _max_metrics: ClassVar[int] = settings.telemetry.max_metrics
    _lock: ClassVar[threading.Lock] = threading.Lock()

    @classmethod
    def record_stream(
        cls,
        model: str,
        operation: str,
        outcome: str,
        latency_ms: float,
        first_event_ms: float | None = None,
        events: int = 0,
        error: str | None = None,
    ) -> None:
        """Record one finished stream.

        Side effects:
            - Appends to _metrics, trimming the oldest records past the limit
            - Logs a debug message
        """
        metric = StreamMetrics(
            model=model,
            operation=operation,
            outcome=outcome,
            latency_ms=latency_ms,
            first_event_ms=first_event_ms,
            events=events,
            error=error,
        )
        with cls._lock:
            cls._metrics.append(metric)
            if len(cls._metrics) > cls._max_metrics:
                cls._metrics = cls._metrics[-cls._max_metrics :]

        logger.debug(
            "Recorded stream metric: %s on %s %s after %.2fms (%d events)",
            operation,
            model,
            outcome,
            latency_ms,
            events,
        )

    @classmethod
    def get_metrics(cls, window_minutes: int | None = None) -> ServiceMetrics:
        """Aggregate recorded metrics, optionally over the last ``window_minutes``.

        Returns:
            ServiceMetrics; empty if nothing falls in the window.
        """
        with cls._lock:
            snapshot = list(cls._metrics)

        match window_minutes:
            case None:
                metrics = snapshot
            case minutes if minutes > 0:
                cutoff = datetime.now(UTC) - timedelta(minutes=minutes)
                metrics = [m for m in snapshot if m.timestamp >= cutoff]
            case _:
                metrics = []

        if not metrics:
            return ServiceMetrics()

        latencies = sorted(m.latency_ms for m in metrics)
        outcomes = Counter(m.outcome for m in metrics)
        first_events = [m.first_event_ms for m in metrics if m.first_event_ms is not None]

        match len(latencies):
            case n if n >= 2:
                quantiles = statistics.quantiles(latencies, n=100)
                p50, p95, p99 = quantiles[49], quantiles[94], quantiles[98]
            case _:
                p50 = p95 = p99 = latencies[0]

        return ServiceMetrics(
            total_streams=len(metrics),
            completed_streams=outcomes.get("completed", 0),
            failed_streams=outcomes.get("failed", 0),
            cancelled_streams=outcomes.get("cancelled", 0),
            streams_by_model=dict(Counter(m.model for m in metrics)),
            streams_by_operation=dict(Counter(m.operation for m in metrics)),
            errors_by_type=dict(Counter(m.error for m in metrics if m.error)),
            total_events=sum(m.events for m in metrics),
            average_latency_ms=statistics.fmean(latencies),
            p50_latency_ms=p50,
            p95_latency_ms=p95,
            p99_latency_ms=p99,
            average_first_event_ms=statistics.fmean(first_events) if first_events else None,
            last_stream_time=max(m.timestamp for m in metrics),
            first_stream_time=min(m.timestamp for m in metrics),
        )

    @classmethod
    def get_metrics_json(cls, window_minutes: int | None = None) -> dict[str, Any]:
        """Metrics as a JSON-serializable dict (numbers rounded to 2 places)."""
        metrics = cls.get_metrics(window_minutes)
        return {
            "total_streams": metrics.total_streams,
            "completed_streams": metrics.completed_streams,
            "failed_streams": metrics.failed_streams,
            "cancelled_streams": metrics.cancelled_streams,
            "streams_by_model": metrics.streams_by_model,
            "streams_by_operation": metrics.streams_by_operation,
            "errors_by_type": metrics.errors_by_type,
            "total_events": metrics.total_events,
            "average_latency_ms": round(metrics.average_latency_ms, 2),
            "p50_latency_ms": round(metrics.p50_latency_ms, 2),
            "p95_latency_ms": round(metrics.p95_latency_ms, 2),
            "p99_latency_ms": round(metrics.p99_latency_ms, 2),
            "average_first_event_ms": round(metrics.average_first_event_ms, 2)
            if metrics.average_first_event_ms is not None
            else None,
            "last_stream_time": metrics.last_stream_time.isoformat()
            if metrics.last_stream_time
            else None,
            "first_stream_time": metrics.first_stream_time.isoformat()
            if metrics.first_stream_time
            else None,
        }

    @classmethod
    def reset(cls) -> Self:
        """Clear all recorded metrics. Returns the class for chaining."""
        with cls._lock:
            cls._metrics = []
        return cls


@contextmanager
def track_stream(model: str, operation: str) -> Generator[None, None, None]:
    """Record the block's duration as one stream metric.

    Exceptions mark the record as failed and are re-raised.

    Example:
        >>> with track_stream("llama3.2", "chat_stream"):
        ...     transcript = accumulate_chat(client.chat(request))
    """
    start = time.perf_counter()
    error: str | None = None
    try:
        yield
    except Exception as exc:
        error = exc.__class__.__name__
        raise
    finally:
        MetricsCollector.record_stream(
            model=model,
            operation=operation,
            outcome="failed" if error else "completed",
            latency_ms=(time.perf_counter() - start) * 1000,
            error=error,
        )


__all__ = ["MetricsCollector", "ServiceMetrics", "StreamMetrics", "track_stream"]
