"""Telemetry utilities (metrics, structured logging)."""

from ollama_stream.telemetry.metrics import (
    MetricsCollector,
    ServiceMetrics,
    StreamMetrics,
    track_stream,
)
from ollama_stream.telemetry.structured_logging import configure_request_log, log_request_event

__all__ = [
    "MetricsCollector",
    "ServiceMetrics",
    "StreamMetrics",
    "configure_request_log",
    "log_request_event",
    "track_stream",
]
