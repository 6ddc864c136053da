"""Core helpers for the Ollama streaming client."""

from ollama_stream.core.config import ClientConfig, Settings, TelemetryConfig, settings

__all__ = ["ClientConfig", "Settings", "TelemetryConfig", "settings"]
