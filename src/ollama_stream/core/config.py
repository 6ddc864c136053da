"""Centralized configuration for the Ollama streaming client.

Settings are loaded with pydantic-settings from environment variables, an
optional ``.env`` file, and defaults, in that order of precedence.

Configuration Sections:
    - ClientConfig: Server location, timeouts and connection pool (OLLAMA_*)
    - TelemetryConfig: Structured request log and metrics retention (TELEMETRY_*)

Usage:
    from ollama_stream.core.config import settings

    base_url = settings.client.base_url
    read_timeout = settings.client.read_timeout
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ClientConfig(BaseSettings):
    """HTTP client configuration.

    Attributes:
        base_url: Server base URL. Must start with http:// or https://;
            a trailing slash is stripped. Default: "http://localhost:11434".
        connect_timeout: Seconds to wait for a connection. Default: 5.
        read_timeout: Seconds to wait between body chunks. None disables the
            deadline; streams of slow models can idle for a long time.
            Default: 300.
        health_check_timeout: Timeout for reachability checks. Default: 5.
        max_connections: Connection pool size. Default: 50.
        max_keepalive_connections: Keep-alive pool size. Default: 20.
        chunk_size: Read size for the response body. None delivers bytes as
            they arrive. Default: None.

    Note:
        Deadlines belong to the transport. When one fires it surfaces as a
        TransportError at the end of the event sequence.
    """

    model_config = SettingsConfigDict(
        env_prefix="OLLAMA_",
        case_sensitive=False,
        extra="ignore",
    )

    base_url: str = Field(default="http://localhost:11434", description="Server base URL")
    connect_timeout: float = Field(default=5.0, gt=0, le=300, description="Connect timeout (seconds)")
    read_timeout: float | None = Field(default=300.0, gt=0, description="Read timeout (seconds)")
    health_check_timeout: float = Field(
        default=5.0, gt=0, le=60, description="Health check timeout (seconds)"
    )
    max_connections: int = Field(default=50, ge=1, le=1000, description="Max HTTP connections")
    max_keepalive_connections: int = Field(
        default=20, ge=1, le=500, description="Max keep-alive connections"
    )
    chunk_size: int | None = Field(default=None, ge=1, description="Body read size (bytes)")

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Require an http(s) URL and strip trailing slashes.

        Raises:
            ValueError: If the URL does not start with http:// or https://.
        """
        if not v.startswith(("http://", "https://")):
            msg = "base_url must start with http:// or https://"
            raise ValueError(msg)
        return v.rstrip("/")


class TelemetryConfig(BaseSettings):
    """Telemetry configuration.

    Attributes:
        request_log_path: JSON Lines file receiving one structured event per
            finished stream. None keeps events on the ``ollama_stream.requests``
            logger without a file handler. Default: None.
        max_metrics: In-memory stream metrics retained. Default: 10,000.
    """

    model_config = SettingsConfigDict(
        env_prefix="TELEMETRY_",
        case_sensitive=False,
        extra="ignore",
    )

    request_log_path: Path | None = Field(default=None, description="Request log file (JSONL)")
    max_metrics: int = Field(default=10_000, ge=1, le=1_000_000, description="Metrics retained")


class Settings(BaseSettings):
    """Root settings containing every configuration section.

    Note:
        Settings are loaded once and cached. Environment changes after the
        first load need ``Settings.get_settings.cache_clear()`` or a restart.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    client: ClientConfig = Field(default_factory=ClientConfig)
    telemetry: TelemetryConfig = Field(default_factory=TelemetryConfig)

    @classmethod
    @lru_cache(maxsize=1)
    def get_settings(cls) -> Settings:
        """Get the cached settings instance."""
        return cls()


# Global settings instance
settings = Settings.get_settings()

__all__ = ["ClientConfig", "Settings", "TelemetryConfig", "settings"]
