"""Error taxonomy for the Ollama streaming client.

Every failure the streaming pipeline can surface is one of four kinds. None of
them is retried or recovered internally; each terminates the current event
sequence and is handed to the caller as-is.

Exception Hierarchy:
    - OllamaStreamError: Base exception for all client errors
    - TransportError: Network/HTTP-layer failure
    - ServerReportedError: The server answered with an error envelope
    - MalformedFrameError: A frame could not be decoded into the expected shape
    - PreconditionViolation: A request was built with an inconsistent shape
"""

from __future__ import annotations

import re

_UNSUPPORTED_PATTERN = re.compile(r"does not support (\w+)")


class OllamaStreamError(Exception):
    """Base exception for all streaming client errors.

    Catching OllamaStreamError catches every error the package raises on its
    own behalf.
    """


class TransportError(OllamaStreamError):
    """Raised when the HTTP exchange itself fails.

    Common causes:
        - Connection refused or reset
        - Non-success HTTP status whose body is not an error envelope
        - Byte source closed abnormally mid-stream
        - Deadline configured on the transport fired

    Attributes:
        status_code: HTTP status when the failure was a non-success response,
            None for network-level failures.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ServerReportedError(OllamaStreamError):
    """Raised when the server sends ``{"error": "..."}`` instead of a payload.

    The server's message is kept verbatim: ``str(exc) == exc.message``.
    Callers match on it to detect capability errors such as
    ``does not support thinking`` and decide themselves whether to retry with
    adjusted request fields.

    Attributes:
        message: Error text exactly as the server sent it.
        status_code: HTTP status if the envelope arrived as the body of a
            non-success response, None if it arrived as a stream frame.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def does_not_support(self, capability: str) -> bool:
        """Return True if the server said the model does not support ``capability``.

        Example:
            >>> ServerReportedError('model "x" does not support tools').does_not_support("tools")
            True
        """
        return f"does not support {capability}" in self.message

    @property
    def unsupported_capability(self) -> str | None:
        """Capability named in a ``does not support <capability>`` message, if any."""
        match = _UNSUPPORTED_PATTERN.search(self.message)
        return match.group(1) if match else None


class MalformedFrameError(OllamaStreamError):
    """Raised when a frame is not valid JSON or does not match the event schema.

    Fatal to the stream: a framing desync is not skipped.

    Attributes:
        frame: Offending raw frame bytes, for diagnostics.
    """

    def __init__(self, message: str, frame: bytes = b"") -> None:
        super().__init__(message)
        self.frame = frame

    def __str__(self) -> str:
        base = super().__str__()
        if not self.frame:
            return base
        preview = self.frame[:200].decode("utf-8", errors="replace")
        return f"{base} (frame: {preview!r})"


class PreconditionViolation(OllamaStreamError, ValueError):
    """Raised when a request is constructed with an internally inconsistent shape.

    Raised at construction time, before any network activity. Examples:
        - a ``tool`` message without a tool-call identifier
        - a non-tool message carrying a tool-call identifier
        - a completion option that collides with a request field
    """


__all__ = [
    "MalformedFrameError",
    "OllamaStreamError",
    "PreconditionViolation",
    "ServerReportedError",
    "TransportError",
]
