"""Ollama streaming client: typed, cancellable NDJSON streams for chat and generate."""

from ollama_stream.client import (
    AsyncOllamaStreamClient,
    AsyncStreamingSession,
    OllamaStreamClient,
    SessionState,
    StreamingSession,
)
from ollama_stream.domain import (
    ChatEvent,
    ChatRequest,
    ChatTranscript,
    CompletionOptions,
    GenerateEvent,
    GenerateRequest,
    GenerateTranscript,
    MalformedFrameError,
    Message,
    OllamaStreamError,
    PreconditionViolation,
    Role,
    ServerReportedError,
    ToolCall,
    ToolCallFunction,
    TransportError,
    Usage,
    accumulate_chat,
    accumulate_generate,
)

__version__ = "0.1.0"

__all__ = [
    "AsyncOllamaStreamClient",
    "AsyncStreamingSession",
    "ChatEvent",
    "ChatRequest",
    "ChatTranscript",
    "CompletionOptions",
    "GenerateEvent",
    "GenerateRequest",
    "GenerateTranscript",
    "MalformedFrameError",
    "Message",
    "OllamaStreamError",
    "PreconditionViolation",
    "Role",
    "ServerReportedError",
    "SessionState",
    "StreamingSession",
    "ToolCall",
    "ToolCallFunction",
    "TransportError",
    "Usage",
    "accumulate_chat",
    "accumulate_generate",
]
