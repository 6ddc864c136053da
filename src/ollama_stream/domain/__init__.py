"""Domain layer for the Ollama streaming client.

This package contains the request entities, decoded event types, JSON value
helpers and error taxonomy. It performs no I/O.
"""

from ollama_stream.domain.entities import (
    ChatRequest,
    CompletionOptions,
    GenerateRequest,
    Message,
    RequestKind,
    Role,
    StreamRequest,
    ToolCall,
    ToolCallFunction,
)
from ollama_stream.domain.events import (
    ChatEvent,
    ChatTranscript,
    EventMessage,
    EventToolCall,
    EventToolCallFunction,
    GenerateEvent,
    GenerateTranscript,
    StreamEvent,
    Usage,
    accumulate_chat,
    accumulate_generate,
)
from ollama_stream.domain.exceptions import (
    MalformedFrameError,
    OllamaStreamError,
    PreconditionViolation,
    ServerReportedError,
    TransportError,
)
from ollama_stream.domain.json_value import (
    JSONValue,
    decode_json_value,
    encode_json_value,
    validate_json_value,
)

__all__ = [
    "ChatEvent",
    "ChatRequest",
    "ChatTranscript",
    "CompletionOptions",
    "EventMessage",
    "EventToolCall",
    "EventToolCallFunction",
    "GenerateEvent",
    "GenerateRequest",
    "GenerateTranscript",
    "JSONValue",
    "MalformedFrameError",
    "Message",
    "OllamaStreamError",
    "PreconditionViolation",
    "RequestKind",
    "Role",
    "ServerReportedError",
    "StreamEvent",
    "StreamRequest",
    "ToolCall",
    "ToolCallFunction",
    "TransportError",
    "Usage",
    "accumulate_chat",
    "accumulate_generate",
    "decode_json_value",
    "encode_json_value",
    "validate_json_value",
]
