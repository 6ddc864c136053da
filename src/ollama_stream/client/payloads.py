"""Wire payload construction for streaming requests.

Turns a ChatRequest or GenerateRequest into the flat JSON object the server
expects. Completion options are merged in as top-level siblings of ``model``
and ``stream`` rather than nested under an ``options`` key; the server reads
per-request controls and generation hyperparameters from the same object
level. This merge happens only here, at serialization time.

Field order on the wire:
    - chat: stream, model, messages, tools, format, think, keep_alive, <options>
    - generate: stream, model, prompt, suffix, images, format, think, system,
      context, keep_alive, <options>
"""

from __future__ import annotations

from typing import Any

from ollama_stream.domain.entities import (
    ChatRequest,
    CompletionOptions,
    GenerateRequest,
    Message,
    Role,
    StreamRequest,
    ToolCall,
)
from ollama_stream.domain.json_value import JSONValue, encode_json_value


def _put(payload: dict[str, Any], key: str, value: Any) -> None:
    if value is not None:
        payload[key] = value


def merge_options(payload: dict[str, Any], options: CompletionOptions | None) -> dict[str, Any]:
    """Flatten present completion options into ``payload`` at the top level.

    Args:
        payload: Request object built so far. Mutated in place.
        options: Options to merge. None leaves the payload untouched.

    Returns:
        The same payload dict, for chaining.
    """
    if options is not None:
        payload.update(options.to_dict())
    return payload


def serialize_tool_call(tool_call: ToolCall) -> dict[str, JSONValue]:
    data: dict[str, JSONValue] = {}
    if tool_call.function is not None:
        function: dict[str, JSONValue] = {}
        _put(function, "name", tool_call.function.name)
        _put(function, "arguments", tool_call.function.arguments)
        data["function"] = function
    _put(data, "id", tool_call.id)
    return data


def serialize_message(message: Message) -> dict[str, JSONValue]:
    """Serialize one chat message; ``tool_call_id`` is only written for tool messages."""
    data: dict[str, JSONValue] = {"role": str(message.role), "content": message.content}
    if message.images is not None:
        data["images"] = list(message.images)
    _put(data, "thinking", message.thinking)
    if message.tool_calls is not None:
        data["tool_calls"] = [serialize_tool_call(call) for call in message.tool_calls]
    if message.role is Role.TOOL:
        data["tool_call_id"] = message.tool_call_id
    return data


def build_chat_payload(request: ChatRequest) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "stream": request.stream,
        "model": request.model,
        "messages": [serialize_message(message) for message in request.messages],
    }
    if request.tools is not None:
        payload["tools"] = list(request.tools)
    _put(payload, "format", request.format)
    _put(payload, "think", request.think)
    _put(payload, "keep_alive", request.keep_alive)
    return merge_options(payload, request.options)


def build_generate_payload(request: GenerateRequest) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "stream": request.stream,
        "model": request.model,
        "prompt": request.prompt,
    }
    _put(payload, "suffix", request.suffix)
    if request.images is not None:
        payload["images"] = list(request.images)
    _put(payload, "format", request.format)
    _put(payload, "think", request.think)
    _put(payload, "system", request.system)
    if request.context is not None:
        payload["context"] = list(request.context)
    _put(payload, "keep_alive", request.keep_alive)
    return merge_options(payload, request.options)


def build_payload(request: StreamRequest) -> dict[str, Any]:
    """Build the wire object for either request shape.

    Raises:
        TypeError: If ``request`` is neither a ChatRequest nor a GenerateRequest.
    """
    match request:
        case ChatRequest():
            return build_chat_payload(request)
        case GenerateRequest():
            return build_generate_payload(request)
        case _:
            msg = f"Expected ChatRequest or GenerateRequest, got {type(request).__name__}"
            raise TypeError(msg)


def encode_request(request: StreamRequest) -> bytes:
    """Serialize a request to the UTF-8 JSON body sent to the server."""
    return encode_json_value(build_payload(request))


__all__ = [
    "build_chat_payload",
    "build_generate_payload",
    "build_payload",
    "encode_request",
    "merge_options",
    "serialize_message",
    "serialize_tool_call",
]
