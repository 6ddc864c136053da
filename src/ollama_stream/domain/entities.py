"""Request entities for the Ollama streaming client.

This module defines the immutable value types a caller builds before opening a
stream: chat messages (with tool calls and thinking text), completion options,
and the two request shapes, chat and generate.

Design Principles:
    - Immutability: All entities are frozen dataclasses (slots=True)
    - Validation: Construction rules enforced in __post_init__ methods
    - No I/O: Entities never touch the network; serialization lives in
      ``ollama_stream.client.payloads``

Key Entities:
    - Role: Message sender enumeration
    - ToolCall/ToolCallFunction: Tool invocations echoed back to the model
    - Message: One role-tagged chat message
    - CompletionOptions: Generation hyperparameters (flattened on the wire)
    - ChatRequest/GenerateRequest: The two streaming request shapes
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, fields
from enum import StrEnum
from typing import Any, ClassVar

from ollama_stream.domain.exceptions import PreconditionViolation
from ollama_stream.domain.json_value import JSONValue, validate_json_value


class Role(StrEnum):
    """Sender of a chat message."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class RequestKind(StrEnum):
    """Which endpoint a request targets and which event shape it streams back."""

    CHAT = "chat"
    GENERATE = "generate"


CHAT_ENDPOINT = "/api/chat"
GENERATE_ENDPOINT = "/api/generate"

_INTEGER_OPTIONS = frozenset({"mirostat", "num_ctx", "repeat_last_n", "seed", "num_predict", "top_k"})


def _as_tuple(value: Sequence[Any] | None, name: str) -> tuple[Any, ...] | None:
    if value is None:
        return None
    if isinstance(value, str | bytes):
        raise PreconditionViolation(f"{name} must be a sequence, not {type(value).__name__}")
    return tuple(value)


def _check_images(images: tuple[Any, ...] | None) -> None:
    if images is None:
        return
    for image in images:
        if not isinstance(image, str):
            raise PreconditionViolation("images must be base64-encoded strings")


# ============================================================================
# Tool Calls
# ============================================================================


@dataclass(slots=True, frozen=True)
class ToolCallFunction:
    """Function part of a tool call.

    Both fields are optional: some backends stream partially populated tool
    calls and those are passed through untouched.

    Attributes:
        name: Name of the function the model asked to call.
        arguments: Arguments as a JSON tree (usually an object).
    """

    name: str | None = None
    arguments: JSONValue | None = None

    def __post_init__(self) -> None:
        if self.name is not None and not isinstance(self.name, str):
            raise PreconditionViolation("Tool call function name must be a string")
        if self.arguments is not None:
            object.__setattr__(self, "arguments", validate_json_value(self.arguments))


@dataclass(slots=True, frozen=True)
class ToolCall:
    """A tool invocation made by the assistant, echoed back in a later request.

    Attributes:
        function: Function name and arguments. Optional.
        id: Identifier of this call. A ``tool`` message answering it carries
            the same value as its ``tool_call_id``.
    """

    function: ToolCallFunction | None = None
    id: str | None = None

    def __post_init__(self) -> None:
        if self.function is not None and not isinstance(self.function, ToolCallFunction):
            raise PreconditionViolation("ToolCall.function must be a ToolCallFunction")
        if self.id is not None and not isinstance(self.id, str):
            raise PreconditionViolation("ToolCall.id must be a string")


# ============================================================================
# Messages
# ============================================================================


@dataclass(slots=True, frozen=True)
class Message:
    """A chat message sent to the model.

    Message Roles:
        - "system": Instructions, typically first
        - "user": Human input; may carry images
        - "assistant": Earlier model output; may carry tool_calls and thinking
        - "tool": Result of a tool call; requires tool_call_id

    Attributes:
        role: Sender role. Plain strings are coerced to Role.
        content: Text content. May be empty (e.g. assistant tool-call turns).
        images: Base64-encoded image attachments.
        tool_call_id: Identifier of the tool call this message answers.
            Present iff role is "tool".
        tool_calls: Tool calls made by the assistant. Assistant role only.
        thinking: Reasoning text produced by a thinking model.

    Raises:
        PreconditionViolation: If the role is unknown, a tool message lacks
            tool_call_id, a non-tool message carries one, or a non-assistant
            message carries tool_calls.
    """

    role: Role
    content: str
    images: tuple[str, ...] | None = None
    tool_call_id: str | None = None
    tool_calls: tuple[ToolCall, ...] | None = None
    thinking: str | None = None

    def __post_init__(self) -> None:
        try:
            role = Role(self.role)
        except ValueError as exc:
            raise PreconditionViolation(
                f"Invalid role '{self.role}'. Must be 'system', 'user', 'assistant', or 'tool'"
            ) from exc
        object.__setattr__(self, "role", role)

        if not isinstance(self.content, str):
            raise PreconditionViolation("Message content must be a string")

        if role is Role.TOOL and self.tool_call_id is None:
            raise PreconditionViolation("Tool messages must have tool_call_id")
        if role is not Role.TOOL and self.tool_call_id is not None:
            raise PreconditionViolation(f"tool_call_id is only allowed on tool messages, not '{role}'")
        if self.tool_call_id is not None and not isinstance(self.tool_call_id, str):
            raise PreconditionViolation("tool_call_id must be a string")
        if self.thinking is not None and not isinstance(self.thinking, str):
            raise PreconditionViolation("thinking must be a string")

        images = _as_tuple(self.images, "images")
        _check_images(images)
        object.__setattr__(self, "images", images)

        tool_calls = _as_tuple(self.tool_calls, "tool_calls")
        if tool_calls is not None and role is not Role.ASSISTANT:
            raise PreconditionViolation("tool_calls are only allowed on assistant messages")
        if tool_calls is not None and not all(isinstance(call, ToolCall) for call in tool_calls):
            raise PreconditionViolation("tool_calls must contain ToolCall instances")
        object.__setattr__(self, "tool_calls", tool_calls)

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(Role.SYSTEM, content)

    @classmethod
    def user(cls, content: str, images: Sequence[str] | None = None) -> Message:
        return cls(Role.USER, content, images=images)

    @classmethod
    def assistant(
        cls,
        content: str,
        tool_calls: Sequence[ToolCall] | None = None,
        thinking: str | None = None,
    ) -> Message:
        return cls(Role.ASSISTANT, content, tool_calls=tool_calls, thinking=thinking)

    @classmethod
    def tool(cls, content: str, tool_call_id: str) -> Message:
        return cls(Role.TOOL, content, tool_call_id=tool_call_id)


# ============================================================================
# Completion Options
# ============================================================================


@dataclass(slots=True, frozen=True)
class CompletionOptions:
    """Generation hyperparameters for a request.

    Every field is optional. Absent fields are left out of the wire payload
    entirely rather than sent as null, so the model's own defaults apply.
    On the wire these fields sit next to ``model`` and ``stream`` at the top
    level of the request object, not under an ``options`` key.

    Attributes:
        mirostat: Mirostat sampling mode (0 = off, 1 = Mirostat, 2 = Mirostat 2.0).
        mirostat_eta: Mirostat learning rate.
        mirostat_tau: Mirostat target entropy.
        num_ctx: Context window size in tokens.
        repeat_last_n: How far back to look when penalizing repetition.
        repeat_penalty: Penalty multiplier for repeated tokens.
        temperature: Sampling temperature.
        seed: Random seed for reproducible output.
        stop: Stop sequences.
        tfs_z: Tail free sampling parameter.
        num_predict: Maximum number of tokens to generate.
        top_k: Top-k sampling parameter.
        top_p: Nucleus sampling parameter.
        min_p: Minimum probability relative to the most likely token.
        extra: Additional hyperparameters not named above, emitted after
            the named ones in insertion order.
    """

    mirostat: int | None = None
    mirostat_eta: float | None = None
    mirostat_tau: float | None = None
    num_ctx: int | None = None
    repeat_last_n: int | None = None
    repeat_penalty: float | None = None
    temperature: float | None = None
    seed: int | None = None
    stop: tuple[str, ...] | None = None
    tfs_z: float | None = None
    num_predict: int | None = None
    top_k: int | None = None
    top_p: float | None = None
    min_p: float | None = None
    extra: Mapping[str, JSONValue] = field(default_factory=dict)

    def __post_init__(self) -> None:
        stop = _as_tuple(self.stop, "stop")
        if stop is not None and not all(isinstance(sequence, str) for sequence in stop):
            raise PreconditionViolation("stop must be a sequence of strings")
        object.__setattr__(self, "stop", stop)

        for f in fields(self):
            if f.name in ("stop", "extra"):
                continue
            value = getattr(self, f.name)
            if value is None:
                continue
            integer = f.name in _INTEGER_OPTIONS
            allowed = int if integer else int | float
            if isinstance(value, bool) or not isinstance(value, allowed):
                kind = "an integer" if integer else "a number"
                raise PreconditionViolation(f"{f.name} must be {kind}, got {value!r}")
            if isinstance(value, float) and not math.isfinite(value):
                raise PreconditionViolation(f"{f.name} must be finite, got {value!r}")

        extra = validate_json_value(dict(self.extra))
        if not isinstance(extra, dict):
            raise PreconditionViolation("extra must be a mapping")
        named = {f.name for f in fields(self)} - {"extra"}
        if clash := named.intersection(extra):
            raise PreconditionViolation(f"Use the named field instead of extra for: {', '.join(sorted(clash))}")
        object.__setattr__(self, "extra", extra)

    def to_dict(self) -> dict[str, JSONValue]:
        """Return only the present options, keyed by their wire names."""
        result: dict[str, JSONValue] = {}
        for f in fields(self):
            if f.name == "extra":
                continue
            value = getattr(self, f.name)
            if value is None:
                continue
            result[f.name] = list(value) if isinstance(value, tuple) else value
        result.update(self.extra)
        return result

    def wire_keys(self) -> set[str]:
        return set(self.to_dict())


# ============================================================================
# Requests
# ============================================================================


def _check_option_collisions(
    options: CompletionOptions | None, reserved: frozenset[str]
) -> None:
    if options is None:
        return
    if clash := options.wire_keys() & reserved:
        raise PreconditionViolation(
            f"Completion options collide with request fields: {', '.join(sorted(clash))}"
        )


@dataclass(slots=True, frozen=True)
class ChatRequest:
    """A multi-turn chat request, streamed by default.

    Attributes:
        model: Model identifier. Not validated here; the server rejects
            unknown models.
        messages: Conversation history in order.
        tools: Tool definitions the model may call, as JSON trees.
        format: Output format: the string "json" or a JSON schema tree.
        think: Ask a thinking model to emit its reasoning separately.
        options: Generation hyperparameters.
        stream: Whether the server should stream. True by default.
        keep_alive: How long the server keeps the model loaded afterwards
            (e.g. "5m" or seconds). Forwarded verbatim.

    Raises:
        PreconditionViolation: If a tool definition or format is not a JSON
            tree, or an option key collides with a request field.
    """

    WIRE_FIELDS: ClassVar[frozenset[str]] = frozenset(
        {"stream", "model", "messages", "tools", "format", "think", "keep_alive", "options"}
    )

    model: str
    messages: tuple[Message, ...]
    tools: tuple[JSONValue, ...] | None = None
    format: JSONValue | None = None
    think: bool | None = None
    options: CompletionOptions | None = None
    stream: bool = True
    keep_alive: str | int | float | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "messages", _as_tuple(self.messages, "messages"))
        for message in self.messages:
            if not isinstance(message, Message):
                raise PreconditionViolation("messages must contain Message instances")
        tools = _as_tuple(self.tools, "tools")
        if tools is not None:
            tools = tuple(validate_json_value(tool) for tool in tools)
        object.__setattr__(self, "tools", tools)
        if self.format is not None:
            object.__setattr__(self, "format", validate_json_value(self.format))
        _check_option_collisions(self.options, self.WIRE_FIELDS)

    @property
    def kind(self) -> RequestKind:
        return RequestKind.CHAT

    @property
    def endpoint(self) -> str:
        return CHAT_ENDPOINT


@dataclass(slots=True, frozen=True)
class GenerateRequest:
    """A single-prompt completion request, streamed by default.

    Attributes:
        model: Model identifier.
        prompt: Prompt text.
        suffix: Text that should follow the completion (fill-in-the-middle
            code completion).
        images: Base64-encoded image attachments.
        format: Output format: the string "json" or a JSON schema tree.
        think: Ask a thinking model to emit its reasoning separately.
        system: System message overriding the model's default.
        context: Token context returned by a previous terminal event, to
            continue a conversation.
        options: Generation hyperparameters.
        stream: Whether the server should stream. True by default.
        keep_alive: How long the server keeps the model loaded afterwards.

    Raises:
        PreconditionViolation: If images or context have the wrong element
            type, format is not a JSON tree, or an option key collides with
            a request field.
    """

    WIRE_FIELDS: ClassVar[frozenset[str]] = frozenset(
        {
            "stream",
            "model",
            "prompt",
            "suffix",
            "images",
            "format",
            "think",
            "system",
            "context",
            "keep_alive",
            "options",
        }
    )

    model: str
    prompt: str
    suffix: str | None = None
    images: tuple[str, ...] | None = None
    format: JSONValue | None = None
    think: bool | None = None
    system: str | None = None
    context: tuple[int, ...] | None = None
    options: CompletionOptions | None = None
    stream: bool = True
    keep_alive: str | int | float | None = None

    def __post_init__(self) -> None:
        images = _as_tuple(self.images, "images")
        _check_images(images)
        object.__setattr__(self, "images", images)
        context = _as_tuple(self.context, "context")
        if context is not None and not all(
            isinstance(token, int) and not isinstance(token, bool) for token in context
        ):
            raise PreconditionViolation("context must be a sequence of integer tokens")
        object.__setattr__(self, "context", context)
        if self.format is not None:
            object.__setattr__(self, "format", validate_json_value(self.format))
        _check_option_collisions(self.options, self.WIRE_FIELDS)

    @property
    def kind(self) -> RequestKind:
        return RequestKind.GENERATE

    @property
    def endpoint(self) -> str:
        return GENERATE_ENDPOINT


StreamRequest = ChatRequest | GenerateRequest
"""Either request shape accepted by a streaming session."""


__all__ = [
    "CHAT_ENDPOINT",
    "GENERATE_ENDPOINT",
    "ChatRequest",
    "CompletionOptions",
    "GenerateRequest",
    "Message",
    "RequestKind",
    "Role",
    "StreamRequest",
    "ToolCall",
    "ToolCallFunction",
]
