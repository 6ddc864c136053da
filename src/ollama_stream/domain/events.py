"""Typed events decoded from streamed response frames.

Each NDJSON frame the server sends becomes exactly one event. Events are
frozen Pydantic v2 models so that decoding a frame also validates it against
the expected schema; unknown wire fields are ignored.

Key Behaviors:
    - Required fields: ``model`` and ``done`` (plus ``response`` for generate)
    - Optional fields decode to None when absent, never to a placeholder
    - ``created_at`` accepts RFC 3339 timestamps with nanosecond fractions
    - Usage counters only arrive on the terminal event
    - Events never merge with each other; see ``accumulate_chat`` and
      ``accumulate_generate`` for caller-side concatenation
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, JsonValue, field_validator

from ollama_stream.domain.entities import Role

_FRACTION_PATTERN = re.compile(r"(\.\d{6})\d+")


def _truncate_fraction(value: Any) -> Any:
    # datetime holds microseconds; Ollama sends nanoseconds.
    if isinstance(value, str):
        return _FRACTION_PATTERN.sub(r"\1", value, count=1)
    return value


class _FrameModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class EventToolCallFunction(_FrameModel):
    """Function part of a streamed tool call. Both fields may be missing."""

    name: str | None = None
    arguments: JsonValue | None = None


class EventToolCall(_FrameModel):
    """A tool call streamed by the model. Partial records are passed through."""

    id: str | None = None
    function: EventToolCallFunction | None = None


class EventMessage(_FrameModel):
    """Partial assistant message carried by one chat event.

    Attributes:
        role: Sender role, normally "assistant".
        content: Content fragment for this event (may be empty).
        images: Base64-encoded images, if the server echoed any.
        thinking: Reasoning fragment from a thinking model.
        tool_calls: Tool calls emitted in this event.
    """

    role: Role
    content: str
    images: tuple[str, ...] | None = None
    thinking: str | None = None
    tool_calls: tuple[EventToolCall, ...] | None = None


class Usage(BaseModel):
    """Timing and token counters reported on a terminal event.

    Durations are in nanoseconds, as the server reports them.
    """

    model_config = ConfigDict(frozen=True)

    total_duration: int | None = None
    load_duration: int | None = None
    prompt_eval_count: int | None = None
    prompt_eval_duration: int | None = None
    eval_count: int | None = None
    eval_duration: int | None = None

    @property
    def tokens_per_second(self) -> float | None:
        """Generation throughput, or None if the counters are missing."""
        if not self.eval_count or not self.eval_duration:
            return None
        return self.eval_count / (self.eval_duration / 1_000_000_000)

    @property
    def model_warm_start(self) -> bool:
        """True if the model was already loaded (no load time reported)."""
        return not self.load_duration


class _EventBase(_FrameModel):
    model: str
    created_at: datetime | None = None
    done: bool
    done_reason: str | None = None
    total_duration: int | None = None
    load_duration: int | None = None
    prompt_eval_count: int | None = None
    prompt_eval_duration: int | None = None
    eval_count: int | None = None
    eval_duration: int | None = None

    @field_validator("created_at", mode="before")
    @classmethod
    def _parse_created_at(cls, value: Any) -> Any:
        return _truncate_fraction(value)

    @property
    def usage(self) -> Usage | None:
        """Usage counters, or None when the frame carried none of them."""
        counters = {name: getattr(self, name) for name in Usage.model_fields}
        if all(value is None for value in counters.values()):
            return None
        return Usage(**counters)


class ChatEvent(_EventBase):
    """One decoded frame of a streamed chat response.

    Attributes:
        model: Model that produced the frame.
        created_at: Server timestamp, if sent.
        message: Partial message (content/thinking/tool-call fragments).
        done: True only on the terminal event.
        done_reason: Why generation stopped (terminal only), e.g. "stop".
        total_duration..eval_duration: Usage counters (terminal only).
    """

    message: EventMessage | None = None

    @property
    def content(self) -> str:
        return self.message.content if self.message else ""

    @property
    def thinking(self) -> str | None:
        return self.message.thinking if self.message else None

    @property
    def tool_calls(self) -> tuple[EventToolCall, ...]:
        if self.message is None or self.message.tool_calls is None:
            return ()
        return self.message.tool_calls


class GenerateEvent(_EventBase):
    """One decoded frame of a streamed generate response.

    Attributes:
        model: Model that produced the frame.
        created_at: Server timestamp, if sent.
        response: Text fragment for this event (may be empty).
        thinking: Reasoning fragment from a thinking model.
        done: True only on the terminal event.
        context: Token context to pass to a follow-up request (terminal only).
    """

    response: str
    thinking: str | None = None
    context: tuple[int, ...] | None = None


StreamEvent = ChatEvent | GenerateEvent


# ============================================================================
# Caller-side accumulation
# ============================================================================


@dataclass(slots=True, frozen=True)
class ChatTranscript:
    """Concatenation of a finished list of chat events."""

    model: str | None
    content: str
    thinking: str
    tool_calls: tuple[EventToolCall, ...]
    done: bool
    done_reason: str | None
    usage: Usage | None


@dataclass(slots=True, frozen=True)
class GenerateTranscript:
    """Concatenation of a finished list of generate events."""

    model: str | None
    response: str
    thinking: str
    done: bool
    done_reason: str | None
    context: tuple[int, ...] | None
    usage: Usage | None


def accumulate_chat(events: Iterable[ChatEvent]) -> ChatTranscript:
    """Concatenate content, thinking and tool calls across chat events.

    Example:
        >>> transcript = accumulate_chat(list(session))
        >>> print(transcript.content)
    """
    model: str | None = None
    content: list[str] = []
    thinking: list[str] = []
    tool_calls: list[EventToolCall] = []
    last: ChatEvent | None = None
    for event in events:
        model = model or event.model
        content.append(event.content)
        if event.thinking:
            thinking.append(event.thinking)
        tool_calls.extend(event.tool_calls)
        last = event
    return ChatTranscript(
        model=model,
        content="".join(content),
        thinking="".join(thinking),
        tool_calls=tuple(tool_calls),
        done=bool(last and last.done),
        done_reason=last.done_reason if last else None,
        usage=last.usage if last else None,
    )


def accumulate_generate(events: Iterable[GenerateEvent]) -> GenerateTranscript:
    """Concatenate response and thinking fragments across generate events."""
    model: str | None = None
    response: list[str] = []
    thinking: list[str] = []
    last: GenerateEvent | None = None
    for event in events:
        model = model or event.model
        response.append(event.response)
        if event.thinking:
            thinking.append(event.thinking)
        last = event
    return GenerateTranscript(
        model=model,
        response="".join(response),
        thinking="".join(thinking),
        done=bool(last and last.done),
        done_reason=last.done_reason if last else None,
        context=last.context if last else None,
        usage=last.usage if last else None,
    )


__all__ = [
    "ChatEvent",
    "ChatTranscript",
    "EventMessage",
    "EventToolCall",
    "EventToolCallFunction",
    "GenerateEvent",
    "GenerateTranscript",
    "StreamEvent",
    "Usage",
    "accumulate_chat",
    "accumulate_generate",
]
