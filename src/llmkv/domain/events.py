"""Internal stream event vocabulary.

Every stream is a finite sequence of these events terminated by exactly one
``Done``. ``to_wire`` returns the JSON object sent to relay consumers; ``Done``
has no JSON body and is framed as the ``[DONE]`` sentinel instead.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Union

from .chat import Source, Usage


@dataclass(slots=True, frozen=True)
class TextDelta:
    type: ClassVar[str] = "text"
    delta: str

    def to_wire(self) -> dict[str, Any]:
        return {"type": self.type, "delta": self.delta}


@dataclass(slots=True, frozen=True)
class ThinkingDelta:
    type: ClassVar[str] = "thinking"
    delta: str

    def to_wire(self) -> dict[str, Any]:
        return {"type": self.type, "delta": self.delta}


@dataclass(slots=True, frozen=True)
class SourcesEvent:
    type: ClassVar[str] = "sources"
    sources: tuple[Source, ...]

    def to_wire(self) -> dict[str, Any]:
        return {"type": self.type, "sources": [s.to_dict() for s in self.sources]}


@dataclass(slots=True, frozen=True)
class UsageEvent:
    type: ClassVar[str] = "usage"
    input_tokens: int | None = None
    output_tokens: int | None = None
    reasoning_tokens: int | None = None

    @classmethod
    def from_usage(cls, usage: Usage) -> UsageEvent:
        return cls(usage.input_tokens, usage.output_tokens, usage.reasoning_tokens)

    def to_usage(self) -> Usage:
        return Usage(
            input_tokens=self.input_tokens,
            output_tokens=self.output_tokens,
            reasoning_tokens=self.reasoning_tokens,
        )

    def to_wire(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": self.type}
        if self.input_tokens is not None:
            payload["inputTokens"] = self.input_tokens
        if self.output_tokens is not None:
            payload["outputTokens"] = self.output_tokens
        if self.reasoning_tokens is not None:
            payload["reasoningTokens"] = self.reasoning_tokens
        return payload


@dataclass(slots=True, frozen=True)
class ErrorEvent:
    type: ClassVar[str] = "error"
    message: str

    def to_wire(self) -> dict[str, Any]:
        return {"type": self.type, "message": self.message}


@dataclass(slots=True, frozen=True)
class Done:
    type: ClassVar[str] = "done"

    def to_wire(self) -> dict[str, Any]:
        return {"type": self.type}


StreamEvent = Union[TextDelta, ThinkingDelta, SourcesEvent, UsageEvent, ErrorEvent, Done]

DONE = Done()


def event_from_wire(payload: dict[str, Any]) -> StreamEvent:
    """Rebuild a StreamEvent from its wire JSON object."""
    event_type = payload.get("type")
    if event_type == "text":
        return TextDelta(str(payload.get("delta", "")))
    if event_type == "thinking":
        return ThinkingDelta(str(payload.get("delta", "")))
    if event_type == "sources":
        raw_sources = payload.get("sources") or []
        return SourcesEvent(
            tuple(
                Source(str(s.get("title", "")), str(s.get("url", "")))
                for s in raw_sources
                if isinstance(s, dict)
            )
        )
    if event_type == "usage":
        return UsageEvent(
            input_tokens=payload.get("inputTokens"),
            output_tokens=payload.get("outputTokens"),
            reasoning_tokens=payload.get("reasoningTokens"),
        )
    if event_type == "error":
        return ErrorEvent(str(payload.get("message", "")))
    if event_type == "done":
        return DONE
    raise ValueError(f"Unknown stream event type: {event_type!r}")
