"""Typed chat domain models shared by the gateway and adapters."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, replace
from typing import Any, Union

from ..errors import InvalidRequestError

ROLES = ("system", "user", "assistant")
REASONING_EFFORTS = ("none", "minimal", "low", "medium", "high", "xhigh")
VERBOSITY_LEVELS = ("low", "medium", "high")


@dataclass(slots=True, frozen=True)
class TextPart:
    """Plain text content part."""

    text: str


@dataclass(slots=True, frozen=True)
class ImagePart:
    """Image reference content part (http(s) URL or ``data:`` URL)."""

    url: str

    @property
    def is_data_url(self) -> bool:
        return self.url.startswith("data:")

    def split_data_url(self) -> tuple[str, str] | None:
        """Return ``(mime_type, base64_data)`` for a base64 ``data:`` URL."""
        if not self.is_data_url:
            return None
        header, _, data = self.url[5:].partition(",")
        if not data or not header.endswith(";base64"):
            return None
        mime_type = header[: -len(";base64")] or "application/octet-stream"
        return mime_type, data


ContentPart = Union[TextPart, ImagePart]


def _normalize_content(content: Any) -> str | tuple[ContentPart, ...]:
    if isinstance(content, str):
        return content
    if isinstance(content, (list, tuple)):
        parts: list[ContentPart] = []
        for part in content:
            if isinstance(part, (TextPart, ImagePart)):
                parts.append(part)
            elif isinstance(part, str):
                parts.append(TextPart(part))
            elif isinstance(part, dict):
                parts.append(_part_from_dict(part))
            else:
                raise InvalidRequestError(f"Invalid content part: {part!r}")
        return tuple(parts)
    raise InvalidRequestError("Invalid message content: expected string or list of parts")


def _part_from_dict(raw: dict[str, Any]) -> ContentPart:
    part_type = raw.get("type")
    if part_type == "text":
        return TextPart(str(raw.get("text", "")))
    if part_type in ("image", "image_url"):
        image = raw.get("image_url", raw.get("url"))
        if isinstance(image, dict):
            image = image.get("url")
        if isinstance(image, str) and image:
            return ImagePart(image)
    raise InvalidRequestError(f"Invalid content part: {raw!r}")


@dataclass(slots=True, frozen=True)
class ChatMessage:
    """One conversation turn. Immutable once constructed."""

    role: str
    content: str | tuple[ContentPart, ...]

    def __post_init__(self) -> None:
        if self.role not in ROLES:
            raise InvalidRequestError(f"Invalid message role: {self.role!r}")
        object.__setattr__(self, "content", _normalize_content(self.content))

    @classmethod
    def system(cls, content: str) -> ChatMessage:
        return cls("system", content)

    @classmethod
    def user(cls, content: str | Sequence[ContentPart]) -> ChatMessage:
        return cls("user", content)  # type: ignore[arg-type]

    @classmethod
    def assistant(cls, content: str) -> ChatMessage:
        return cls("assistant", content)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> ChatMessage:
        if not isinstance(raw, dict):
            raise InvalidRequestError("Invalid message: expected object")
        return cls(str(raw.get("role", "")), raw.get("content", ""))

    @property
    def parts(self) -> tuple[ContentPart, ...]:
        """Content as parts; plain string content becomes one text part."""
        if isinstance(self.content, str):
            return (TextPart(self.content),) if self.content else ()
        return self.content

    @property
    def text(self) -> str:
        """Text content with parts joined by newlines."""
        if isinstance(self.content, str):
            return self.content
        return "\n".join(p.text for p in self.content if isinstance(p, TextPart))

    @property
    def images(self) -> list[str]:
        if isinstance(self.content, str):
            return []
        return [p.url for p in self.content if isinstance(p, ImagePart)]

    @property
    def has_images(self) -> bool:
        return bool(self.images)

    def to_dict(self) -> dict[str, Any]:
        if isinstance(self.content, str):
            return {"role": self.role, "content": self.content}
        content: list[dict[str, Any]] = []
        for part in self.content:
            if isinstance(part, TextPart):
                content.append({"type": "text", "text": part.text})
            else:
                content.append({"type": "image_url", "image_url": {"url": part.url}})
        return {"role": self.role, "content": content}


@dataclass(slots=True, frozen=True)
class Source:
    """Citation emitted by a provider's web search."""

    title: str
    url: str

    def to_dict(self) -> dict[str, str]:
        return {"title": self.title, "url": self.url}


@dataclass(slots=True, frozen=True)
class Usage:
    """Token accounting; any field may be missing."""

    input_tokens: int | None = None
    output_tokens: int | None = None
    reasoning_tokens: int | None = None
    total_tokens: int | None = None

    @property
    def is_empty(self) -> bool:
        return (
            self.input_tokens is None
            and self.output_tokens is None
            and self.reasoning_tokens is None
            and self.total_tokens is None
        )


@dataclass(slots=True, frozen=True)
class ChatRequest:
    """Provider-agnostic chat request."""

    provider: str
    model: str
    messages: tuple[ChatMessage, ...]
    temperature: float | None = None
    max_output_tokens: int | None = None
    reasoning_effort: str | None = None
    verbosity: str | None = None
    web_search: bool = False

    def __post_init__(self) -> None:
        messages = tuple(
            m if isinstance(m, ChatMessage) else ChatMessage.from_dict(m)
            for m in self.messages
        )
        if not messages:
            raise InvalidRequestError("Chat request requires at least one message")
        if not self.model:
            raise InvalidRequestError("Chat request requires a model")
        if self.reasoning_effort is not None and self.reasoning_effort not in REASONING_EFFORTS:
            raise InvalidRequestError(f"Invalid reasoning effort: {self.reasoning_effort!r}")
        if self.verbosity is not None and self.verbosity not in VERBOSITY_LEVELS:
            raise InvalidRequestError(f"Invalid verbosity: {self.verbosity!r}")
        if self.max_output_tokens is not None and self.max_output_tokens <= 0:
            raise InvalidRequestError("max_output_tokens must be positive")
        object.__setattr__(self, "messages", messages)

    def with_messages(self, messages: Iterable[ChatMessage]) -> ChatRequest:
        return replace(self, messages=tuple(messages))

    @property
    def system_text(self) -> str | None:
        """System messages joined with blank lines, or None when absent."""
        parts = [m.text for m in self.messages if m.role == "system" and m.text]
        return "\n\n".join(parts) if parts else None

    @property
    def conversation(self) -> tuple[ChatMessage, ...]:
        """Messages without system turns."""
        return tuple(m for m in self.messages if m.role != "system")


@dataclass(slots=True)
class ChatResponse:
    """Normalized non-streaming response."""

    text: str
    usage: Usage | None = None
    sources: list[Source] = field(default_factory=list)
    thinking: str = ""
    model: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"text": self.text}
        if self.thinking:
            payload["thinking"] = self.thinking
        if self.sources:
            payload["sources"] = [s.to_dict() for s in self.sources]
        if self.usage is not None and not self.usage.is_empty:
            payload["usage"] = {
                key: value
                for key, value in (
                    ("inputTokens", self.usage.input_tokens),
                    ("outputTokens", self.usage.output_tokens),
                    ("reasoningTokens", self.usage.reasoning_tokens),
                    ("totalTokens", self.usage.total_tokens),
                )
                if value is not None
            }
        return payload
