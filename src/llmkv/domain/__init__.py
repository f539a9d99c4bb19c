"""Typed domain models used at module boundaries."""

from .chat import (
    ChatMessage,
    ChatRequest,
    ChatResponse,
    ContentPart,
    ImagePart,
    Source,
    TextPart,
    Usage,
)
from .compare import CompareOptions, CompareResult, CompareTarget
from .credentials import CredentialRecord
from .events import (
    DONE,
    Done,
    ErrorEvent,
    SourcesEvent,
    StreamEvent,
    TextDelta,
    ThinkingDelta,
    UsageEvent,
    event_from_wire,
)

__all__ = [
    "DONE",
    "ChatMessage",
    "ChatRequest",
    "ChatResponse",
    "CompareOptions",
    "CompareResult",
    "CompareTarget",
    "ContentPart",
    "CredentialRecord",
    "Done",
    "ErrorEvent",
    "ImagePart",
    "Source",
    "SourcesEvent",
    "StreamEvent",
    "TextDelta",
    "TextPart",
    "ThinkingDelta",
    "Usage",
    "UsageEvent",
    "event_from_wire",
]
