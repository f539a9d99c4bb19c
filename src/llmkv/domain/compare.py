"""Fan-out compare targets and per-target outcomes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..errors import InvalidRequestError
from .chat import ChatResponse


@dataclass(slots=True, frozen=True)
class CompareTarget:
    provider: str
    model: str

    @classmethod
    def parse(cls, raw: str) -> CompareTarget:
        """Parse ``provider:model`` (the model may itself contain colons)."""
        provider, sep, model = raw.partition(":")
        if not sep or not provider.strip() or not model.strip():
            raise InvalidRequestError(f"Invalid compare target '{raw}': expected provider:model")
        return cls(provider.strip().lower(), model.strip())


@dataclass(slots=True, frozen=True)
class CompareOptions:
    """Request options shared by every compare target."""

    temperature: float | None = None
    max_output_tokens: int | None = None
    system_prompt: str | None = None


@dataclass(slots=True)
class CompareResult:
    """Outcome for one target: either a response or a failure message."""

    provider: str
    model: str
    response: ChatResponse | None = None
    error: str | None = None
    error_kind: str | None = None

    @property
    def ok(self) -> bool:
        return self.response is not None and self.error is None

    @classmethod
    def success(cls, target: CompareTarget, response: ChatResponse) -> CompareResult:
        return cls(target.provider, target.model, response=response)

    @classmethod
    def failure(cls, target: CompareTarget, message: str, kind: str | None = None) -> CompareResult:
        return cls(target.provider, target.model, error=message, error_kind=kind)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "provider": self.provider,
            "model": self.model,
            "ok": self.ok,
        }
        if self.response is not None:
            payload["result"] = self.response.to_dict()
        if self.error is not None:
            payload["error"] = self.error
        return payload
