"""Credential record model."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

_RECORD_KEYS = ("user_id", "provider", "envelope", "hint", "created_at", "updated_at")


@dataclass(slots=True, frozen=True)
class CredentialRecord:
    """Stored credential for one (user, provider) pair.

    ``envelope`` holds the encrypted secret and is kept out of ``repr``.
    """

    user_id: str
    provider: str
    envelope: str = field(repr=False)
    hint: str
    created_at: str
    updated_at: str

    @property
    def key(self) -> tuple[str, str]:
        return (self.user_id, self.provider)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the persisted shape (includes the envelope)."""
        return {name: getattr(self, name) for name in _RECORD_KEYS}

    def to_public_dict(self) -> dict[str, Any]:
        """Serialize to the caller-facing shape: hint and timestamps only."""
        return {
            "provider": self.provider,
            "hint": self.hint,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, raw: Any) -> CredentialRecord:
        if not isinstance(raw, dict):
            raise ValueError("Invalid credential record: expected object")
        missing = [name for name in _RECORD_KEYS if not isinstance(raw.get(name), str)]
        if missing:
            raise ValueError(f"Credential record missing fields: {', '.join(missing)}")
        return cls(**{name: raw[name] for name in _RECORD_KEYS})
