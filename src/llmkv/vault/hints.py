"""Display hints for stored secrets."""

from __future__ import annotations

from ..logging.sanitization import redact_secrets

HINT_MASK = "****"
HINT_VISIBLE_CHARS = 4


def key_hint(secret: str) -> str:
    """Return a non-reversible hint: the mask plus the last four characters."""
    if len(secret) <= HINT_VISIBLE_CHARS:
        return HINT_MASK
    return HINT_MASK + secret[-HINT_VISIBLE_CHARS:]


__all__ = ["HINT_MASK", "key_hint", "redact_secrets"]
