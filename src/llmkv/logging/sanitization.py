"""Scrubbing of credentials from logs and user-visible errors."""

from __future__ import annotations

import re
from collections.abc import Iterable

REDACTED = "[REDACTED]"

# Order matters: provider-specific prefixes before the generic ``sk-`` form.
_SECRET_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"sk-ant-[A-Za-z0-9_-]{10,}"), "[REDACTED_API_KEY]"),
    (re.compile(r"sk-or-[A-Za-z0-9_-]{10,}"), "[REDACTED_API_KEY]"),
    (re.compile(r"sk-[A-Za-z0-9_-]{10,}"), "[REDACTED_API_KEY]"),
    (re.compile(r"AIza[A-Za-z0-9_-]{30,}"), "[REDACTED_API_KEY]"),
    (re.compile(r"Bearer\s+[A-Za-z0-9_\-\.]{20,}"), "Bearer [REDACTED_TOKEN]"),
    (re.compile(r"eyJ[A-Za-z0-9_-]+\.eyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+"), "[REDACTED_JWT]"),
)


def sanitize_error_message(error_msg: str) -> str:
    """Mask anything shaped like a provider API key, bearer token, or JWT."""
    for pattern, replacement in _SECRET_PATTERNS:
        error_msg = pattern.sub(replacement, error_msg)
    return error_msg


def redact_secrets(text: str, secrets: Iterable[str]) -> str:
    """Replace every occurrence of the known ``secrets`` in ``text``."""
    # Longest first so a secret containing another is replaced whole.
    for secret in sorted({s for s in secrets if s}, key=len, reverse=True):
        text = text.replace(secret, REDACTED)
    return text
