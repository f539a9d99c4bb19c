"""UTC timestamp helpers."""

from __future__ import annotations

from datetime import datetime, timezone

_ISO_UTC = "%Y-%m-%dT%H:%M:%S.%fZ"


def utc_now_iso() -> str:
    """Current UTC time with microseconds and a ``Z`` suffix.

    Example: ``2026-01-15T12:34:56.789012Z``
    """
    return datetime.now(timezone.utc).strftime(_ISO_UTC)
