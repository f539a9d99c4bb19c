"""Shared HTTP helpers for provider adapters: SSE parsing and error text."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

from ..errors import StreamTranslationError
from ..logging import sanitize_error_message


@dataclass(slots=True, frozen=True)
class SSEEvent:
    """One dispatched server-sent event."""

    event: str | None
    data: str


async def iter_sse_events(lines: AsyncIterator[str]) -> AsyncIterator[SSEEvent]:
    """Group raw SSE lines into events.

    Comment lines are skipped; multiple ``data:`` lines are joined with newlines.
    """
    event_name: str | None = None
    data_lines: list[str] = []
    async for raw_line in lines:
        line = raw_line.rstrip("\r")
        if not line:
            if data_lines:
                yield SSEEvent(event_name, "\n".join(data_lines))
            event_name = None
            data_lines = []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "event":
            event_name = value
        elif field == "data":
            data_lines.append(value)
    if data_lines:
        yield SSEEvent(event_name, "\n".join(data_lines))


def decode_event_data(data: str, provider: str) -> dict[str, Any]:
    """Parse one SSE data payload as a JSON object."""
    try:
        payload = json.loads(data)
    except json.JSONDecodeError as e:
        raise StreamTranslationError(
            f"Malformed stream payload: {e.msg}", provider
        ) from None
    if not isinstance(payload, dict):
        raise StreamTranslationError("Malformed stream payload: expected object", provider)
    return payload


def extract_error_message(status: int, body: str, display_name: str) -> str:
    """Best-effort provider error message.

    Order: ``error.message``, ``error`` (string), ``message``, raw body text,
    then a generic ``<Provider> request failed (<status>)``.
    """
    text = (body or "").strip()
    message: str | None = None
    data: Any = None
    if text:
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            data = None

    if isinstance(data, list) and data and isinstance(data[0], dict):
        # Gemini occasionally wraps the error object in a list.
        data = data[0]
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            message = error["message"]
        elif isinstance(error, str):
            message = error
        elif isinstance(data.get("message"), str):
            message = data["message"]
    elif isinstance(data, str):
        message = data

    if not message or not message.strip():
        message = text
    if not message:
        message = f"{display_name} request failed ({status})"
    return sanitize_error_message(message.strip())


def as_int(value: Any) -> int | None:
    """Return ``value`` when it is a real int, else None."""
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def dig(payload: Any, *path: str | int) -> Any:
    """Follow dict keys / list indices, returning None on any miss."""
    current = payload
    for step in path:
        if isinstance(step, int):
            if not isinstance(current, list) or not -len(current) <= step < len(current):
                return None
            current = current[step]
        else:
            if not isinstance(current, dict):
                return None
            current = current.get(step)
    return current
