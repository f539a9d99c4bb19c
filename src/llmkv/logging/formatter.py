"""Plaintext rendering of structured log records."""

from __future__ import annotations

import json
import logging
from typing import Any

from ..time_utils import utc_now_iso
from .sanitization import REDACTED
from .schema import DEFAULT_EVENT_KEY_ORDER, EVENT_KEY_ORDER, SECRET_LOG_FIELDS

_HTTPX_REQUEST_MSG = 'HTTP Request: %s %s "%s %d %s"'


def _single_line(value: Any) -> str:
    return str(value).replace("\n", "\\n")


def _json_payload(message: str) -> dict[str, Any] | None:
    if not (message.startswith("{") and message.endswith("}")):
        return None
    try:
        parsed = json.loads(message)
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None


def _httpx_request_fields(record: logging.LogRecord) -> dict[str, Any] | None:
    """Decode httpx's per-request INFO line into named fields."""
    if record.name != "httpx" or str(record.msg) != _HTTPX_REQUEST_MSG:
        return None
    if not isinstance(record.args, tuple) or len(record.args) != 5:
        return None
    method, url, version, status, reason = record.args
    return {
        "event": "httpx_request",
        "http_method": str(method),
        "http_url": str(url),
        "http_version": str(version),
        "http_status": status if isinstance(status, int) else str(status),
        "http_reason": str(reason),
    }


class StructuredTextFormatter(logging.Formatter):
    """Render each record as an ``=== event ===`` header plus ``key: value`` lines.

    Entries after the first are preceded by a blank line. Fields named in
    ``SECRET_LOG_FIELDS`` are masked whatever their value.
    """

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._emitted = False

    def _fields(self, record: logging.LogRecord) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "ts_utc": utc_now_iso(),
            "level": record.levelname,
            "logger": record.name,
        }
        message = record.getMessage()
        decoded = _json_payload(message) or _httpx_request_fields(record)
        if decoded is None:
            decoded = {"event": record.name, "message": message}
        fields.update(decoded)
        return fields

    def format(self, record: logging.LogRecord) -> str:
        fields = self._fields(record)
        event = str(fields.pop("event", record.name))
        present = {k: v for k, v in fields.items() if v is not None}

        preferred = EVENT_KEY_ORDER.get(event, DEFAULT_EVENT_KEY_ORDER)
        keys = [k for k in preferred if k in present]
        keys += sorted(k for k in present if k not in preferred)

        lines = [f"=== {event} ==="]
        for key in keys:
            value = REDACTED if key in SECRET_LOG_FIELDS else present[key]
            lines.append(f"{key}: {_single_line(value)}")
        if record.exc_info:
            lines.append("traceback:")
            lines.append(self.formatException(record.exc_info))

        body = "\n".join(lines)
        if self._emitted:
            return "\n" + body
        self._emitted = True
        return body
