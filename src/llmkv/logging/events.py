"""Structured event emission and logging setup.

Every event is one JSON object logged through the root logger; the file
handler installed by :func:`setup_logging` renders it as a readable block.
String fields pass through :func:`sanitize_error_message` on the way out, so
an API key that leaks into an upstream error body never reaches the log file.
"""

from __future__ import annotations

import dataclasses
import itertools
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional
from urllib.parse import urlsplit, urlunsplit

from ..constants import APP_NAME, DATETIME_FORMAT_FILENAME, LOG_FILE_EXTENSION
from ..time_utils import utc_now_iso
from .formatter import StructuredTextFormatter
from .sanitization import sanitize_error_message
from .schema import LOG_PATH_FIELDS


def _loggable(value: Any) -> Any:
    if isinstance(value, str):
        return sanitize_error_message(value)
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, (bytes, bytearray)):
        # Raw key material and ciphertext are never written out.
        return f"<{len(value)} bytes>"
    if isinstance(value, Path):
        return str(value)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return _loggable(dataclasses.asdict(value))
    if isinstance(value, dict):
        return {str(k): _loggable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_loggable(v) for v in value]
    return sanitize_error_message(str(value))


def _absolute_path(value: str) -> str:
    if not value.strip():
        return value
    return str(Path(value.strip()).expanduser().resolve())


def _url_without_query(url: Any) -> str:
    # Query strings may carry credentials (``?key=``); drop them.
    parts = urlsplit(str(url))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


def log_event(event: str, level: int = logging.INFO, **fields: Any) -> None:
    """Emit a structured log event."""
    payload: dict[str, Any] = {"ts_utc": utc_now_iso(), "event": event}
    for key, value in fields.items():
        if key in LOG_PATH_FIELDS and isinstance(value, str):
            payload[key] = _absolute_path(value)
        else:
            payload[key] = _loggable(value)
    logging.log(level, json.dumps(payload, ensure_ascii=False, separators=(",", ":")))


def extract_http_error_context(error: BaseException) -> dict[str, Any]:
    """Pull method, URL and status from httpx errors or typed upstream errors."""
    response = getattr(error, "response", None)
    request = getattr(error, "request", None) or getattr(response, "request", None)

    context: dict[str, Any] = {}
    if request is not None:
        method = getattr(request, "method", None)
        url = getattr(request, "url", None)
        if method:
            context["http_method"] = str(method)
        if url:
            context["http_url"] = _url_without_query(url)

    status = getattr(response, "status_code", None) if response is not None else None
    if status is None:
        status = getattr(error, "status", None)
    if isinstance(status, int):
        context["http_status"] = status
    return context


def before_sleep_log_event(
    *,
    provider: str,
    operation: str,
    level: int = logging.WARNING,
) -> Callable[[Any], None]:
    """Build a tenacity ``before_sleep`` hook that logs ``provider_retry``."""

    def _callback(retry_state: Any) -> None:
        outcome = getattr(retry_state, "outcome", None)
        next_action = getattr(retry_state, "next_action", None)
        if outcome is None or next_action is None:
            return

        fields: dict[str, Any] = {
            "provider": provider,
            "operation": operation,
            "attempt": getattr(retry_state, "attempt_number", None),
            "sleep_sec": getattr(next_action, "sleep", None),
        }
        if not getattr(outcome, "failed", False):
            fields["result"] = "returned"
        else:
            fields["result"] = "raised"
            error = outcome.exception()
            if error is not None:
                fields["error_type"] = type(error).__name__
                fields["error"] = str(error)

        try:
            log_event("provider_retry", level=level, **fields)
        except Exception:
            # A broken log handler must not abort the retry loop.
            return

    return _callback


def build_run_log_path(logs_dir: str) -> str:
    """Return ``<logs_dir>/llmkv_<timestamp>[_N].log`` that does not exist yet."""
    directory = Path(logs_dir).expanduser()
    directory.mkdir(parents=True, exist_ok=True)

    stem = f"{APP_NAME}_{datetime.now().strftime(DATETIME_FORMAT_FILENAME)}"
    candidate = directory / f"{stem}{LOG_FILE_EXTENSION}"
    for n in itertools.count(1):
        if not candidate.exists():
            break
        candidate = directory / f"{stem}_{n}{LOG_FILE_EXTENSION}"
    return str(candidate)


def setup_logging(log_file: Optional[str] = None) -> None:
    """Route all logging to ``log_file``, or switch logging off without one."""
    if not log_file:
        logging.disable(logging.CRITICAL)
        return

    path = Path(log_file).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(str(path), encoding="utf-8")
    handler.setFormatter(StructuredTextFormatter())
    logging.disable(logging.NOTSET)
    logging.basicConfig(level=logging.INFO, handlers=[handler], force=True)
