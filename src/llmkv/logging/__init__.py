"""Structured logging primitives for llmkv."""

from .events import (
    before_sleep_log_event,
    build_run_log_path,
    extract_http_error_context,
    log_event,
    setup_logging,
)
from .formatter import StructuredTextFormatter
from .sanitization import REDACTED, redact_secrets, sanitize_error_message
from .schema import (
    DEFAULT_EVENT_KEY_ORDER,
    EVENT_KEY_ORDER,
    LOG_PATH_FIELDS,
    SECRET_LOG_FIELDS,
)

__all__ = [
    "DEFAULT_EVENT_KEY_ORDER",
    "EVENT_KEY_ORDER",
    "LOG_PATH_FIELDS",
    "REDACTED",
    "SECRET_LOG_FIELDS",
    "StructuredTextFormatter",
    "before_sleep_log_event",
    "build_run_log_path",
    "extract_http_error_context",
    "log_event",
    "redact_secrets",
    "sanitize_error_message",
    "setup_logging",
]
