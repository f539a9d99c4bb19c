"""Shared provider log-message helpers."""

from __future__ import annotations

import logging

from ..logging import log_event, sanitize_error_message


def log_provider_error(provider: str, message: str) -> None:
    """Emit a standardized provider error log event."""
    log_event(
        "provider_log",
        level=logging.ERROR,
        provider=provider,
        message=sanitize_error_message(message),
    )


def log_provider_warning(provider: str, message: str) -> None:
    log_event(
        "provider_log",
        level=logging.WARNING,
        provider=provider,
        message=sanitize_error_message(message),
    )


def http_error_message(status: int, error: Exception) -> str:
    """Build the standard upstream-status message."""
    if status in (401, 403):
        return f"Authentication failed ({status}): {error}"
    if status == 429:
        return f"Rate limit exceeded: {error}"
    if status >= 500:
        return f"API error ({status}): {error}"
    return f"Bad request ({status}): {error}"


def api_error_after_retries_message(error: Exception) -> str:
    """Build standardized retry-exhausted API error message."""
    return f"API error after retries: {type(error).__name__}: {error}"
