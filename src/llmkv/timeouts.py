"""Centralized timeout policy and helpers."""

from __future__ import annotations

import math
from typing import Any

import httpx


# Read timeout default for provider calls.
DEFAULT_TIMEOUT_SEC = 60

# Shared provider HTTP timeout buckets.
AI_HTTP_CONNECT_TIMEOUT_SEC = 10.0
AI_HTTP_WRITE_TIMEOUT_SEC = 15.0
AI_HTTP_POOL_TIMEOUT_SEC = 5.0

# Retry/backoff timing defaults.
STANDARD_RETRY_ATTEMPTS = 3
RETRY_BACKOFF_INITIAL_SEC = 1.0
RETRY_BACKOFF_MAX_SEC = 30.0

# Streaming relay timing.
STREAM_KEEPALIVE_INTERVAL_SEC = 15.0
SINK_PERSIST_INTERVAL_SEC = 1.2


def normalize_timeout_value(value: Any, fallback: int | float) -> int | float:
    """Normalize timeout-like values to non-negative finite int/float."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        normalized = float(fallback)
    else:
        normalized = float(value)
    if not math.isfinite(normalized) or normalized < 0:
        normalized = float(fallback)
    if normalized.is_integer():
        return int(normalized)
    return normalized


def build_ai_httpx_timeout(read_timeout_sec: int | float) -> httpx.Timeout | None:
    """Build httpx timeout config for provider clients.

    A read timeout of 0 disables timeouts entirely.
    """
    timeout_sec = normalize_timeout_value(read_timeout_sec, DEFAULT_TIMEOUT_SEC)
    if timeout_sec <= 0:
        return None
    return httpx.Timeout(
        connect=AI_HTTP_CONNECT_TIMEOUT_SEC,
        read=timeout_sec,
        write=AI_HTTP_WRITE_TIMEOUT_SEC,
        pool=AI_HTTP_POOL_TIMEOUT_SEC,
    )
