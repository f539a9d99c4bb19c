"""Structured log event schema: preferred key order per event."""

from __future__ import annotations

DEFAULT_EVENT_KEY_ORDER: list[str] = ["ts_utc", "level", "logger"]

EVENT_KEY_ORDER: dict[str, list[str]] = {
    # Application lifecycle events
    "app_start": ["ts_utc", "level", "command", "store", "config_file", "log_file"],
    "app_stop": ["ts_utc", "level", "reason", "uptime_ms", "error_type", "error"],
    # Vault events
    "vault_save": ["ts_utc", "level", "user_id", "provider", "hint", "replaced"],
    "vault_delete": ["ts_utc", "level", "user_id", "provider", "deleted"],
    "vault_load_error": ["ts_utc", "level", "user_id", "provider", "status", "error_type"],
    # AI interaction events
    "ai_request": [
        "ts_utc",
        "level",
        "mode",
        "provider",
        "model",
        "message_count",
        "input_chars",
        "estimated_tokens",
        "web_search",
    ],
    "ai_response": [
        "ts_utc",
        "level",
        "mode",
        "provider",
        "model",
        "latency_ms",
        "output_chars",
        "input_tokens",
        "output_tokens",
        "reasoning_tokens",
    ],
    "ai_error": [
        "ts_utc",
        "level",
        "mode",
        "provider",
        "model",
        "latency_ms",
        "http_method",
        "http_url",
        "http_status",
        "error_type",
        "error",
    ],
    # Streaming relay events
    "stream_start": ["ts_utc", "level", "relay_id"],
    "stream_stop": ["ts_utc", "level", "relay_id", "events", "error", "client_connected"],
    "stream_client_disconnected": ["ts_utc", "level", "relay_id", "draining"],
    "sink_error": ["ts_utc", "level", "relay_id", "final", "error_type", "error"],
    # Context window events
    "context_compressed": [
        "ts_utc",
        "level",
        "model",
        "context_limit",
        "before_messages",
        "after_messages",
        "before_tokens",
        "after_tokens",
    ],
    "context_compression_failed": [
        "ts_utc",
        "level",
        "model",
        "message_count",
        "estimated_tokens",
        "error_type",
        "error",
    ],
    # Fan-out events
    "compare_start": ["ts_utc", "level", "targets"],
    "compare_stop": ["ts_utc", "level", "targets", "succeeded", "failed", "latency_ms"],
    # Provider events
    "provider_log": ["ts_utc", "level", "provider", "message"],
    "provider_retry": [
        "ts_utc",
        "level",
        "provider",
        "operation",
        "attempt",
        "sleep_sec",
        "result",
        "error_type",
        "error",
    ],
    "httpx_request": [
        "ts_utc",
        "level",
        "logger",
        "http_method",
        "http_url",
        "http_version",
        "http_status",
        "http_reason",
    ],
}

LOG_PATH_FIELDS = {
    "config_file",
    "log_file",
    "store_path",
}

# Always masked by the formatter, whatever the value looks like.
SECRET_LOG_FIELDS = {
    "api_key",
    "ciphertext",
    "encryption_key",
    "secret",
}
