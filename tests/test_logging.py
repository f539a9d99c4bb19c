"""Tests for structured logging helpers."""

import json
import logging
from datetime import datetime
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import patch

from llmkv.ai.provider_logging import (
    api_error_after_retries_message,
    http_error_message,
    log_provider_error,
)
from llmkv.errors import UpstreamHTTPError
from llmkv.logging import (
    StructuredTextFormatter,
    before_sleep_log_event,
    build_run_log_path,
    extract_http_error_context,
    log_event,
    sanitize_error_message,
    setup_logging,
)


def _record(msg: str, name: str = "root") -> logging.LogRecord:
    return logging.LogRecord(
        name=name,
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )


def test_log_event_emits_json_payload(caplog):
    with caplog.at_level(logging.INFO):
        log_event("vault_save", user_id="u", provider="openai", hint="****abcd", store_path="~/x.json")

    payload = json.loads(caplog.records[-1].getMessage())
    assert payload["event"] == "vault_save"
    assert payload["hint"] == "****abcd"
    assert payload["store_path"] == str(Path("~/x.json").expanduser().resolve())
    assert "ts_utc" in payload


def test_formatter_orders_known_event_keys():
    message = json.dumps(
        {"event": "vault_save", "replaced": False, "provider": "openai", "user_id": "u", "zzz": 1}
    )
    result = StructuredTextFormatter().format(_record(message))

    lines = result.splitlines()
    assert lines[0] == "=== vault_save ==="
    keys = [line.split(":", 1)[0] for line in lines[1:]]
    assert keys.index("user_id") < keys.index("provider") < keys.index("replaced") < keys.index("zzz")


def test_formatter_separates_entries_with_blank_line():
    formatter = StructuredTextFormatter()
    first = formatter.format(_record("one"))
    second = formatter.format(_record("two"))
    assert not first.startswith("\n")
    assert second.startswith("\n=== root ===")


def test_formatter_escapes_newlines():
    result = StructuredTextFormatter().format(_record("line1\nline2", name="llmkv"))
    assert "message: line1\\nline2" in result


def test_sanitize_error_message_redacts_known_key_shapes():
    text = (
        "sk-ant-abcdefghijklmno sk-or-abcdefghijklmno sk-abcdefghijklmnop "
        "AIzaSyA1234567890abcdefghijklmnopqrstu Bearer abcdefghijklmnopqrstuvwxyz"
    )
    sanitized = sanitize_error_message(text)
    assert "abcdefghijklmno" not in sanitized
    assert sanitized.count("[REDACTED_API_KEY]") == 4
    assert "Bearer [REDACTED_TOKEN]" in sanitized


def test_extract_http_error_context_from_httpx_like_error():
    request = SimpleNamespace(method="POST", url="https://api.example/v1")
    response = SimpleNamespace(status_code=503, request=request)
    error = RuntimeError("x")
    error.response = response

    assert extract_http_error_context(error) == {
        "http_method": "POST",
        "http_url": "https://api.example/v1",
        "http_status": 503,
    }


def test_log_event_scrubs_secrets_and_bytes(caplog):
    with caplog.at_level(logging.INFO):
        log_event("ai_error", error="upstream echoed sk-abcdefghijklmnop", key=b"\x00" * 32)

    payload = json.loads(caplog.records[-1].getMessage())
    assert payload["error"] == "upstream echoed [REDACTED_API_KEY]"
    assert payload["key"] == "<32 bytes>"


def test_formatter_masks_secret_fields():
    message = json.dumps({"event": "custom", "api_key": "plain-text-value", "provider": "openai"})
    result = StructuredTextFormatter().format(_record(message))
    assert "api_key: [REDACTED]" in result
    assert "plain-text-value" not in result


def test_extract_http_error_context_drops_query_string():
    request = SimpleNamespace(method="GET", url="https://api.example/v1/models?key=AIza-secret")
    error = RuntimeError("x")
    error.request = request

    assert extract_http_error_context(error) == {
        "http_method": "GET",
        "http_url": "https://api.example/v1/models",
    }


def test_extract_http_error_context_from_typed_error():
    assert extract_http_error_context(UpstreamHTTPError(418, "teapot")) == {"http_status": 418}


def test_before_sleep_log_event_reports_retry():
    outcome = SimpleNamespace(failed=True, exception=lambda: TimeoutError("slow"))
    retry_state = SimpleNamespace(outcome=outcome, next_action=SimpleNamespace(sleep=1.5), attempt_number=2)

    with patch("llmkv.logging.events.log_event") as mock_log_event:
        before_sleep_log_event(provider="openai", operation="send")(retry_state)

    mock_log_event.assert_called_once_with(
        "provider_retry",
        level=logging.WARNING,
        provider="openai",
        operation="send",
        attempt=2,
        sleep_sec=1.5,
        result="raised",
        error_type="TimeoutError",
        error="slow",
    )


def test_build_run_log_path_is_unique(tmp_path):
    with patch("llmkv.logging.events.datetime") as mock_datetime:
        mock_datetime.now.return_value = datetime(2025, 1, 2, 3, 4, 5)
        first = build_run_log_path(str(tmp_path / "logs"))
        Path(first).write_text("", encoding="utf-8")
        second = build_run_log_path(str(tmp_path / "logs"))

    assert first != second
    assert Path(first).name == "llmkv_2025-01-02_03-04-05.log"
    assert Path(second).name == "llmkv_2025-01-02_03-04-05_1.log"


def test_setup_logging_writes_structured_file(tmp_path):
    log_file = tmp_path / "run.log"
    setup_logging(str(log_file))
    try:
        log_event("compare_start", targets=["a:b"])
        logging.getLogger().handlers[0].flush()
    finally:
        for handler in logging.getLogger().handlers:
            handler.close()
        logging.getLogger().handlers.clear()

    content = log_file.read_text(encoding="utf-8")
    assert "=== compare_start ===" in content
    assert "targets: ['a:b']" in content


def test_setup_logging_without_file_disables_logging(caplog):
    setup_logging(None)
    with caplog.at_level(logging.INFO):
        log_event("app_start")
    assert caplog.records == []


def test_provider_messages():
    error = UpstreamHTTPError(401, "bad key")
    assert http_error_message(401, error) == "Authentication failed (401): HTTP 401: bad key"
    assert http_error_message(429, error).startswith("Rate limit exceeded")
    assert http_error_message(500, error).startswith("API error (500)")
    assert http_error_message(400, error).startswith("Bad request (400)")
    assert api_error_after_retries_message(TimeoutError("t")) == "API error after retries: TimeoutError: t"


def test_log_provider_error_sanitizes():
    with patch("llmkv.ai.provider_logging.log_event") as mock_log_event:
        log_provider_error("openai", "failed with sk-abcdefghijklmnop")

    mock_log_event.assert_called_once_with(
        "provider_log",
        level=logging.ERROR,
        provider="openai",
        message="failed with [REDACTED_API_KEY]",
    )
