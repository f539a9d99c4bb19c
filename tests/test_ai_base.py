"""Tests for the shared adapter transport: retries, error mapping, stream framing."""

import httpx
import pytest

from llmkv.ai import OpenAIAdapter, is_retryable_error
from llmkv.domain.chat import ChatMessage, ChatRequest
from llmkv.domain.events import DONE, ErrorEvent, TextDelta
from llmkv.errors import (
    ProviderError,
    StreamTranslationError,
    UpstreamAuthError,
    UpstreamConnectionError,
    UpstreamHTTPError,
    UpstreamRateLimitError,
    UpstreamServerError,
)
from test_helpers import collect, mock_client, sse_body


def _request(**overrides) -> ChatRequest:
    fields = {
        "provider": "openai",
        "model": "gpt-4o",
        "messages": (ChatMessage.user("hi"),),
    }
    fields.update(overrides)
    return ChatRequest(**fields)


def _adapter(handler, **kwargs) -> OpenAIAdapter:
    kwargs.setdefault("max_attempts", 1)
    return OpenAIAdapter(client=mock_client(handler), backoff_initial=0, backoff_max=0, **kwargs)


def _ok_payload(text: str = "hello") -> dict:
    return {
        "model": "gpt-4o",
        "output": [{"type": "message", "content": [{"type": "output_text", "text": text}]}],
    }


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (UpstreamConnectionError("down"), True),
        (UpstreamHTTPError.from_status(429, "slow down"), True),
        (UpstreamHTTPError.from_status(503, "unavailable"), True),
        (UpstreamHTTPError.from_status(400, "bad"), False),
        (UpstreamHTTPError.from_status(401, "nope"), False),
        (ValueError("x"), False),
    ],
)
def test_is_retryable_error(error, expected):
    assert is_retryable_error(error) is expected


def test_from_status_picks_subclass():
    assert isinstance(UpstreamHTTPError.from_status(403, "m"), UpstreamAuthError)
    assert isinstance(UpstreamHTTPError.from_status(429, "m"), UpstreamRateLimitError)
    assert isinstance(UpstreamHTTPError.from_status(502, "m"), UpstreamServerError)
    assert str(UpstreamHTTPError.from_status(418, "teapot")) == "HTTP 418: teapot"


@pytest.mark.asyncio
async def test_send_retries_transient_then_succeeds():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) < 3:
            return httpx.Response(503, json={"error": {"message": "overloaded"}})
        return httpx.Response(200, json=_ok_payload())

    response = await _adapter(handler, max_attempts=3).send(_request(), "sk-test")

    assert response.text == "hello"
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_send_does_not_retry_client_errors():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(400, json={"error": {"message": "bad model"}})

    with pytest.raises(UpstreamHTTPError) as exc_info:
        await _adapter(handler, max_attempts=3).send(_request(), "sk-test")

    assert exc_info.value.status == 400
    assert exc_info.value.message == "bad model"
    assert exc_info.value.provider == "openai"
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_send_maps_auth_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, text="")

    with pytest.raises(UpstreamAuthError, match="OpenAI request failed \\(401\\)"):
        await _adapter(handler).send(_request(), "sk-test")


@pytest.mark.asyncio
async def test_send_maps_transport_error_after_retries():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(UpstreamConnectionError, match="ConnectError"):
        await _adapter(handler, max_attempts=2).send(_request(), "sk-test")
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_send_rejects_non_json_body():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>")

    with pytest.raises(ProviderError, match="non-JSON"):
        await _adapter(handler).send(_request(), "sk-test")


@pytest.mark.asyncio
async def test_base_url_override_per_call():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, json=_ok_payload())

    adapter = _adapter(handler, base_url="https://proxy.example/v1/")
    await adapter.send(_request(), "sk-test")
    await adapter.send(_request(), "sk-test", "https://other.example/api")

    assert seen == ["https://proxy.example/v1/responses", "https://other.example/api/responses"]


@pytest.mark.asyncio
async def test_stream_appends_single_done():
    body = sse_body(
        {"type": "response.output_text.delta", "delta": "Hel"},
        {"type": "response.output_text.delta", "delta": "lo"},
        {"type": "response.completed", "response": {"output": []}},
    )

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=body, headers={"content-type": "text/event-stream"})

    events = await collect(_adapter(handler).stream(_request(), "sk-test"))

    assert events == [TextDelta("Hel"), TextDelta("lo"), DONE]


@pytest.mark.asyncio
async def test_stream_http_error_raises_before_events():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, json={"error": {"message": "quota"}})

    with pytest.raises(UpstreamRateLimitError, match="quota"):
        await collect(_adapter(handler).stream(_request(), "sk-test"))


@pytest.mark.asyncio
async def test_stream_upstream_error_event_ends_stream():
    body = sse_body(
        {"type": "response.output_text.delta", "delta": "partial"},
        {"type": "error", "message": "server exploded"},
        {"type": "response.output_text.delta", "delta": "ignored"},
    )

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=body)

    events = await collect(_adapter(handler).stream(_request(), "sk-test"))

    assert events == [TextDelta("partial"), ErrorEvent("server exploded"), DONE]


@pytest.mark.asyncio
async def test_stream_malformed_payload_raises_translation_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=sse_body("{not json"))

    with pytest.raises(StreamTranslationError):
        await collect(_adapter(handler).stream(_request(), "sk-test"))
