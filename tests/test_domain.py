"""Tests for typed domain models and model catalog lookups."""

import pytest

from llmkv.ai.catalog import (
    anthropic_supports_thinking,
    context_limit_for,
    gemini_supports_thinking,
    openai_supports_reasoning,
    thinking_budget,
)
from llmkv.ai.registry import build_registry
from llmkv.domain import (
    ChatMessage,
    ChatRequest,
    ChatResponse,
    CompareResult,
    CompareTarget,
    CredentialRecord,
    ImagePart,
    Source,
    TextPart,
    Usage,
    event_from_wire,
)
from llmkv.domain.events import DONE, ErrorEvent, SourcesEvent, TextDelta, UsageEvent
from llmkv.errors import InvalidRequestError
from test_helpers import FakeAdapter


def test_message_from_dict_with_parts():
    message = ChatMessage.from_dict(
        {
            "role": "user",
            "content": [
                {"type": "text", "text": "look"},
                {"type": "image_url", "image_url": {"url": "https://example.com/i.png"}},
            ],
        }
    )
    assert message.text == "look"
    assert message.images == ["https://example.com/i.png"]
    assert message.to_dict()["content"][1] == {
        "type": "image_url",
        "image_url": {"url": "https://example.com/i.png"},
    }


def test_message_rejects_bad_role_and_parts():
    with pytest.raises(InvalidRequestError):
        ChatMessage("tool", "x")
    with pytest.raises(InvalidRequestError):
        ChatMessage.user([{"type": "audio"}])


def test_split_data_url():
    assert ImagePart("data:image/png;base64,AAAA").split_data_url() == ("image/png", "AAAA")
    assert ImagePart("data:text/plain,hello").split_data_url() is None
    assert ImagePart("https://example.com/x.png").split_data_url() is None


def test_request_validation():
    with pytest.raises(InvalidRequestError):
        ChatRequest(provider="openai", model="m", messages=())
    with pytest.raises(InvalidRequestError):
        ChatRequest(provider="openai", model="", messages=(ChatMessage.user("x"),))
    with pytest.raises(InvalidRequestError):
        ChatRequest(provider="openai", model="m", messages=(ChatMessage.user("x"),), reasoning_effort="max")
    with pytest.raises(InvalidRequestError):
        ChatRequest(provider="openai", model="m", messages=(ChatMessage.user("x"),), max_output_tokens=0)


def test_request_accepts_dict_messages_and_splits_system():
    request = ChatRequest(
        provider="openai",
        model="m",
        messages=(
            {"role": "system", "content": "a"},
            {"role": "system", "content": "b"},
            {"role": "user", "content": [TextPart("hi")]},
        ),
    )
    assert request.system_text == "a\n\nb"
    assert [m.role for m in request.conversation] == ["user"]


def test_response_to_dict_omits_empty_fields():
    assert ChatResponse(text="x").to_dict() == {"text": "x"}
    payload = ChatResponse(
        text="x",
        usage=Usage(input_tokens=1, output_tokens=2),
        sources=[Source("A", "https://a.example")],
    ).to_dict()
    assert payload["usage"] == {"inputTokens": 1, "outputTokens": 2}
    assert payload["sources"] == [{"title": "A", "url": "https://a.example"}]


def test_event_wire_round_trip_for_each_kind():
    for event in (
        TextDelta("t"),
        ErrorEvent("e"),
        SourcesEvent((Source("A", "https://a.example"),)),
        UsageEvent(input_tokens=1, reasoning_tokens=4),
        DONE,
    ):
        assert event_from_wire(event.to_wire()) == event
    with pytest.raises(ValueError):
        event_from_wire({"type": "mystery"})


def test_compare_target_parse():
    assert CompareTarget.parse("OpenRouter:meta/llama:free") == CompareTarget("openrouter", "meta/llama:free")
    with pytest.raises(InvalidRequestError):
        CompareTarget.parse("openai:")


def test_compare_result_to_dict():
    target = CompareTarget("openai", "gpt-4o")
    assert CompareResult.failure(target, "nope", "upstream_error").to_dict() == {
        "provider": "openai",
        "model": "gpt-4o",
        "ok": False,
        "error": "nope",
    }
    assert CompareResult.success(target, ChatResponse(text="hi")).to_dict()["result"] == {"text": "hi"}


def test_credential_record_from_dict_validates():
    with pytest.raises(ValueError, match="missing fields"):
        CredentialRecord.from_dict({"user_id": "u"})
    with pytest.raises(ValueError):
        CredentialRecord.from_dict([])


def test_catalog_capabilities():
    assert openai_supports_reasoning("GPT-5-mini")
    assert not openai_supports_reasoning("gpt-4o")
    assert anthropic_supports_thinking("claude-opus-4-1")
    assert not anthropic_supports_thinking("claude-3-5-haiku-latest")
    assert gemini_supports_thinking("gemini-2.5-pro")
    assert thinking_budget("medium") == 8192
    assert thinking_budget("none") is None
    assert thinking_budget(None) is None


def test_context_limit_prefers_longest_prefix_and_overrides():
    assert context_limit_for("gpt-4o-mini") == 128_000
    assert context_limit_for("gpt-4.1-nano") == 1_047_576
    assert context_limit_for("gpt-4o-mini", {"gpt-4o": 64_000}) == 64_000
    assert context_limit_for("mystery", default=1234) == 1234


def test_registry_rejects_duplicates():
    with pytest.raises(ValueError, match="Duplicate"):
        build_registry([FakeAdapter(), FakeAdapter()])
    registry = build_registry([FakeAdapter(provider_id="a")])
    with pytest.raises(TypeError):
        registry["b"] = FakeAdapter()  # type: ignore[index]
