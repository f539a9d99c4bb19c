"""Tests for context window estimation and compression."""

import logging
from unittest.mock import AsyncMock, patch

import pytest

from llmkv.context import ContextWindowManager
from llmkv.domain.chat import ChatMessage, ImagePart, TextPart


def _history(count: int, text: str = "x" * 40) -> list[ChatMessage]:
    return [
        ChatMessage.user(f"{text}{i}") if i % 2 == 0 else ChatMessage.assistant(f"{text}{i}")
        for i in range(count)
    ]


def test_estimate_rounds_up_per_message():
    manager = ContextWindowManager()
    assert manager.estimate_message_tokens(ChatMessage.user("abcde")) == 2
    assert manager.estimate_message_tokens(ChatMessage.user("")) == 0
    assert manager.estimate_tokens([ChatMessage.user("abcd"), ChatMessage.user("a")]) == 2


def test_estimate_adds_image_surcharge():
    message = ChatMessage.user(
        [TextPart("abcd"), ImagePart("https://example.com/a.png"), ImagePart("data:image/png;base64,AAAA")]
    )
    assert ContextWindowManager().estimate_message_tokens(message) == 1 + 400
    assert ContextWindowManager(image_token_surcharge=10).estimate_message_tokens(message) == 21


def test_context_limit_lookup_and_overrides():
    manager = ContextWindowManager(model_limits={"My-Model": 1000})
    assert manager.context_limit("my-model") == 1000
    assert manager.context_limit("claude-sonnet-4-5") == 200_000
    assert manager.context_limit("unknown-model") == 168_000


def test_threshold_and_needs_compression():
    manager = ContextWindowManager()
    assert manager.threshold(1000) == 800
    assert manager.needs_compression([ChatMessage.user("x" * 3200)], 1000) is True
    assert manager.needs_compression([ChatMessage.user("x" * 3196)], 1000) is False


def test_compress_splits_tail():
    messages = _history(10)
    split = ContextWindowManager().compress(messages)
    assert split.to_summarize == tuple(messages[:7])
    assert split.to_keep == tuple(messages[7:])


def test_compress_short_history_keeps_everything():
    messages = _history(2)
    split = ContextWindowManager().compress(messages, keep_last_n=3)
    assert split.to_summarize == ()
    assert split.to_keep == tuple(messages)


def test_compress_rejects_negative_keep():
    with pytest.raises(ValueError):
        ContextWindowManager().compress(_history(3), keep_last_n=-1)


def test_rebuild_places_summary_before_kept_messages():
    kept = _history(3)
    rebuilt = ContextWindowManager.rebuild("short summary", kept)
    assert len(rebuilt) == 4
    assert rebuilt[0].role == "system"
    assert "short summary" in rebuilt[0].text
    assert rebuilt[1:] == kept


def test_summary_prompt_labels_roles_and_skips_system():
    prompt = ContextWindowManager.build_summary_prompt(
        [ChatMessage.system("be terse"), ChatMessage.user("hi"), ChatMessage.assistant("hello")]
    )
    assert "User: hi" in prompt
    assert "AI: hello" in prompt
    assert "be terse" not in prompt
    assert "300 words" in prompt


@pytest.mark.asyncio
async def test_prepare_under_threshold_is_untouched():
    summarize = AsyncMock(return_value="unused")
    messages = _history(4)
    window = await ContextWindowManager().prepare(messages, "gpt-5-mini", summarize)

    assert window.compressed is False
    assert window.messages == tuple(messages)
    summarize.assert_not_awaited()


@pytest.mark.asyncio
async def test_prepare_compresses_4000_messages_to_summary_plus_three():
    manager = ContextWindowManager(model_limits={"small-model": 10_000})
    messages = _history(4000)
    summarize = AsyncMock(return_value="the gist")

    with patch("llmkv.context.window.log_event") as mock_log_event:
        window = await manager.prepare(messages, "small-model", summarize)

    assert window.compressed is True
    assert len(window.messages) == 4
    assert "the gist" in window.messages[0].text
    assert window.messages[1:] == tuple(messages[-3:])
    summarize.assert_awaited_once()
    event, = mock_log_event.call_args.args
    assert event == "context_compressed"
    assert mock_log_event.call_args.kwargs["before_messages"] == 4000
    assert mock_log_event.call_args.kwargs["after_messages"] == 4


@pytest.mark.asyncio
async def test_prepare_replaces_summarized_system_message_with_summary():
    manager = ContextWindowManager(model_limits={"small-model": 100})
    messages = [ChatMessage.system("You are helpful."), *_history(4000)]

    window = await manager.prepare(messages, "small-model", AsyncMock(return_value="sum"))

    assert len(window.messages) == 4
    assert window.messages[0].role == "system"
    assert "sum" in window.messages[0].text
    assert ChatMessage.system("You are helpful.") not in window.messages
    assert window.messages[1:] == tuple(messages[-3:])


@pytest.mark.asyncio
@pytest.mark.parametrize("summarize", [AsyncMock(side_effect=RuntimeError("boom")), AsyncMock(return_value="  ")])
async def test_prepare_falls_back_when_summarization_fails(summarize):
    manager = ContextWindowManager(model_limits={"small-model": 100})
    messages = _history(20)

    with patch("llmkv.context.window.log_event") as mock_log_event:
        window = await manager.prepare(messages, "small-model", summarize)

    assert window.compressed is False
    assert window.messages == tuple(messages)
    assert mock_log_event.call_args.args == ("context_compression_failed",)
    assert mock_log_event.call_args.kwargs["level"] == logging.WARNING


def test_constructor_validates_parameters():
    with pytest.raises(ValueError):
        ContextWindowManager(threshold_ratio=0)
    with pytest.raises(ValueError):
        ContextWindowManager(keep_last_n=-1)
