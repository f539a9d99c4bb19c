"""Anthropic Messages API adapter."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

from ..constants import PROVIDER_ANTHROPIC, PROVIDER_DISPLAY_NAMES
from ..domain.chat import ChatMessage, ChatRequest, ChatResponse, ImagePart, TextPart, Usage
from ..domain.events import ErrorEvent, SourcesEvent, StreamEvent, TextDelta, ThinkingDelta, UsageEvent
from .base import ProviderAdapter
from .catalog import (
    DEFAULT_ANTHROPIC_MAX_OUTPUT_TOKENS,
    anthropic_supports_thinking,
    thinking_budget,
)
from .citations import SourceCollector, normalize_sources
from .http import SSEEvent, as_int, decode_event_data, dig
from .provider_logging import log_provider_warning
from .tools import web_search_payload

ANTHROPIC_VERSION = "2023-06-01"


def _image_block(part: ImagePart) -> dict[str, Any]:
    inline = part.split_data_url()
    if inline is not None:
        media_type, data = inline
        return {
            "type": "image",
            "source": {"type": "base64", "media_type": media_type, "data": data},
        }
    return {"type": "image", "source": {"type": "url", "url": part.url}}


def _search_results(block: Any) -> list[dict[str, Any]]:
    """Sources from a ``web_search_tool_result`` content block."""
    if not isinstance(block, dict) or block.get("type") != "web_search_tool_result":
        return []
    content = block.get("content")
    if not isinstance(content, list):
        return []
    return [r for r in content if isinstance(r, dict) and r.get("type") == "web_search_result"]


class AnthropicAdapter(ProviderAdapter):
    """Anthropic ``/v1/messages``.

    System messages are hoisted into top-level ``system`` (joined by blank
    lines). ``max_tokens`` is always sent. Temperature is dropped while
    extended thinking is enabled.
    """

    provider_id = PROVIDER_ANTHROPIC
    display_name = PROVIDER_DISPLAY_NAMES[PROVIDER_ANTHROPIC]
    default_base_url = "https://api.anthropic.com/v1"

    def endpoint(self, request: ChatRequest, base_url: str, *, stream: bool) -> str:
        return f"{base_url}/messages"

    def build_headers(self, api_key: str | None) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": api_key or "",
            "anthropic-version": ANTHROPIC_VERSION,
        }

    @staticmethod
    def format_message(message: ChatMessage) -> dict[str, Any]:
        role = "assistant" if message.role == "assistant" else "user"
        if not message.has_images:
            return {"role": role, "content": message.text}
        blocks: list[dict[str, Any]] = []
        for part in message.parts:
            if isinstance(part, TextPart):
                if part.text:
                    blocks.append({"type": "text", "text": part.text})
            else:
                blocks.append(_image_block(part))
        return {"role": role, "content": blocks}

    def build_body(self, request: ChatRequest, *, stream: bool) -> dict[str, Any]:
        max_tokens = request.max_output_tokens or DEFAULT_ANTHROPIC_MAX_OUTPUT_TOKENS
        body: dict[str, Any] = {
            "model": request.model,
            "messages": [self.format_message(m) for m in request.conversation],
        }
        if request.system_text:
            body["system"] = request.system_text

        budget = None
        if anthropic_supports_thinking(request.model):
            budget = thinking_budget(request.reasoning_effort)
        if budget is not None:
            # budget_tokens must stay below max_tokens.
            max_tokens = max(max_tokens, budget + DEFAULT_ANTHROPIC_MAX_OUTPUT_TOKENS)
            body["thinking"] = {"type": "enabled", "budget_tokens": budget}
        elif request.temperature is not None:
            body["temperature"] = request.temperature
        body["max_tokens"] = max_tokens

        if request.web_search:
            body["tools"] = web_search_payload("anthropic")
        if stream:
            body["stream"] = True
        return body

    def parse_response(self, payload: dict[str, Any]) -> ChatResponse:
        text_parts: list[str] = []
        thinking_parts: list[str] = []
        citations: list[Any] = []

        content = payload.get("content")
        for block in content if isinstance(content, list) else []:
            if not isinstance(block, dict):
                continue
            block_type = block.get("type")
            if block_type == "text":
                text_parts.append(str(block.get("text") or ""))
                citations.extend(block.get("citations") or [])
            elif block_type == "thinking":
                thinking_parts.append(str(block.get("thinking") or ""))
            else:
                citations.extend(_search_results(block))

        if payload.get("stop_reason") == "max_tokens":
            log_provider_warning(self.provider_id, "Response truncated due to max_tokens limit")

        raw_usage = payload.get("usage")
        usage = None
        if isinstance(raw_usage, dict):
            input_tokens = as_int(raw_usage.get("input_tokens"))
            output_tokens = as_int(raw_usage.get("output_tokens"))
            total = (
                input_tokens + output_tokens
                if input_tokens is not None and output_tokens is not None
                else None
            )
            usage = Usage(input_tokens=input_tokens, output_tokens=output_tokens, total_tokens=total)

        return ChatResponse(
            text="".join(text_parts),
            usage=usage,
            sources=normalize_sources(citations),
            thinking="".join(thinking_parts),
            model=payload.get("model") if isinstance(payload.get("model"), str) else None,
        )

    async def translate_stream(self, events: AsyncIterator[SSEEvent]) -> AsyncIterator[StreamEvent]:
        sources = SourceCollector()
        input_tokens: int | None = None
        output_tokens: int | None = None

        async for sse in events:
            data = decode_event_data(sse.data, self.provider_id)
            event_type = data.get("type") or sse.event

            if event_type == "message_start":
                input_tokens = as_int(dig(data, "message", "usage", "input_tokens"))
                output_tokens = as_int(dig(data, "message", "usage", "output_tokens"))
            elif event_type == "content_block_start":
                sources.extend(_search_results(data.get("content_block")))
            elif event_type == "content_block_delta":
                delta = data.get("delta")
                if not isinstance(delta, dict):
                    continue
                delta_type = delta.get("type")
                if delta_type == "text_delta" and delta.get("text"):
                    yield TextDelta(str(delta["text"]))
                elif delta_type == "thinking_delta" and delta.get("thinking"):
                    yield ThinkingDelta(str(delta["thinking"]))
                elif delta_type == "citations_delta":
                    sources.add(delta.get("citation"))
            elif event_type == "message_delta":
                output_tokens = as_int(dig(data, "usage", "output_tokens")) or output_tokens
                if dig(data, "delta", "stop_reason") == "max_tokens":
                    log_provider_warning(
                        self.provider_id, "Response truncated due to max_tokens limit"
                    )
            elif event_type == "message_stop":
                break
            elif event_type == "error":
                message = dig(data, "error", "message")
                yield ErrorEvent(str(message or "Anthropic stream error"))
                return

        collected = sources.collect()
        if collected:
            yield SourcesEvent(tuple(collected))
        if input_tokens is not None or output_tokens is not None:
            yield UsageEvent(input_tokens=input_tokens, output_tokens=output_tokens)
