"""OpenAI-compatible Chat Completions adapters (OpenRouter, Ollama)."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

from ..constants import (
    PROVIDER_DISPLAY_NAMES,
    PROVIDER_OLLAMA,
    PROVIDER_OPENROUTER,
    SSE_DONE_SENTINEL,
)
from ..domain.chat import ChatMessage, ChatRequest, ChatResponse, ImagePart, TextPart, Usage
from ..domain.events import ErrorEvent, SourcesEvent, StreamEvent, TextDelta, ThinkingDelta, UsageEvent
from .base import ProviderAdapter
from .citations import SourceCollector, normalize_sources
from .http import SSEEvent, as_int, decode_event_data, dig
from .tools import web_search_payload


def _usage_from_payload(raw: Any) -> Usage | None:
    if not isinstance(raw, dict):
        return None
    return Usage(
        input_tokens=as_int(raw.get("prompt_tokens")),
        output_tokens=as_int(raw.get("completion_tokens")),
        reasoning_tokens=as_int(dig(raw, "completion_tokens_details", "reasoning_tokens")),
        total_tokens=as_int(raw.get("total_tokens")),
    )


def _annotation_sources(annotations: Any) -> list[dict[str, Any]]:
    if not isinstance(annotations, list):
        return []
    found: list[dict[str, Any]] = []
    for annotation in annotations:
        if not isinstance(annotation, dict) or annotation.get("type") != "url_citation":
            continue
        # OpenRouter nests the citation; plain OpenAI-style annotations don't.
        citation = annotation.get("url_citation")
        found.append(citation if isinstance(citation, dict) else annotation)
    return found


def _reasoning_text(container: Any) -> str | None:
    if not isinstance(container, dict):
        return None
    for key in ("reasoning", "reasoning_content"):
        value = container.get(key)
        if isinstance(value, str) and value:
            return value
    return None


class ChatCompletionsAdapter(ProviderAdapter):
    """Shared ``/chat/completions`` protocol; subclasses add request extras."""

    def endpoint(self, request: ChatRequest, base_url: str, *, stream: bool) -> str:
        return f"{base_url}/chat/completions"

    def build_headers(self, api_key: str | None) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        return headers

    @staticmethod
    def format_message(message: ChatMessage) -> dict[str, Any]:
        if not message.has_images:
            return {"role": message.role, "content": message.text}
        content: list[dict[str, Any]] = []
        for part in message.parts:
            if isinstance(part, TextPart):
                content.append({"type": "text", "text": part.text})
            elif isinstance(part, ImagePart):
                content.append({"type": "image_url", "image_url": {"url": part.url}})
        return {"role": message.role, "content": content}

    def extra_body(self, request: ChatRequest) -> dict[str, Any]:
        """Provider-specific request fields."""
        return {}

    def build_body(self, request: ChatRequest, *, stream: bool) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": request.model,
            "messages": [self.format_message(m) for m in request.messages],
        }
        if request.temperature is not None:
            body["temperature"] = request.temperature
        if request.max_output_tokens is not None:
            body["max_tokens"] = request.max_output_tokens
        body.update(self.extra_body(request))
        if stream:
            body["stream"] = True
            body["stream_options"] = {"include_usage": True}
        return body

    def parse_response(self, payload: dict[str, Any]) -> ChatResponse:
        message = dig(payload, "choices", 0, "message")
        content = dig(message, "content")
        model = payload.get("model")
        return ChatResponse(
            text=content if isinstance(content, str) else "",
            usage=_usage_from_payload(payload.get("usage")),
            sources=normalize_sources(_annotation_sources(dig(message, "annotations"))),
            thinking=_reasoning_text(message) or "",
            model=model if isinstance(model, str) else None,
        )

    async def translate_stream(self, events: AsyncIterator[SSEEvent]) -> AsyncIterator[StreamEvent]:
        sources = SourceCollector()
        usage: Usage | None = None

        async for sse in events:
            if sse.data.strip() == SSE_DONE_SENTINEL:
                break
            data = decode_event_data(sse.data, self.provider_id)
            if "error" in data:
                message = dig(data, "error", "message") or data.get("error")
                yield ErrorEvent(str(message or f"{self.display_name} stream error"))
                return

            delta = dig(data, "choices", 0, "delta")
            if isinstance(delta, dict):
                reasoning = _reasoning_text(delta)
                if reasoning:
                    yield ThinkingDelta(reasoning)
                content = delta.get("content")
                if isinstance(content, str) and content:
                    yield TextDelta(content)
                sources.extend(_annotation_sources(delta.get("annotations")))
            usage = _usage_from_payload(data.get("usage")) or usage

        collected = sources.collect()
        if collected:
            yield SourcesEvent(tuple(collected))
        if usage is not None and not usage.is_empty:
            yield UsageEvent.from_usage(usage)


class OpenRouterAdapter(ChatCompletionsAdapter):
    """OpenRouter: nests ``reasoning.effort``; web search is the ``web`` plugin."""

    provider_id = PROVIDER_OPENROUTER
    display_name = PROVIDER_DISPLAY_NAMES[PROVIDER_OPENROUTER]
    default_base_url = "https://openrouter.ai/api/v1"

    def extra_body(self, request: ChatRequest) -> dict[str, Any]:
        extra: dict[str, Any] = {}
        if request.reasoning_effort:
            extra["reasoning"] = {"effort": request.reasoning_effort}
        if request.verbosity:
            extra["verbosity"] = request.verbosity
        if request.web_search:
            extra["plugins"] = web_search_payload("openrouter")
        return extra


class OllamaAdapter(ChatCompletionsAdapter):
    """Local Ollama through its OpenAI-compatible endpoint; no key required."""

    provider_id = PROVIDER_OLLAMA
    display_name = PROVIDER_DISPLAY_NAMES[PROVIDER_OLLAMA]
    default_base_url = "http://localhost:11434/v1"
    requires_credential = False

    def extra_body(self, request: ChatRequest) -> dict[str, Any]:
        if request.reasoning_effort and request.reasoning_effort != "none":
            return {"reasoning_effort": request.reasoning_effort}
        return {}
