"""Google Gemini ``generateContent`` adapter."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any
from urllib.parse import quote

from ..constants import PROVIDER_DISPLAY_NAMES, PROVIDER_GEMINI
from ..domain.chat import ChatMessage, ChatRequest, ChatResponse, TextPart, Usage
from ..domain.events import ErrorEvent, SourcesEvent, StreamEvent, TextDelta, ThinkingDelta, UsageEvent
from .base import ProviderAdapter
from .catalog import gemini_supports_thinking, thinking_budget
from .citations import SourceCollector, normalize_sources
from .http import SSEEvent, as_int, decode_event_data, dig
from .tools import web_search_payload


def _usage_from_metadata(raw: Any) -> Usage | None:
    if not isinstance(raw, dict):
        return None
    return Usage(
        input_tokens=as_int(raw.get("promptTokenCount")),
        output_tokens=as_int(raw.get("candidatesTokenCount")),
        reasoning_tokens=as_int(raw.get("thoughtsTokenCount")),
        total_tokens=as_int(raw.get("totalTokenCount")),
    )


def _grounding_sources(candidate: Any) -> list[dict[str, Any]]:
    chunks = dig(candidate, "groundingMetadata", "groundingChunks")
    if not isinstance(chunks, list):
        return []
    return [c["web"] for c in chunks if isinstance(c, dict) and isinstance(c.get("web"), dict)]


def _candidate_parts(candidate: Any) -> list[dict[str, Any]]:
    parts = dig(candidate, "content", "parts")
    if not isinstance(parts, list):
        return []
    return [p for p in parts if isinstance(p, dict)]


class GeminiAdapter(ProviderAdapter):
    """Gemini ``models/<model>:generateContent`` and ``:streamGenerateContent``.

    ``assistant`` maps to role ``model``; system text is hoisted into
    ``systemInstruction``; thinking goes under
    ``generationConfig.thinkingConfig``.
    """

    provider_id = PROVIDER_GEMINI
    display_name = PROVIDER_DISPLAY_NAMES[PROVIDER_GEMINI]
    default_base_url = "https://generativelanguage.googleapis.com/v1beta"

    def endpoint(self, request: ChatRequest, base_url: str, *, stream: bool) -> str:
        model = quote(request.model, safe="")
        if stream:
            return f"{base_url}/models/{model}:streamGenerateContent?alt=sse"
        return f"{base_url}/models/{model}:generateContent"

    def build_headers(self, api_key: str | None) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-goog-api-key": api_key or "",
        }

    @staticmethod
    def format_message(message: ChatMessage) -> dict[str, Any]:
        parts: list[dict[str, Any]] = []
        for part in message.parts:
            if isinstance(part, TextPart):
                parts.append({"text": part.text})
                continue
            inline = part.split_data_url()
            if inline is not None:
                mime_type, data = inline
                parts.append({"inline_data": {"mime_type": mime_type, "data": data}})
            else:
                parts.append({"file_data": {"file_uri": part.url}})
        if not parts:
            parts.append({"text": ""})
        role = "model" if message.role == "assistant" else "user"
        return {"role": role, "parts": parts}

    def build_body(self, request: ChatRequest, *, stream: bool) -> dict[str, Any]:
        body: dict[str, Any] = {
            "contents": [self.format_message(m) for m in request.conversation],
        }
        if request.system_text:
            body["systemInstruction"] = {"parts": [{"text": request.system_text}]}

        generation: dict[str, Any] = {}
        if request.temperature is not None:
            generation["temperature"] = request.temperature
        if request.max_output_tokens is not None:
            generation["maxOutputTokens"] = request.max_output_tokens
        if gemini_supports_thinking(request.model):
            budget = thinking_budget(request.reasoning_effort)
            if budget is not None:
                generation["thinkingConfig"] = {
                    "thinkingBudget": budget,
                    "includeThoughts": True,
                }
        if generation:
            body["generationConfig"] = generation

        if request.web_search:
            body["tools"] = web_search_payload("gemini")
        return body

    def parse_response(self, payload: dict[str, Any]) -> ChatResponse:
        candidate = dig(payload, "candidates", 0)
        text_parts: list[str] = []
        thinking_parts: list[str] = []
        for part in _candidate_parts(candidate):
            text = part.get("text")
            if not isinstance(text, str):
                continue
            (thinking_parts if part.get("thought") else text_parts).append(text)

        model = payload.get("modelVersion")
        return ChatResponse(
            text="".join(text_parts),
            usage=_usage_from_metadata(payload.get("usageMetadata")),
            sources=normalize_sources(_grounding_sources(candidate)),
            thinking="".join(thinking_parts),
            model=model if isinstance(model, str) else None,
        )

    async def translate_stream(self, events: AsyncIterator[SSEEvent]) -> AsyncIterator[StreamEvent]:
        sources = SourceCollector()
        usage: Usage | None = None

        async for sse in events:
            data = decode_event_data(sse.data, self.provider_id)
            if "error" in data:
                message = dig(data, "error", "message")
                yield ErrorEvent(str(message or "Gemini stream error"))
                return
            block_reason = dig(data, "promptFeedback", "blockReason")
            if block_reason:
                yield ErrorEvent(f"Prompt blocked by Gemini: {block_reason}")
                return

            candidate = dig(data, "candidates", 0)
            for part in _candidate_parts(candidate):
                text = part.get("text")
                if not isinstance(text, str) or not text:
                    continue
                yield ThinkingDelta(text) if part.get("thought") else TextDelta(text)
            sources.extend(_grounding_sources(candidate))
            usage = _usage_from_metadata(data.get("usageMetadata")) or usage

        collected = sources.collect()
        if collected:
            yield SourcesEvent(tuple(collected))
        if usage is not None and not usage.is_empty:
            yield UsageEvent.from_usage(usage)
