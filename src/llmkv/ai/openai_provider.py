"""OpenAI Responses API adapter."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

from ..constants import PROVIDER_DISPLAY_NAMES, PROVIDER_OPENAI
from ..domain.chat import ChatMessage, ChatRequest, ChatResponse, ImagePart, TextPart, Usage
from ..domain.events import ErrorEvent, SourcesEvent, StreamEvent, TextDelta, ThinkingDelta, UsageEvent
from .base import ProviderAdapter
from .catalog import openai_supports_reasoning, openai_supports_verbosity
from .citations import SourceCollector, normalize_sources
from .http import SSEEvent, as_int, decode_event_data, dig
from .tools import web_search_payload


def _usage_from_payload(raw: Any) -> Usage | None:
    if not isinstance(raw, dict):
        return None
    return Usage(
        input_tokens=as_int(raw.get("input_tokens")),
        output_tokens=as_int(raw.get("output_tokens")),
        reasoning_tokens=as_int(dig(raw, "output_tokens_details", "reasoning_tokens")),
        total_tokens=as_int(raw.get("total_tokens")),
    )


def _citations_from_annotations(annotations: Any) -> list[dict[str, Any]]:
    if not isinstance(annotations, list):
        return []
    return [
        a for a in annotations if isinstance(a, dict) and a.get("type") == "url_citation"
    ]


class OpenAIAdapter(ProviderAdapter):
    """OpenAI ``/v1/responses``.

    System messages become top-level ``instructions``. ``reasoning.effort``
    and ``text.verbosity`` are only sent to model families that accept them.
    """

    provider_id = PROVIDER_OPENAI
    display_name = PROVIDER_DISPLAY_NAMES[PROVIDER_OPENAI]
    default_base_url = "https://api.openai.com/v1"

    def endpoint(self, request: ChatRequest, base_url: str, *, stream: bool) -> str:
        return f"{base_url}/responses"

    def build_headers(self, api_key: str | None) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
        }

    @staticmethod
    def format_message(message: ChatMessage) -> dict[str, Any]:
        if message.role == "assistant" or not message.has_images:
            return {"role": message.role, "content": message.text}
        content: list[dict[str, Any]] = []
        for part in message.parts:
            if isinstance(part, TextPart):
                content.append({"type": "input_text", "text": part.text})
            elif isinstance(part, ImagePart):
                content.append({"type": "input_image", "image_url": part.url})
        return {"role": message.role, "content": content}

    def build_body(self, request: ChatRequest, *, stream: bool) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": request.model,
            "input": [self.format_message(m) for m in request.conversation],
        }
        if request.system_text:
            body["instructions"] = request.system_text
        if request.max_output_tokens is not None:
            body["max_output_tokens"] = request.max_output_tokens

        reasoning_model = openai_supports_reasoning(request.model)
        if reasoning_model and request.reasoning_effort:
            body["reasoning"] = {"effort": request.reasoning_effort}
        if request.temperature is not None and not reasoning_model:
            body["temperature"] = request.temperature
        if request.verbosity and openai_supports_verbosity(request.model):
            body["text"] = {"verbosity": request.verbosity}

        if request.web_search:
            body["tools"] = web_search_payload("openai")
            body["tool_choice"] = "auto"
        if stream:
            body["stream"] = True
        return body

    def parse_response(self, payload: dict[str, Any]) -> ChatResponse:
        text_parts: list[str] = []
        thinking_parts: list[str] = []
        citations: list[dict[str, Any]] = []

        output = payload.get("output")
        for item in output if isinstance(output, list) else []:
            if not isinstance(item, dict):
                continue
            if item.get("type") == "message":
                for part in item.get("content") or []:
                    if isinstance(part, dict) and part.get("type") == "output_text":
                        text_parts.append(str(part.get("text") or ""))
                        citations.extend(_citations_from_annotations(part.get("annotations")))
            elif item.get("type") == "reasoning":
                for summary in item.get("summary") or []:
                    if isinstance(summary, dict) and isinstance(summary.get("text"), str):
                        thinking_parts.append(summary["text"])

        if not text_parts and isinstance(payload.get("output_text"), str):
            text_parts.append(payload["output_text"])

        return ChatResponse(
            text="".join(text_parts),
            usage=_usage_from_payload(payload.get("usage")),
            sources=normalize_sources(citations),
            thinking="\n\n".join(thinking_parts),
            model=payload.get("model") if isinstance(payload.get("model"), str) else None,
        )

    async def translate_stream(self, events: AsyncIterator[SSEEvent]) -> AsyncIterator[StreamEvent]:
        sources = SourceCollector()
        async for sse in events:
            data = decode_event_data(sse.data, self.provider_id)
            event_type = data.get("type") or sse.event

            if event_type == "response.output_text.delta":
                delta = data.get("delta")
                if isinstance(delta, str) and delta:
                    yield TextDelta(delta)
            elif event_type in (
                "response.reasoning_summary_text.delta",
                "response.reasoning_text.delta",
            ):
                delta = data.get("delta")
                if isinstance(delta, str) and delta:
                    yield ThinkingDelta(delta)
            elif event_type == "response.output_text.annotation.added":
                annotation = data.get("annotation")
                sources.extend(_citations_from_annotations([annotation]))
            elif event_type in ("response.completed", "response.incomplete"):
                response = data.get("response")
                for item in dig(response, "output") or []:
                    for part in dig(item, "content") or []:
                        sources.extend(_citations_from_annotations(dig(part, "annotations")))
                collected = sources.collect()
                if collected:
                    yield SourcesEvent(tuple(collected))
                usage = _usage_from_payload(dig(response, "usage"))
                if usage is not None and not usage.is_empty:
                    yield UsageEvent.from_usage(usage)
                return
            elif event_type == "response.failed":
                message = dig(data, "response", "error", "message")
                yield ErrorEvent(str(message or "OpenAI response failed"))
                return
            elif event_type == "error":
                message = data.get("message") or dig(data, "error", "message")
                yield ErrorEvent(str(message or "OpenAI stream error"))
                return
