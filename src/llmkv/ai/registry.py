"""Adapter registry construction."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from types import MappingProxyType

import httpx

from ..timeouts import DEFAULT_TIMEOUT_SEC, STANDARD_RETRY_ATTEMPTS
from .anthropic_provider import AnthropicAdapter
from .base import ProviderAdapter
from .chat_completions_provider import OllamaAdapter, OpenRouterAdapter
from .gemini_provider import GeminiAdapter
from .openai_provider import OpenAIAdapter

ADAPTER_CLASSES: tuple[type[ProviderAdapter], ...] = (
    OpenAIAdapter,
    AnthropicAdapter,
    GeminiAdapter,
    OpenRouterAdapter,
    OllamaAdapter,
)


def default_adapters(
    *,
    client: httpx.AsyncClient | None = None,
    timeout: float = DEFAULT_TIMEOUT_SEC,
    max_attempts: int = STANDARD_RETRY_ATTEMPTS,
    base_urls: Mapping[str, str] | None = None,
) -> list[ProviderAdapter]:
    """Instantiate every built-in adapter with shared transport settings."""
    overrides = base_urls or {}
    return [
        cls(
            client=client,
            timeout=timeout,
            max_attempts=max_attempts,
            base_url=overrides.get(cls.provider_id),
        )
        for cls in ADAPTER_CLASSES
    ]


def build_registry(adapters: Iterable[ProviderAdapter]) -> Mapping[str, ProviderAdapter]:
    """Return a read-only provider id -> adapter mapping."""
    registry: dict[str, ProviderAdapter] = {}
    for adapter in adapters:
        if adapter.provider_id in registry:
            raise ValueError(f"Duplicate adapter for provider: {adapter.provider_id}")
        registry[adapter.provider_id] = adapter
    return MappingProxyType(registry)
