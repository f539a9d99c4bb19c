"""Provider adapters normalizing upstream chat protocols."""

from .anthropic_provider import AnthropicAdapter
from .base import ProviderAdapter, is_retryable_error
from .chat_completions_provider import ChatCompletionsAdapter, OllamaAdapter, OpenRouterAdapter
from .gemini_provider import GeminiAdapter
from .openai_provider import OpenAIAdapter
from .registry import ADAPTER_CLASSES, build_registry, default_adapters

__all__ = [
    "ADAPTER_CLASSES",
    "AnthropicAdapter",
    "ChatCompletionsAdapter",
    "GeminiAdapter",
    "OllamaAdapter",
    "OpenAIAdapter",
    "OpenRouterAdapter",
    "ProviderAdapter",
    "build_registry",
    "default_adapters",
    "is_retryable_error",
]
