"""Model capability and context-limit lookups.

Official documentation for model verification:
- OpenAI: https://platform.openai.com/docs/models
- Anthropic: https://docs.anthropic.com/en/docs/about-claude/models/overview
- Gemini: https://ai.google.dev/gemini-api/docs/models
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Optional

DEFAULT_CONTEXT_LIMIT = 168_000

DEFAULT_ANTHROPIC_MAX_OUTPUT_TOKENS = 4096

# Context windows keyed by model prefix; the longest matching prefix wins.
MODEL_CONTEXT_LIMITS: dict[str, int] = {
    "gpt-5": 400_000,
    "gpt-4.1": 1_047_576,
    "gpt-4o": 128_000,
    "o3": 200_000,
    "o4-mini": 200_000,
    "claude-opus-4": 200_000,
    "claude-sonnet-4": 200_000,
    "claude-haiku-4": 200_000,
    "claude-3-7-sonnet": 200_000,
    "gemini-2.5": 1_048_576,
    "gemini-3": 1_048_576,
}

# Thinking budgets (tokens) for providers that take a budget, not an effort.
THINKING_BUDGETS: dict[str, int] = {
    "minimal": 1024,
    "low": 2048,
    "medium": 8192,
    "high": 16384,
    "xhigh": 32000,
}

_OPENAI_REASONING_PREFIXES = ("gpt-5", "o1", "o3", "o4")
_OPENAI_VERBOSITY_PREFIXES = ("gpt-5",)
_ANTHROPIC_THINKING_PREFIXES = (
    "claude-opus-4",
    "claude-sonnet-4",
    "claude-haiku-4-5",
    "claude-3-7-sonnet",
)
_GEMINI_THINKING_PREFIXES = ("gemini-2.5", "gemini-3")


def _matches(model: str, prefixes: tuple[str, ...]) -> bool:
    return model.strip().lower().startswith(prefixes)


def openai_supports_reasoning(model: str) -> bool:
    return _matches(model, _OPENAI_REASONING_PREFIXES)


def openai_supports_verbosity(model: str) -> bool:
    return _matches(model, _OPENAI_VERBOSITY_PREFIXES)


def anthropic_supports_thinking(model: str) -> bool:
    return _matches(model, _ANTHROPIC_THINKING_PREFIXES)


def gemini_supports_thinking(model: str) -> bool:
    return _matches(model, _GEMINI_THINKING_PREFIXES)


def thinking_budget(effort: Optional[str]) -> int | None:
    """Return the token budget for an effort level, or None to disable."""
    if not effort:
        return None
    return THINKING_BUDGETS.get(effort)


def context_limit_for(
    model: str,
    overrides: Mapping[str, int] | None = None,
    default: int = DEFAULT_CONTEXT_LIMIT,
) -> int:
    """Return the context window for ``model``.

    ``overrides`` take precedence over the built-in table; both match by
    exact name first, then by longest prefix.
    """
    name = model.strip().lower()
    for table in (overrides or {}, MODEL_CONTEXT_LIMITS):
        if name in table:
            return table[name]
        best = max((p for p in table if name.startswith(p)), key=len, default=None)
        if best is not None:
            return table[best]
    return default
