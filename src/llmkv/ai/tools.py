"""Web search request fragments, one per provider.

Adapters ask for a fresh copy so request bodies never share mutable state.
"""

from __future__ import annotations

import copy
from typing import Any

# Responses API tool list (OpenAI), dated server tool (Anthropic), Google
# Search grounding (Gemini), and OpenRouter's request-level ``web`` plugin.
_WEB_SEARCH: dict[str, list[dict[str, Any]]] = {
    "openai": [{"type": "web_search"}],
    "anthropic": [{"type": "web_search_20250305", "name": "web_search"}],
    "gemini": [{"google_search": {}}],
    "openrouter": [{"id": "web"}],
}


def web_search_payload(provider: str) -> list[dict[str, Any]]:
    """Return the ``tools`` (or ``plugins``) list enabling web search.

    Raises:
        KeyError: ``provider`` has no native web search.
    """
    return copy.deepcopy(_WEB_SEARCH[provider])
