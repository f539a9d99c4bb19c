"""Context window management."""

from .window import (
    CompressionSplit,
    ContextWindow,
    ContextWindowManager,
    Summarizer,
)

__all__ = ["CompressionSplit", "ContextWindow", "ContextWindowManager", "Summarizer"]
