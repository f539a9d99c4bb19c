"""Context window estimation and history compression."""

from __future__ import annotations

import logging
import math
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass

from ..ai.catalog import DEFAULT_CONTEXT_LIMIT, context_limit_for
from ..domain.chat import ChatMessage
from ..errors import SummarizationFailure
from ..logging import log_event, sanitize_error_message

DEFAULT_THRESHOLD_RATIO = 0.8
DEFAULT_CHARS_PER_TOKEN = 4
DEFAULT_IMAGE_TOKEN_SURCHARGE = 200
DEFAULT_KEEP_LAST_N = 3
SUMMARY_MAX_WORDS = 300

Summarizer = Callable[[str], Awaitable[str]]

_SUMMARY_PROMPT = (
    "Summarize the following conversation in at most {max_words} words. "
    "Preserve the key points, the user's requests and any important context. "
    "Output only the summary with no other commentary.\n\n"
    "Conversation:\n{conversation}"
)

_SUMMARY_MESSAGE = (
    "[Summary of earlier conversation]\n{summary}\n\n"
    "The above summarizes the earlier conversation. "
    "Use it as context when continuing."
)


@dataclass(slots=True, frozen=True)
class CompressionSplit:
    to_summarize: tuple[ChatMessage, ...]
    to_keep: tuple[ChatMessage, ...]


@dataclass(slots=True, frozen=True)
class ContextWindow:
    """Messages ready to send, with their estimated size."""

    messages: tuple[ChatMessage, ...]
    estimated_tokens: int
    compressed: bool = False


class ContextWindowManager:
    """Decides when history must be compressed and rebuilds it with a summary.

    Estimation is a heuristic (``ceil(chars / chars_per_token)`` plus a fixed
    surcharge per image), not tokenizer parity.
    """

    def __init__(
        self,
        *,
        threshold_ratio: float = DEFAULT_THRESHOLD_RATIO,
        chars_per_token: int = DEFAULT_CHARS_PER_TOKEN,
        image_token_surcharge: int = DEFAULT_IMAGE_TOKEN_SURCHARGE,
        keep_last_n: int = DEFAULT_KEEP_LAST_N,
        model_limits: Mapping[str, int] | None = None,
        default_limit: int = DEFAULT_CONTEXT_LIMIT,
    ) -> None:
        if not 0 < threshold_ratio <= 1:
            raise ValueError("threshold_ratio must be in (0, 1]")
        if chars_per_token <= 0:
            raise ValueError("chars_per_token must be positive")
        if image_token_surcharge < 0 or keep_last_n < 0:
            raise ValueError("image_token_surcharge and keep_last_n must be non-negative")
        self.threshold_ratio = threshold_ratio
        self.chars_per_token = chars_per_token
        self.image_token_surcharge = image_token_surcharge
        self.keep_last_n = keep_last_n
        self.model_limits = {k.lower(): v for k, v in (model_limits or {}).items()}
        self.default_limit = default_limit

    def estimate_message_tokens(self, message: ChatMessage) -> int:
        text = message.text
        tokens = math.ceil(len(text) / self.chars_per_token) if text else 0
        return tokens + len(message.images) * self.image_token_surcharge

    def estimate_tokens(self, messages: Sequence[ChatMessage]) -> int:
        return sum(self.estimate_message_tokens(m) for m in messages)

    def context_limit(self, model: str) -> int:
        return context_limit_for(model, self.model_limits, self.default_limit)

    def threshold(self, model_limit: int) -> int:
        return math.floor(model_limit * self.threshold_ratio)

    def needs_compression(self, messages: Sequence[ChatMessage], model_limit: int) -> bool:
        return self.estimate_tokens(messages) >= self.threshold(model_limit)

    def compress(
        self, messages: Sequence[ChatMessage], keep_last_n: int | None = None
    ) -> CompressionSplit:
        """Split history into an older part to summarize and a recent tail."""
        keep = self.keep_last_n if keep_last_n is None else keep_last_n
        if keep < 0:
            raise ValueError("keep_last_n must be non-negative")
        if len(messages) <= keep:
            return CompressionSplit((), tuple(messages))
        cut = len(messages) - keep
        return CompressionSplit(tuple(messages[:cut]), tuple(messages[cut:]))

    @staticmethod
    def build_summary_prompt(messages: Sequence[ChatMessage]) -> str:
        conversation = "\n\n".join(
            f"{'User' if m.role == 'user' else 'AI'}: {m.text}"
            for m in messages
            if m.role != "system"
        )
        return _SUMMARY_PROMPT.format(max_words=SUMMARY_MAX_WORDS, conversation=conversation)

    @staticmethod
    def rebuild(
        summary: str,
        to_keep: Sequence[ChatMessage],
    ) -> list[ChatMessage]:
        """Return ``[summary system message, *to_keep]``."""
        summary_message = ChatMessage.system(_SUMMARY_MESSAGE.format(summary=summary.strip()))
        return [summary_message, *to_keep]

    async def prepare(
        self,
        messages: Sequence[ChatMessage],
        model: str,
        summarize: Summarizer,
    ) -> ContextWindow:
        """Compress ``messages`` when they cross the model's threshold.

        Summarization failures never propagate: the original messages are
        returned unchanged and ``context_compression_failed`` is logged.
        """
        original = tuple(messages)
        estimated = self.estimate_tokens(original)
        limit = self.context_limit(model)
        if estimated < self.threshold(limit):
            return ContextWindow(original, estimated)

        split = self.compress(original)
        if not split.to_summarize:
            return ContextWindow(original, estimated)

        try:
            summary = await summarize(self.build_summary_prompt(split.to_summarize))
            if not summary or not summary.strip():
                raise SummarizationFailure("Summarizer returned empty text")
        except Exception as e:
            log_event(
                "context_compression_failed",
                level=logging.WARNING,
                model=model,
                message_count=len(original),
                estimated_tokens=estimated,
                error_type=type(e).__name__,
                error=sanitize_error_message(str(e)),
            )
            return ContextWindow(original, estimated)

        # System messages in the summarized region are replaced by the summary too.
        rebuilt = tuple(self.rebuild(summary, split.to_keep))
        rebuilt_tokens = self.estimate_tokens(rebuilt)
        log_event(
            "context_compressed",
            model=model,
            context_limit=limit,
            before_messages=len(original),
            after_messages=len(rebuilt),
            before_tokens=estimated,
            after_tokens=rebuilt_tokens,
        )
        return ContextWindow(rebuilt, rebuilt_tokens, compressed=True)
