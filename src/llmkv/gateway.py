"""Provider gateway: credential lookup, context preparation, dispatch and fan-out.

This is the only layer that turns the typed error taxonomy into
user-facing shapes (``describe_error``).
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Iterable, Mapping
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any

import httpx

from .ai.base import ProviderAdapter
from .ai.registry import build_registry, default_adapters
from .config import GatewayConfig
from .context.window import ContextWindowManager, Summarizer
from .domain.chat import ChatMessage, ChatRequest, ChatResponse
from .domain.compare import CompareOptions, CompareResult, CompareTarget
from .domain.events import Done, ErrorEvent, StreamEvent, TextDelta, UsageEvent
from .errors import (
    CompareLimitError,
    ConfigError,
    CredentialNotFound,
    GatewayError,
    InvalidRequestError,
    MissingCredential,
    ProviderError,
    StorageError,
    StreamTranslationError,
    UnsupportedProvider,
    UpstreamAuthError,
    UpstreamConnectionError,
    UpstreamHTTPError,
    UpstreamRateLimitError,
    VaultConfigError,
)
from .logging import extract_http_error_context, log_event, sanitize_error_message
from .streaming.relay import AnswerSink, StreamRelay
from .vault.envelope import load_encryption_key
from .vault.stores import (
    CredentialStore,
    JsonFileCredentialStore,
    KeyringCredentialStore,
    MemoryCredentialStore,
)
from .vault.vault import SecretVault

SUMMARY_MAX_OUTPUT_TOKENS = 1000


@dataclass(slots=True, frozen=True)
class ErrorShape:
    """User-facing rendering of an error."""

    status: int
    code: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "code": self.code}


def describe_error(error: BaseException) -> ErrorShape:
    """Map an exception to an HTTP status, stable code, and safe message."""
    message = sanitize_error_message(str(error)) or type(error).__name__

    if isinstance(error, UnsupportedProvider):
        return ErrorShape(400, "unsupported_provider", message)
    if isinstance(error, MissingCredential):
        return ErrorShape(400, "missing_credential", message)
    if isinstance(error, CredentialNotFound):
        return ErrorShape(400, "missing_credential", f"Missing API key for provider: {error.provider}")
    if isinstance(error, CompareLimitError):
        return ErrorShape(400, "compare_limit", message)
    if isinstance(error, InvalidRequestError):
        return ErrorShape(400, "invalid_request", message)
    if isinstance(error, GatewayError):
        return ErrorShape(400, "gateway_error", message)
    if isinstance(error, UpstreamAuthError):
        return ErrorShape(502, "upstream_auth", message)
    if isinstance(error, UpstreamRateLimitError):
        return ErrorShape(429, "upstream_rate_limited", message)
    if isinstance(error, UpstreamHTTPError):
        return ErrorShape(502, "upstream_error", message)
    if isinstance(error, UpstreamConnectionError):
        return ErrorShape(502, "upstream_unreachable", message)
    if isinstance(error, StreamTranslationError):
        return ErrorShape(502, "upstream_protocol", message)
    if isinstance(error, ProviderError):
        return ErrorShape(502, "provider_error", message)
    if isinstance(error, VaultConfigError):
        return ErrorShape(500, "vault_misconfigured", "Credential vault is not configured")
    if isinstance(error, StorageError):
        return ErrorShape(500, "storage_error", "Credential storage is unavailable")
    if isinstance(error, ConfigError):
        return ErrorShape(500, "config_error", message)
    return ErrorShape(500, "internal_error", "Unexpected error")


def build_store(config: GatewayConfig) -> CredentialStore:
    if config.store == "memory":
        return MemoryCredentialStore()
    if config.store == "keyring":
        return KeyringCredentialStore(config.keyring_service)
    if config.store == "json":
        return JsonFileCredentialStore(config.resolved_store_path)
    raise ConfigError(f"Unknown credential store: {config.store}")


def _input_chars(request: ChatRequest) -> int:
    return sum(len(m.text) for m in request.messages)


class Gateway:
    """Routes chat requests to provider adapters using vault credentials.

    Args:
        vault: Credential vault.
        adapters: Adapter instances; defaults to every built-in adapter.
        context: Context window manager; defaults to one built from ``config``.
        config: Gateway settings.
    """

    def __init__(
        self,
        vault: SecretVault,
        adapters: Iterable[ProviderAdapter] | None = None,
        context: ContextWindowManager | None = None,
        config: GatewayConfig | None = None,
    ) -> None:
        self.config = config or GatewayConfig()
        self.vault = vault
        if adapters is None:
            adapters = default_adapters(
                timeout=self.config.timeout,
                max_attempts=self.config.retry_attempts,
                base_urls=self.config.base_urls,
            )
        self._adapters: Mapping[str, ProviderAdapter] = build_registry(adapters)
        self.context = context or ContextWindowManager(
            threshold_ratio=self.config.compression_threshold,
            image_token_surcharge=self.config.image_token_surcharge,
            keep_last_n=self.config.keep_last_n,
            model_limits=self.config.model_limits,
        )

    @classmethod
    def from_config(
        cls, config: GatewayConfig, *, client: httpx.AsyncClient | None = None
    ) -> Gateway:
        """Build vault, store and adapters from configuration.

        Raises:
            VaultConfigError: The encryption key is missing or malformed.
        """
        vault = SecretVault(load_encryption_key(config.encryption_key), build_store(config))
        adapters = default_adapters(
            client=client,
            timeout=config.timeout,
            max_attempts=config.retry_attempts,
            base_urls=config.base_urls,
        )
        return cls(vault, adapters=adapters, config=config)

    @property
    def providers(self) -> tuple[str, ...]:
        return tuple(self._adapters)

    def adapter_for(self, provider: str) -> ProviderAdapter:
        adapter = self._adapters.get(provider)
        if adapter is None:
            raise UnsupportedProvider(provider)
        return adapter

    # ------------------------------------------------------------------
    # Request preparation
    # ------------------------------------------------------------------

    async def _credential(self, user_id: str, adapter: ProviderAdapter) -> str | None:
        try:
            return await self.vault.load(user_id, adapter.provider_id)
        except CredentialNotFound:
            if not adapter.requires_credential:
                return None
            raise MissingCredential(adapter.provider_id) from None

    @staticmethod
    def _with_extra_context(request: ChatRequest, extra_context: str | None) -> ChatRequest:
        if not extra_context or not extra_context.strip():
            return request
        return request.with_messages(
            [ChatMessage.system(extra_context.strip()), *request.messages]
        )

    @staticmethod
    def _summarizer(
        adapter: ProviderAdapter,
        request: ChatRequest,
        api_key: str | None,
        base_url: str | None,
    ) -> Summarizer:
        async def summarize(prompt: str) -> str:
            summary_request = ChatRequest(
                provider=request.provider,
                model=request.model,
                messages=(ChatMessage.user(prompt),),
                max_output_tokens=SUMMARY_MAX_OUTPUT_TOKENS,
            )
            response = await adapter.send(summary_request, api_key, base_url)
            return response.text

        return summarize

    async def _prepare(
        self,
        user_id: str,
        request: ChatRequest,
        base_url: str | None,
        extra_context: str | None,
    ) -> tuple[ProviderAdapter, str | None, ChatRequest]:
        adapter = self.adapter_for(request.provider)
        api_key = await self._credential(user_id, adapter)
        request = self._with_extra_context(request, extra_context)
        window = await self.context.prepare(
            request.messages,
            request.model,
            self._summarizer(adapter, request, api_key, base_url),
        )
        if window.compressed:
            request = request.with_messages(window.messages)
        return adapter, api_key, request

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------

    def _log_request(self, mode: str, request: ChatRequest) -> None:
        log_event(
            "ai_request",
            mode=mode,
            provider=request.provider,
            model=request.model,
            message_count=len(request.messages),
            input_chars=_input_chars(request),
            estimated_tokens=self.context.estimate_tokens(request.messages),
            web_search=request.web_search,
        )

    @staticmethod
    def _log_error(mode: str, request: ChatRequest, started: float, error: BaseException) -> None:
        log_event(
            "ai_error",
            level=logging.ERROR,
            mode=mode,
            provider=request.provider,
            model=request.model,
            latency_ms=round((time.perf_counter() - started) * 1000, 1),
            error_type=type(error).__name__,
            error=sanitize_error_message(str(error)),
            **extract_http_error_context(error),
        )

    @staticmethod
    def _log_response(
        mode: str,
        request: ChatRequest,
        started: float,
        output_chars: int,
        input_tokens: int | None,
        output_tokens: int | None,
        reasoning_tokens: int | None,
    ) -> None:
        log_event(
            "ai_response",
            mode=mode,
            provider=request.provider,
            model=request.model,
            latency_ms=round((time.perf_counter() - started) * 1000, 1),
            output_chars=output_chars,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            reasoning_tokens=reasoning_tokens,
        )

    # ------------------------------------------------------------------
    # Single dispatch
    # ------------------------------------------------------------------

    async def send(
        self,
        user_id: str,
        request: ChatRequest,
        *,
        base_url: str | None = None,
        extra_context: str | None = None,
    ) -> ChatResponse:
        """Non-streaming dispatch."""
        adapter, api_key, prepared = await self._prepare(
            user_id, request, base_url, extra_context
        )
        self._log_request("send", prepared)
        started = time.perf_counter()
        try:
            response = await adapter.send(prepared, api_key, base_url)
        except Exception as e:
            self._log_error("send", prepared, started, e)
            raise
        usage = response.usage
        self._log_response(
            "send",
            prepared,
            started,
            len(response.text),
            usage.input_tokens if usage else None,
            usage.output_tokens if usage else None,
            usage.reasoning_tokens if usage else None,
        )
        return response

    async def _observed(
        self, events: AsyncIterator[StreamEvent], request: ChatRequest
    ) -> AsyncIterator[StreamEvent]:
        started = time.perf_counter()
        output_chars = 0
        usage: UsageEvent | None = None
        failure: ErrorEvent | None = None
        logged = False
        try:
            async with aclosing(events):
                async for event in events:
                    if isinstance(event, TextDelta):
                        output_chars += len(event.delta)
                    elif isinstance(event, UsageEvent):
                        usage = event
                    elif isinstance(event, ErrorEvent):
                        failure = event
                    elif isinstance(event, Done):
                        # The relay closes this generator right after Done.
                        self._log_stream_outcome(request, started, output_chars, usage, failure)
                        logged = True
                    yield event
        except Exception as e:
            self._log_error("stream", request, started, e)
            raise
        if not logged:
            self._log_stream_outcome(request, started, output_chars, usage, failure)

    @classmethod
    def _log_stream_outcome(
        cls,
        request: ChatRequest,
        started: float,
        output_chars: int,
        usage: UsageEvent | None,
        failure: ErrorEvent | None,
    ) -> None:
        if failure is not None:
            log_event(
                "ai_error",
                level=logging.ERROR,
                mode="stream",
                provider=request.provider,
                model=request.model,
                latency_ms=round((time.perf_counter() - started) * 1000, 1),
                error_type=type(failure).__name__,
                error=sanitize_error_message(failure.message),
            )
            return
        cls._log_response(
            "stream",
            request,
            started,
            output_chars,
            usage.input_tokens if usage else None,
            usage.output_tokens if usage else None,
            usage.reasoning_tokens if usage else None,
        )

    async def open_stream(
        self,
        user_id: str,
        request: ChatRequest,
        *,
        base_url: str | None = None,
        extra_context: str | None = None,
        sink: AnswerSink | None = None,
        drain_on_disconnect: bool = True,
    ) -> StreamRelay:
        """Resolve adapter and credential now, then return an unstarted relay.

        Raises:
            UnsupportedProvider: No adapter for ``request.provider``.
            MissingCredential: The vault has no usable key.
        """
        adapter, api_key, prepared = await self._prepare(
            user_id, request, base_url, extra_context
        )
        self._log_request("stream", prepared)
        return StreamRelay(
            self._observed(adapter.stream(prepared, api_key, base_url), prepared),
            keepalive_interval=self.config.keepalive_interval,
            sink=sink,
            drain_on_disconnect=drain_on_disconnect,
            persist_interval=self.config.persist_interval,
            describe_error=lambda e: describe_error(e).message,
        )

    async def stream(
        self,
        user_id: str,
        request: ChatRequest,
        *,
        base_url: str | None = None,
        extra_context: str | None = None,
        sink: AnswerSink | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Stream events directly; stopping iteration cancels the upstream."""
        relay = await self.open_stream(
            user_id,
            request,
            base_url=base_url,
            extra_context=extra_context,
            sink=sink,
            drain_on_disconnect=False,
        )
        async with aclosing(relay.events()) as events:
            async for event in events:
                yield event

    async def dispatch(
        self,
        user_id: str,
        request: ChatRequest,
        *,
        stream: bool = False,
        base_url: str | None = None,
        extra_context: str | None = None,
        sink: AnswerSink | None = None,
    ) -> ChatResponse | StreamRelay:
        if stream:
            return await self.open_stream(
                user_id, request, base_url=base_url, extra_context=extra_context, sink=sink
            )
        return await self.send(user_id, request, base_url=base_url, extra_context=extra_context)

    # ------------------------------------------------------------------
    # Fan-out
    # ------------------------------------------------------------------

    async def _compare_one(
        self,
        user_id: str,
        target: CompareTarget,
        messages: tuple[ChatMessage, ...],
        options: CompareOptions,
    ) -> CompareResult:
        try:
            request = ChatRequest(
                provider=target.provider,
                model=target.model,
                messages=messages,
                temperature=options.temperature,
                max_output_tokens=options.max_output_tokens,
            )
            response = await self.send(user_id, request)
        except Exception as e:
            shape = describe_error(e)
            return CompareResult.failure(target, shape.message, shape.code)
        return CompareResult.success(target, response)

    async def compare(
        self,
        user_id: str,
        prompt: str,
        targets: Iterable[CompareTarget | str],
        options: CompareOptions | None = None,
    ) -> list[CompareResult]:
        """Send one prompt to every target concurrently.

        Per-target failures become failure results; the output order matches
        ``targets``.

        Raises:
            InvalidRequestError: Empty prompt.
            CompareLimitError: No targets, or more than ``max_compare_targets``.
        """
        if not prompt or not prompt.strip():
            raise InvalidRequestError("Compare prompt must not be empty")
        resolved = [t if isinstance(t, CompareTarget) else CompareTarget.parse(t) for t in targets]
        limit = self.config.max_compare_targets
        if not resolved:
            raise CompareLimitError("At least one compare target is required")
        if len(resolved) > limit:
            raise CompareLimitError(f"At most {limit} compare targets are allowed")

        options = options or CompareOptions()
        messages: list[ChatMessage] = []
        if options.system_prompt:
            messages.append(ChatMessage.system(options.system_prompt))
        messages.append(ChatMessage.user(prompt))

        log_event("compare_start", targets=[f"{t.provider}:{t.model}" for t in resolved])
        started = time.perf_counter()
        results = await asyncio.gather(
            *(self._compare_one(user_id, t, tuple(messages), options) for t in resolved)
        )
        succeeded = sum(1 for r in results if r.ok)
        log_event(
            "compare_stop",
            targets=len(results),
            succeeded=succeeded,
            failed=len(results) - succeeded,
            latency_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        return list(results)
