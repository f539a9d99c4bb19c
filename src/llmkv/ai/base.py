"""Provider adapter contract and shared HTTP transport.

Each adapter maps the provider-agnostic ``ChatRequest`` onto one upstream
protocol and back. Shared logic lives here and never branches on the
provider name; protocol details live in the subclass hooks.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import aclosing, asynccontextmanager
from typing import Any, ClassVar

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from ..domain.chat import ChatRequest, ChatResponse
from ..domain.events import DONE, Done, ErrorEvent, StreamEvent
from ..errors import (
    ProviderError,
    UpstreamConnectionError,
    UpstreamHTTPError,
)
from ..logging import before_sleep_log_event
from ..timeouts import (
    DEFAULT_TIMEOUT_SEC,
    RETRY_BACKOFF_INITIAL_SEC,
    RETRY_BACKOFF_MAX_SEC,
    STANDARD_RETRY_ATTEMPTS,
    build_ai_httpx_timeout,
)
from .http import SSEEvent, extract_error_message, iter_sse_events
from .provider_logging import (
    api_error_after_retries_message,
    http_error_message,
    log_provider_error,
)


def is_retryable_error(error: BaseException) -> bool:
    """Connect/transport failures, 429 and 5xx are worth another attempt."""
    if isinstance(error, UpstreamConnectionError):
        return True
    return isinstance(error, UpstreamHTTPError) and error.is_transient


class ProviderAdapter(ABC):
    """Base class for the closed set of upstream protocol adapters.

    Args:
        client: Optional shared ``httpx.AsyncClient``; when omitted, a client
            is created per call using the timeout policy.
        timeout: Read timeout in seconds (0 = no timeout).
        max_attempts: Attempts for non-streaming sends (1 disables retries).
        base_url: Override for the provider's default API root.
    """

    provider_id: ClassVar[str]
    display_name: ClassVar[str]
    default_base_url: ClassVar[str]
    requires_credential: ClassVar[bool] = True

    def __init__(
        self,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT_SEC,
        max_attempts: int = STANDARD_RETRY_ATTEMPTS,
        base_url: str | None = None,
        backoff_initial: float = RETRY_BACKOFF_INITIAL_SEC,
        backoff_max: float = RETRY_BACKOFF_MAX_SEC,
    ) -> None:
        self._client = client
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.base_url = (base_url or self.default_base_url).rstrip("/")
        self.backoff_initial = backoff_initial
        self.backoff_max = backoff_max

    def __repr__(self) -> str:
        return f"{type(self).__name__}(base_url={self.base_url!r})"

    # ------------------------------------------------------------------
    # Protocol hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def endpoint(self, request: ChatRequest, base_url: str, *, stream: bool) -> str:
        """Return the full request URL."""

    @abstractmethod
    def build_headers(self, api_key: str | None) -> dict[str, str]:
        """Return auth and content headers."""

    @abstractmethod
    def build_body(self, request: ChatRequest, *, stream: bool) -> dict[str, Any]:
        """Translate a ChatRequest into the upstream JSON body."""

    @abstractmethod
    def parse_response(self, payload: dict[str, Any]) -> ChatResponse:
        """Translate a non-streaming upstream JSON body."""

    @abstractmethod
    def translate_stream(self, events: AsyncIterator[SSEEvent]) -> AsyncIterator[StreamEvent]:
        """Translate upstream SSE events into internal stream events.

        Implementations yield no ``Done``; they stop after an ``ErrorEvent``
        and raise ``StreamTranslationError`` on malformed payloads.
        """

    def parse_error(self, status: int, body: str) -> str:
        """Best-effort human-readable message for a non-2xx response."""
        return extract_error_message(status, body, self.display_name)

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=build_ai_httpx_timeout(self.timeout)) as client:
            yield client

    def _resolve_base_url(self, base_url: str | None) -> str:
        return base_url.rstrip("/") if base_url else self.base_url

    def _http_error(self, status: int, body: str) -> UpstreamHTTPError:
        return UpstreamHTTPError.from_status(
            status, self.parse_error(status, body), self.provider_id
        )

    def _connection_error(self, error: httpx.TransportError) -> UpstreamConnectionError:
        return UpstreamConnectionError(
            f"{self.display_name} request failed: {type(error).__name__}",
            self.provider_id,
        )

    async def _post_json(
        self, url: str, headers: dict[str, str], body: dict[str, Any]
    ) -> dict[str, Any]:
        async with self._session() as client:
            try:
                response = await client.post(url, headers=headers, json=body)
            except httpx.TransportError as e:
                raise self._connection_error(e) from e
        if not response.is_success:
            raise self._http_error(response.status_code, response.text)
        try:
            payload = response.json()
        except ValueError:
            raise ProviderError(
                f"{self.display_name} returned a non-JSON response", self.provider_id
            ) from None
        if not isinstance(payload, dict):
            raise ProviderError(
                f"{self.display_name} returned an unexpected response", self.provider_id
            )
        return payload

    # ------------------------------------------------------------------
    # Public contract
    # ------------------------------------------------------------------

    async def send(
        self, request: ChatRequest, api_key: str | None, base_url: str | None = None
    ) -> ChatResponse:
        """Non-streaming call with retries on transient failures."""
        url = self.endpoint(request, self._resolve_base_url(base_url), stream=False)
        headers = self.build_headers(api_key)
        body = self.build_body(request, stream=False)

        retrying = AsyncRetrying(
            retry=retry_if_exception(is_retryable_error),
            wait=wait_exponential_jitter(
                initial=self.backoff_initial,
                max=self.backoff_max,
            ),
            stop=stop_after_attempt(self.max_attempts),
            before_sleep=before_sleep_log_event(
                provider=self.provider_id,
                operation="send",
                level=logging.WARNING,
            ),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    payload = await self._post_json(url, headers, body)
        except UpstreamHTTPError as e:
            log_provider_error(self.provider_id, http_error_message(e.status, e))
            raise
        except UpstreamConnectionError as e:
            log_provider_error(self.provider_id, api_error_after_retries_message(e))
            raise
        except ProviderError as e:
            log_provider_error(self.provider_id, str(e))
            raise

        return self.parse_response(payload)

    async def stream(
        self, request: ChatRequest, api_key: str | None, base_url: str | None = None
    ) -> AsyncIterator[StreamEvent]:
        """Streaming call; yields events and exactly one trailing ``Done``.

        Failures before or during the upstream stream raise typed
        ``ProviderError`` subclasses; upstream-declared errors arrive as an
        ``ErrorEvent`` followed by ``Done``.
        """
        url = self.endpoint(request, self._resolve_base_url(base_url), stream=True)
        headers = self.build_headers(api_key)
        body = self.build_body(request, stream=True)

        try:
            async with self._session() as client:
                async with client.stream("POST", url, headers=headers, json=body) as response:
                    if not response.is_success:
                        raw = await response.aread()
                        raise self._http_error(
                            response.status_code, raw.decode("utf-8", errors="replace")
                        )
                    translated = self.translate_stream(iter_sse_events(response.aiter_lines()))
                    async with aclosing(translated):
                        async for event in translated:
                            if isinstance(event, Done):
                                break
                            yield event
                            if isinstance(event, ErrorEvent):
                                break
        except httpx.TransportError as e:
            error = self._connection_error(e)
            log_provider_error(self.provider_id, str(error))
            raise error from e
        except UpstreamHTTPError as e:
            log_provider_error(self.provider_id, http_error_message(e.status, e))
            raise
        except ProviderError as e:
            log_provider_error(self.provider_id, str(e))
            raise

        yield DONE
