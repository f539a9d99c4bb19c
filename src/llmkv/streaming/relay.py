"""Streaming relay: one upstream event stream to a client, with keep-alives.

The upstream is consumed by a single producer task feeding a queue. The
consumer side (``frames``/``events``/``pump``) reads from the queue and emits
a keep-alive whenever nothing arrives within the interval. When the client
goes away the producer either keeps draining (so the sink still receives
the full answer) or is cancelled. Sink writes run as background tasks and
never hold the consumer: iteration ends as soon as ``Done`` is delivered.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import aclosing
from dataclasses import dataclass, field, replace
from typing import Protocol

from ..constants import SSE_HEADERS, SSE_KEEPALIVE, SSE_STREAM_START
from ..domain.chat import Source, Usage
from ..domain.events import (
    DONE,
    Done,
    ErrorEvent,
    SourcesEvent,
    StreamEvent,
    TextDelta,
    ThinkingDelta,
    UsageEvent,
)
from ..logging import log_event, sanitize_error_message
from ..timeouts import SINK_PERSIST_INTERVAL_SEC, STREAM_KEEPALIVE_INTERVAL_SEC
from .wire import encode_event

ErrorDescriber = Callable[[BaseException], str]
FrameWriter = Callable[[str], Awaitable[object]]


@dataclass(slots=True)
class AnswerSnapshot:
    """Accumulated answer state handed to the sink."""

    text: str = ""
    thinking: str = ""
    sources: list[Source] = field(default_factory=list)
    usage: Usage | None = None
    error: str | None = None

    def apply(self, event: StreamEvent) -> bool:
        """Fold one event in; returns False for events that change nothing."""
        if isinstance(event, TextDelta):
            self.text += event.delta
        elif isinstance(event, ThinkingDelta):
            self.thinking += event.delta
        elif isinstance(event, SourcesEvent):
            self.sources = list(event.sources)
        elif isinstance(event, UsageEvent):
            self.usage = event.to_usage()
        elif isinstance(event, ErrorEvent):
            self.error = event.message
        else:
            return False
        return True

    def copy(self) -> AnswerSnapshot:
        return replace(self, sources=list(self.sources))


class AnswerSink(Protocol):
    """Persistence side channel for streamed answers."""

    async def update(self, snapshot: AnswerSnapshot, *, final: bool) -> None: ...


def default_error_message(error: BaseException) -> str:
    return sanitize_error_message(str(error)) or type(error).__name__


async def terminated(
    events: AsyncIterator[StreamEvent],
    describe_error: ErrorDescriber = default_error_message,
) -> AsyncIterator[StreamEvent]:
    """Yield ``events`` so that exactly one ``Done`` ends the sequence.

    An exception from the source becomes one ``ErrorEvent``; anything after
    the first ``Done`` is discarded; a missing ``Done`` is appended.
    """
    try:
        async for event in events:
            yield event
            if isinstance(event, Done):
                return
    except Exception as e:
        yield ErrorEvent(describe_error(e))
    finally:
        aclose = getattr(events, "aclose", None)
        if aclose is not None:
            await aclose()
    yield DONE


async def _settle(task: asyncio.Task[None] | None) -> None:
    if task is None:
        return
    try:
        await asyncio.shield(task)
    except asyncio.CancelledError:
        if not task.cancelled():
            raise


class _KeepAlive:
    __slots__ = ()


_KEEPALIVE = _KeepAlive()


class StreamRelay:
    """Relay one upstream event stream to one consumer.

    Args:
        events: Upstream event iterator (typically ``ProviderAdapter.stream``).
        keepalive_interval: Seconds of silence before a keep-alive; 0 disables.
        sink: Optional ``AnswerSink`` receiving throttled snapshots.
        drain_on_disconnect: Keep consuming upstream after the client leaves.
        persist_interval: Minimum seconds between intermediate sink updates.
        describe_error: Maps a stream exception to the ``ErrorEvent`` message.

    A relay can be consumed once. The owner must keep a reference to it
    (or await ``wait_closed``) while a drain or the final sink update is in
    progress.
    """

    headers = SSE_HEADERS

    def __init__(
        self,
        events: AsyncIterator[StreamEvent],
        *,
        keepalive_interval: float = STREAM_KEEPALIVE_INTERVAL_SEC,
        sink: AnswerSink | None = None,
        drain_on_disconnect: bool = True,
        persist_interval: float = SINK_PERSIST_INTERVAL_SEC,
        describe_error: ErrorDescriber = default_error_message,
    ) -> None:
        self._source = events
        self.keepalive_interval = keepalive_interval
        self.sink = sink
        self.drain_on_disconnect = drain_on_disconnect
        self.persist_interval = persist_interval
        self._describe_error = describe_error

        self.relay_id = secrets.token_hex(4)
        self.snapshot = AnswerSnapshot()
        self.client_connected = True
        self.event_count = 0

        self._started = False
        self._producer: asyncio.Task[None] | None = None
        self._finalizer: asyncio.Task[None] | None = None
        self._sink_tasks: set[asyncio.Task[None]] = set()
        self._last_persist: float | None = None

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    async def _produce(self, queue: asyncio.Queue[StreamEvent]) -> None:
        async with aclosing(terminated(self._source, self._describe_error)) as events:
            async for event in events:
                self.event_count += 1
                if self.snapshot.apply(event):
                    self._maybe_persist()
                queue.put_nowait(event)
                if isinstance(event, Done):
                    break

        # The consumer finishes at Done; persistence settles in the background.
        self._finalizer = asyncio.create_task(self._finalize(self.snapshot.copy()))

    async def _finalize(self, snapshot: AnswerSnapshot) -> None:
        if self._sink_tasks:
            await asyncio.gather(*self._sink_tasks)
        if self.sink is not None:
            await self._safe_update(snapshot, final=True)
        log_event(
            "stream_stop",
            relay_id=self.relay_id,
            events=self.event_count,
            error=self.snapshot.error,
            client_connected=self.client_connected,
        )

    def _maybe_persist(self) -> None:
        if self.sink is None:
            return
        now = asyncio.get_running_loop().time()
        if self._last_persist is not None and now - self._last_persist < self.persist_interval:
            return
        self._last_persist = now
        task = asyncio.create_task(self._safe_update(self.snapshot.copy(), final=False))
        self._sink_tasks.add(task)
        task.add_done_callback(self._sink_tasks.discard)

    async def _safe_update(self, snapshot: AnswerSnapshot, *, final: bool) -> None:
        sink = self.sink
        if sink is None:
            return
        try:
            await sink.update(snapshot, final=final)
        except Exception as e:
            log_event(
                "sink_error",
                level=logging.WARNING,
                relay_id=self.relay_id,
                final=final,
                error_type=type(e).__name__,
                error=sanitize_error_message(str(e)),
            )

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    def mark_disconnected(self) -> None:
        """Record that the client went away (idempotent)."""
        if not self.client_connected:
            return
        self.client_connected = False
        log_event(
            "stream_client_disconnected",
            relay_id=self.relay_id,
            draining=self.drain_on_disconnect,
        )

    def _detach(self) -> None:
        self.mark_disconnected()
        if self._producer is not None and not self._producer.done():
            if not self.drain_on_disconnect:
                self._producer.cancel()

    async def _next(self, queue: asyncio.Queue[StreamEvent]) -> StreamEvent | _KeepAlive:
        if not self.keepalive_interval or self.keepalive_interval <= 0:
            return await queue.get()
        try:
            return await asyncio.wait_for(queue.get(), timeout=self.keepalive_interval)
        except asyncio.TimeoutError:
            return _KEEPALIVE

    async def _iterate(self) -> AsyncIterator[StreamEvent | _KeepAlive]:
        if self._started:
            raise RuntimeError("StreamRelay can only be consumed once")
        self._started = True

        queue: asyncio.Queue[StreamEvent] = asyncio.Queue()
        self._producer = asyncio.create_task(self._produce(queue))
        log_event("stream_start", relay_id=self.relay_id)

        finished = False
        try:
            while True:
                item = await self._next(queue)
                yield item
                if isinstance(item, Done):
                    break
            if self.drain_on_disconnect:
                await asyncio.shield(self._producer)
            else:
                await self._producer
            finished = True
        finally:
            if not finished:
                self._detach()

    async def frames(self) -> AsyncIterator[str]:
        """SSE frames: stream-start, events, keep-alives, then ``[DONE]``."""
        yield SSE_STREAM_START
        async with aclosing(self._iterate()) as items:
            async for item in items:
                if isinstance(item, _KeepAlive):
                    yield SSE_KEEPALIVE
                else:
                    yield encode_event(item)

    async def events(self) -> AsyncIterator[StreamEvent]:
        """Events only, without transport markers."""
        async with aclosing(self._iterate()) as items:
            async for item in items:
                if not isinstance(item, _KeepAlive):
                    yield item

    async def pump(self, write: FrameWriter) -> None:
        """Drive ``frames()`` into ``write``.

        A failing writer marks the client disconnected; its error is dropped.
        With draining enabled this returns once the upstream is exhausted.
        """
        async with aclosing(self.frames()) as frames:
            async for frame in frames:
                if not self.client_connected:
                    continue
                try:
                    await write(frame)
                except Exception:
                    self.mark_disconnected()
                    if not self.drain_on_disconnect:
                        break

    async def wait_closed(self) -> None:
        """Wait for the producer and the final sink update to finish.

        Covers a background drain after disconnect as well as the final
        snapshot, which is written after the consumer has seen ``Done``.
        """
        await _settle(self._producer)
        # Only exists once the producer has reached Done.
        await _settle(self._finalizer)
