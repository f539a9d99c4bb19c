"""SSE wire framing for internal stream events."""

from __future__ import annotations

import json
from collections.abc import Iterable, Iterator

from ..constants import SSE_DONE_SENTINEL
from ..domain.events import DONE, Done, StreamEvent, event_from_wire


def encode_event(event: StreamEvent) -> str:
    """Frame one event as ``data: <json>\\n\\n`` (``Done`` as the sentinel)."""
    if isinstance(event, Done):
        return f"data: {SSE_DONE_SENTINEL}\n\n"
    payload = json.dumps(event.to_wire(), ensure_ascii=False, separators=(",", ":"))
    return f"data: {payload}\n\n"


def decode_frames(frames: str | Iterable[str]) -> Iterator[StreamEvent]:
    """Parse relay output back into events.

    Accepts the raw text or an iterable of frames/lines. Comment lines
    (stream-start, keep-alive) and blank lines are ignored.
    """
    chunks = [frames] if isinstance(frames, str) else frames
    for chunk in chunks:
        for raw_line in chunk.splitlines():
            line = raw_line.rstrip("\r")
            if not line.startswith("data:"):
                continue
            data = line[5:].lstrip(" ")
            if data == SSE_DONE_SENTINEL:
                yield DONE
                continue
            yield event_from_wire(json.loads(data))
