"""Streaming relay and SSE wire framing."""

from .relay import AnswerSink, AnswerSnapshot, StreamRelay, default_error_message, terminated
from .wire import decode_frames, encode_event

__all__ = [
    "AnswerSink",
    "AnswerSnapshot",
    "StreamRelay",
    "decode_frames",
    "default_error_message",
    "encode_event",
    "terminated",
]
