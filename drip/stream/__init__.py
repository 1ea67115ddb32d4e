"""Streaming core: framing, dispatch, paced reveal and session supervision."""

from drip.stream.dispatcher import RecordDispatcher
from drip.stream.events import (
    SessionEvent,
    SessionEventEmitter,
    SessionEventType,
    SessionListener,
)
from drip.stream.framing import RECORD_DELIMITER, RECORD_PREFIX, FrameReader, iter_records
from drip.stream.reveal import DEFAULT_REVEAL_INTERVAL, RevealScheduler
from drip.stream.session import SessionKind, SessionState, StreamSession, TextAccumulator
from drip.stream.supervisor import (
    DEFAULT_RECONNECT_DELAY,
    DEFAULT_REQUEST_TIMEOUT,
    MetricsSupervisor,
    SessionSupervisor,
)
from drip.stream.transport import ByteSource, HttpByteSource

__all__ = [
    "DEFAULT_RECONNECT_DELAY",
    "DEFAULT_REQUEST_TIMEOUT",
    "DEFAULT_REVEAL_INTERVAL",
    "RECORD_DELIMITER",
    "RECORD_PREFIX",
    "ByteSource",
    "FrameReader",
    "HttpByteSource",
    "MetricsSupervisor",
    "RecordDispatcher",
    "RevealScheduler",
    "SessionEvent",
    "SessionEventEmitter",
    "SessionEventType",
    "SessionKind",
    "SessionListener",
    "SessionState",
    "SessionSupervisor",
    "StreamSession",
    "TextAccumulator",
    "iter_records",
]
