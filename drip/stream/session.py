"""Stream session state.

A ``StreamSession`` is the explicit owner of everything one stream needs:
the word queue, the output sink, the log feed, the lifecycle state and the
latest metrics snapshot. The framer, dispatcher, reveal scheduler and
supervisor all receive the session by reference, so concurrent sessions
never share mutable state.
"""

from __future__ import annotations

import logging
import uuid
from collections import deque
from collections.abc import Iterable
from enum import StrEnum

from drip.schemas.events import MetricsSnapshot
from drip.stream.events import SessionEventEmitter, SessionEventType

logger = logging.getLogger(__name__)


class SessionKind(StrEnum):
    """The producer a session consumes."""

    CHAT = "chat"
    TRANSLATE = "translate"
    METRICS = "metrics"


class SessionState(StrEnum):
    """Lifecycle state of a session."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


_TERMINAL_STATES = frozenset(
    {SessionState.COMPLETED, SessionState.FAILED, SessionState.CANCELLED}
)


class TextAccumulator:
    """Append-only text surface that revealed words are written to.

    The caller may create and keep the accumulator; the reveal scheduler
    only ever appends to it.
    """

    def __init__(self, text: str = "") -> None:
        self._text = text

    @property
    def text(self) -> str:
        return self._text

    def append(self, word: str) -> str:
        """Append one word, space-separated unless the text is empty."""
        self._text = f"{self._text} {word}" if self._text else word
        return self._text

    def __str__(self) -> str:
        return self._text

    def __len__(self) -> int:
        return len(self._text)


class StreamSession:
    """State for one active stream consumption (chat, translate or metrics)."""

    def __init__(
        self,
        kind: SessionKind,
        *,
        sink: TextAccumulator | None = None,
        emitter: SessionEventEmitter | None = None,
        session_id: str | None = None,
        log_limit: int = 200,
    ) -> None:
        self.kind = kind
        self.session_id = session_id or uuid.uuid4().hex[:8]
        self.sink = sink if sink is not None else TextAccumulator()
        self.emitter = emitter
        self.words: deque[str] = deque()
        self.log: deque[str] = deque(maxlen=log_limit)
        self.sentences: list[str] = []
        self.state = SessionState.IDLE
        self.error: str | None = None
        self.metrics: MetricsSnapshot | None = None
        self.connected = False
        self.done_received = False
        self._accepting = True
        self._cancel_requested = False

    def __repr__(self) -> str:
        return (
            f"StreamSession(kind={self.kind.value!r}, id={self.session_id!r}, "
            f"state={self.state.value!r}, queued={len(self.words)})"
        )

    # ── State ─────────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self.state == SessionState.RUNNING

    @property
    def finished(self) -> bool:
        """True once the session reached a terminal state."""
        return self.state in _TERMINAL_STATES

    @property
    def accepting(self) -> bool:
        """Whether new words may still be queued."""
        return self._accepting

    @property
    def cancelled(self) -> bool:
        return self._cancel_requested or self.state == SessionState.CANCELLED

    def request_cancel(self) -> None:
        """Flag the session as cancelled; no further records are dispatched."""
        self._cancel_requested = True
        self._accepting = False

    def stop_accepting(self) -> None:
        """Mark the session as finished accepting new words."""
        self._accepting = False

    def mark_done(self) -> None:
        """Record that the producer signalled the end of the stream."""
        self.done_received = True
        self._accepting = False

    # ── Word queue ────────────────────────────────────────────────

    def push_words(self, words: Iterable[str]) -> int:
        """Append words to the queue in order. Returns how many were queued."""
        before = len(self.words)
        self.words.extend(w for w in words if w)
        return len(self.words) - before

    def pop_word(self) -> str | None:
        """Remove and return the next word, or None when the queue is empty."""
        if not self.words:
            return None
        return self.words.popleft()

    def discard_words(self) -> int:
        """Drop every queued word. Returns how many were dropped."""
        dropped = len(self.words)
        self.words.clear()
        return dropped

    # ── Emitting transitions ──────────────────────────────────────

    async def _emit(self, event_type: SessionEventType, **data: object) -> None:
        if self.emitter is not None:
            await self.emitter.emit(event_type, self.session_id, kind=self.kind.value, **data)

    async def append_log(self, line: str, level: int = logging.INFO) -> None:
        """Append a human-readable line to the session's log feed."""
        self.log.append(line)
        logger.log(level, "[%s:%s] %s", self.kind.value, self.session_id, line)
        await self._emit(SessionEventType.LOG, line=line)

    async def start(self) -> None:
        self.state = SessionState.RUNNING
        self.error = None
        await self._emit(SessionEventType.SESSION_STARTED)

    async def reveal(self, word: str) -> None:
        """Append one word to the sink and announce it."""
        text = self.sink.append(word)
        await self._emit(SessionEventType.WORD_REVEALED, word=word, text=text)

    async def words_queued(self, count: int) -> None:
        await self._emit(SessionEventType.WORDS_QUEUED, count=count, queued=len(self.words))

    async def update_metrics(self, snapshot: MetricsSnapshot) -> None:
        """Replace the latest metrics snapshot."""
        self.metrics = snapshot
        await self._emit(SessionEventType.METRICS_UPDATED, metrics=snapshot.model_dump())

    async def set_connected(self, connected: bool) -> None:
        if connected == self.connected:
            return
        self.connected = connected
        await self._emit(SessionEventType.CONNECTION_CHANGED, connected=connected)

    def resume(self) -> None:
        """Clear per-attempt end markers before a reconnect attempt."""
        if self.cancelled:
            return
        self.state = SessionState.RUNNING
        self.error = None
        self.done_received = False
        self._accepting = True

    async def reconnect_scheduled(self, delay: float, attempt: int) -> None:
        await self._emit(SessionEventType.RECONNECT_SCHEDULED, delay=delay, attempt=attempt)

    async def complete(self) -> None:
        """Finish successfully, unless the session already ended otherwise."""
        self._accepting = False
        if self.finished:
            return
        self.state = SessionState.COMPLETED
        await self._emit(SessionEventType.SESSION_COMPLETED, text=self.sink.text)

    async def fail(self, reason: str) -> None:
        """Mark the session failed with a reason."""
        self._accepting = False
        if self.state in (SessionState.FAILED, SessionState.CANCELLED):
            return
        self.state = SessionState.FAILED
        self.error = reason
        await self._emit(SessionEventType.SESSION_FAILED, error=reason)

    async def mark_cancelled(self) -> None:
        self._cancel_requested = True
        self._accepting = False
        if self.state == SessionState.CANCELLED:
            return
        self.state = SessionState.CANCELLED
        await self._emit(SessionEventType.SESSION_CANCELLED)
