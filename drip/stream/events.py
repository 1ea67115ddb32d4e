"""Session event emitter for presentation layers.

Sessions announce lifecycle changes, log lines, revealed words and metrics
updates through a ``SessionEventEmitter``. A CLI display, a test, or any
other observer registers listeners; with no listeners every emit is a
cheap no-op.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class SessionEventType(StrEnum):
    """Types of events emitted while a stream session runs."""

    SESSION_STARTED = "session_started"
    LOG = "log"
    WORDS_QUEUED = "words_queued"
    WORD_REVEALED = "word_revealed"
    METRICS_UPDATED = "metrics_updated"
    CONNECTION_CHANGED = "connection_changed"
    RECONNECT_SCHEDULED = "reconnect_scheduled"
    SESSION_COMPLETED = "session_completed"
    SESSION_FAILED = "session_failed"
    SESSION_CANCELLED = "session_cancelled"


class SessionEvent(BaseModel):
    """A single session event."""

    type: SessionEventType = Field(description="Event type")
    session_id: str = Field(default="", description="Emitting session")
    timestamp: float = Field(
        default_factory=time.time,
        description="Unix timestamp when the event occurred",
    )
    data: dict[str, Any] = Field(
        default_factory=dict,
        description="Event payload, varies by event type",
    )


# Type alias for event listener callbacks
SessionListener = Callable[[SessionEvent], Any]


class SessionEventEmitter:
    """Broadcasts session events to registered listeners.

    Listeners can be sync or async callables. Listener exceptions are
    logged and never reach the stream loop.
    """

    def __init__(self, history_limit: int = 500) -> None:
        self._listeners: list[SessionListener] = []
        self._history: list[SessionEvent] = []
        self._history_limit = history_limit

    @property
    def history(self) -> list[SessionEvent]:
        """Most recent events emitted so far."""
        return list(self._history)

    def add_listener(self, listener: SessionListener) -> None:
        """Register a listener to receive session events."""
        self._listeners.append(listener)

    def remove_listener(self, listener: SessionListener) -> None:
        """Remove a previously registered listener."""
        self._listeners = [ln for ln in self._listeners if ln is not listener]

    async def emit(
        self, event_type: SessionEventType, session_id: str = "", **data: Any
    ) -> None:
        """Emit a session event to all registered listeners.

        Sync listeners are called directly; async listeners are awaited.
        """
        event = SessionEvent(type=event_type, session_id=session_id, data=data)
        self._history.append(event)
        if len(self._history) > self._history_limit:
            del self._history[: len(self._history) - self._history_limit]

        for listener in self._listeners:
            try:
                result = listener(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception("Session listener error for %s", event_type)
