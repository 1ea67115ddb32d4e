"""Record dispatcher.

Parses one framed record, classifies it by its ``type`` tag and routes it
to the session: sentence words go to the reveal queue, metrics replace the
session's snapshot, ``done`` and ``error`` end word acceptance. Malformed
records are logged and skipped; they never end the session.
"""

from __future__ import annotations

import logging

from drip.exceptions import RecordParseError
from drip.schemas.events import (
    DoneEvent,
    ErrorEvent,
    MetaEvent,
    MetricsSnapshot,
    SentenceEvent,
    StreamEvent,
    parse_event,
)
from drip.stream.framing import RECORD_PREFIX
from drip.stream.reveal import RevealScheduler
from drip.stream.session import StreamSession

logger = logging.getLogger(__name__)


class RecordDispatcher:
    """Routes parsed records into a session.

    The dispatcher never writes to the output sink; revealed text only
    reaches it through the reveal scheduler.
    """

    def __init__(
        self, session: StreamSession, scheduler: RevealScheduler | None = None
    ) -> None:
        self._session = session
        self._scheduler = scheduler
        self.dispatched = 0
        self.skipped = 0

    async def dispatch(self, record: str) -> StreamEvent | None:
        """Parse and route one record.

        Returns:
            The routed event, or None when the record was skipped.
        """
        session = self._session
        if session.cancelled:
            return None

        text = record.strip()
        if not text:
            return None
        if not text.startswith(RECORD_PREFIX):
            logger.warning("Ignoring record without %r prefix: %.80r", RECORD_PREFIX, text)
            self.skipped += 1
            return None

        try:
            event = parse_event(text[len(RECORD_PREFIX):])
        except RecordParseError as exc:
            self.skipped += 1
            await session.append_log(f"Parse error: {exc}", logging.WARNING)
            return None

        if session.done_received or session.finished:
            logger.warning(
                "Discarding late %s event for session %s", event.type, session.session_id
            )
            self.skipped += 1
            return None

        logger.debug("Dispatching %s event for session %s", event.type, session.session_id)
        self.dispatched += 1

        if isinstance(event, SentenceEvent):
            await self._on_sentence(event)
        elif isinstance(event, MetaEvent):
            await session.append_log(f"English input: {event.english_in}")
            await session.append_log("Prompt generated")
        elif isinstance(event, DoneEvent):
            await self._on_done()
        elif isinstance(event, ErrorEvent):
            await self._on_error(event)
        elif isinstance(event, MetricsSnapshot):
            await session.update_metrics(event)
        return event

    # ── Handlers ──────────────────────────────────────────────────

    async def _on_sentence(self, event: SentenceEvent) -> None:
        session = self._session
        if self._scheduler is None:
            logger.warning(
                "Session %s has no reveal scheduler, dropping sentence", session.session_id
            )
            return
        session.sentences.append(event.translated)
        queued = session.push_words(event.words())
        if not queued:
            return
        await session.words_queued(queued)
        self._scheduler.start()

    async def _on_done(self) -> None:
        self._session.mark_done()
        await self._session.append_log("Response complete")
        if self._scheduler is not None:
            self._scheduler.finish()

    async def _on_error(self, event: ErrorEvent) -> None:
        if self._scheduler is not None:
            self._scheduler.halt()
        else:
            self._session.discard_words()
        await self._session.append_log(f"Backend error: {event.message}", logging.ERROR)
        await self._session.fail(event.message)
