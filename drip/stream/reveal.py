"""Fixed-cadence word reveal.

Words arrive in bursts that follow network packet boundaries. The
``RevealScheduler`` decouples arrival from display: a single periodic task
per session pops one queued word per tick and appends it to the session's
output sink, so text appears at a steady pace however it was chunked on
the wire.
"""

from __future__ import annotations

import asyncio
import logging

from drip.stream.session import StreamSession

logger = logging.getLogger(__name__)

DEFAULT_REVEAL_INTERVAL = 0.045  # seconds per word


class RevealScheduler:
    """Cancellable periodic task that drains a session's word queue.

    The task stops by itself once the session stops accepting words and the
    queue is empty. ``halt()`` stops it at once and drops queued words.
    Used as an async context manager, leaving the block always stops the
    task.
    """

    def __init__(
        self, session: StreamSession, interval: float = DEFAULT_REVEAL_INTERVAL
    ) -> None:
        if interval <= 0:
            raise ValueError(f"Reveal interval must be positive, got {interval}")
        self._session = session
        self._interval = interval
        self._task: asyncio.Task[None] | None = None
        self._stopping: asyncio.Task[None] | None = None
        self._halted = False
        self.ticks = 0

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def running(self) -> bool:
        """Whether the tick task is alive."""
        return self._task is not None and not self._task.done()

    @property
    def exhausted(self) -> bool:
        """No more words will arrive and none are left to reveal."""
        return not self._session.accepting and not self._session.words

    # ── Lifecycle ─────────────────────────────────────────────────

    def start(self) -> bool:
        """Start ticking. Returns False if already running or halted."""
        if self.running or self._halted:
            return False
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"reveal-{self._session.session_id}"
        )
        logger.debug("Reveal started for session %s", self._session.session_id)
        return True

    def finish(self) -> None:
        """Signal that no more words will arrive; stop once drained."""
        self._session.stop_accepting()

    def halt(self) -> int:
        """Stop immediately and discard queued words.

        Returns:
            The number of words that were dropped unrevealed.
        """
        self._halted = True
        dropped = self._session.discard_words()
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            self._stopping = task
        if dropped:
            logger.debug(
                "Reveal halted for session %s, %d word(s) dropped",
                self._session.session_id, dropped,
            )
        return dropped

    async def stop(self) -> None:
        """Halt and wait until the tick task has exited."""
        self.halt()
        task, self._stopping = self._stopping, None
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def drain(self) -> None:
        """Reveal everything still queued, then let the task exit."""
        self.finish()
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    async def __aenter__(self) -> RevealScheduler:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.stop()

    # ── Ticking ───────────────────────────────────────────────────

    async def tick(self) -> str | None:
        """Reveal one queued word. An empty queue leaves the sink untouched."""
        self.ticks += 1
        word = self._session.pop_word()
        if word is None:
            return None
        await self._session.reveal(word)
        return word

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            await self.tick()
            if self.exhausted:
                break
        logger.debug("Reveal drained for session %s", self._session.session_id)
