"""Session supervisors.

A supervisor owns one stream's request lifecycle: it opens the byte
source, runs the frame reader and dispatcher loop, and guarantees that the
reveal task is torn down on every exit path. Interactive sessions (chat,
translate) run once under a fixed deadline; the metrics session restarts
the whole pipeline after a fixed delay whenever its transport fails,
until it is cancelled.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import aclosing

from drip.exceptions import StreamTimeoutError, StreamTransportError
from drip.schemas.requests import StreamRequest
from drip.stream.dispatcher import RecordDispatcher
from drip.stream.framing import iter_records
from drip.stream.reveal import DEFAULT_REVEAL_INTERVAL, RevealScheduler
from drip.stream.session import StreamSession
from drip.stream.transport import ByteSource

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 30.0  # seconds, interactive sessions
DEFAULT_RECONNECT_DELAY = 5.0  # seconds, metrics session, fixed


class _Supervisor:
    """Shared task handling for supervisors."""

    def __init__(
        self, session: StreamSession, source: ByteSource, request: StreamRequest
    ) -> None:
        self._session = session
        self._source = source
        self._request = request
        self._task: asyncio.Task[StreamSession] | None = None

    @property
    def session(self) -> StreamSession:
        return self._session

    @property
    def request(self) -> StreamRequest:
        return self._request

    def start(self) -> asyncio.Task[StreamSession]:
        """Run the supervisor as a task. Idempotent."""
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(
                self.run(), name=f"{self._session.kind.value}-{self._session.session_id}"
            )
        return self._task

    def cancel(self) -> None:
        """Explicit teardown: stop dispatching and cancel the running task."""
        self._session.request_cancel()
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def run(self) -> StreamSession:
        raise NotImplementedError

    async def _pump(
        self, chunks: AsyncIterator[bytes], dispatcher: RecordDispatcher
    ) -> None:
        """Frame and dispatch records until the stream ends or the session stops."""
        async with aclosing(iter_records(chunks)) as records:
            async for record in records:
                await dispatcher.dispatch(record)
                if self._session.cancelled or self._session.finished:
                    break


class SessionSupervisor(_Supervisor):
    """Runs one interactive stream under a fixed deadline.

    The deadline covers the request from start to end-of-stream. Revealing
    words that are still queued at end-of-stream happens after the deadline
    is cleared. Interactive sessions never reconnect.
    """

    def __init__(
        self,
        session: StreamSession,
        source: ByteSource,
        request: StreamRequest,
        *,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        reveal_interval: float = DEFAULT_REVEAL_INTERVAL,
    ) -> None:
        super().__init__(session, source, request)
        self._timeout = timeout
        self._reveal_interval = reveal_interval

    async def run(self) -> StreamSession:
        """Consume the stream and return the finished session.

        Cancellation is honoured until the session ends, including while
        queued words are still being revealed after ``done``.

        Raises:
            asyncio.CancelledError: If the session was cancelled explicitly.
        """
        session = self._session
        await session.start()

        async with RevealScheduler(session, self._reveal_interval) as scheduler:
            dispatcher = RecordDispatcher(session, scheduler)
            try:
                await self._settle(dispatcher, scheduler)
            except asyncio.CancelledError:
                scheduler.halt()
                await session.mark_cancelled()
                logger.info("Session %s cancelled", session.session_id)
                raise

        return session

    async def _settle(self, dispatcher: RecordDispatcher, scheduler: RevealScheduler) -> None:
        session = self._session
        try:
            await self._consume(dispatcher)
        except StreamTransportError as exc:
            if not session.done_received:
                scheduler.halt()
                await session.append_log(f"Stream error: {exc}", logging.ERROR)
                await session.fail(str(exc))
                return
            logger.warning(
                "Session %s: transport failed after done: %s", session.session_id, exc
            )
        if session.cancelled:
            scheduler.halt()
            await session.mark_cancelled()
            return
        await scheduler.drain()
        await session.complete()

    async def _consume(self, dispatcher: RecordDispatcher) -> None:
        try:
            async with asyncio.timeout(self._timeout):
                async with self._source(self._request) as chunks:
                    await self._pump(chunks, dispatcher)
        except TimeoutError as exc:
            if isinstance(exc, StreamTransportError):
                raise
            raise StreamTimeoutError() from exc


class MetricsSupervisor(_Supervisor):
    """Keeps the standing metrics feed alive.

    Any transport failure, and the server closing the feed, schedules a
    full restart (new request, new frame reader) after a fixed delay. Only
    ``cancel()`` ends the loop.
    """

    def __init__(
        self,
        session: StreamSession,
        source: ByteSource,
        request: StreamRequest,
        *,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
    ) -> None:
        super().__init__(session, source, request)
        self._reconnect_delay = reconnect_delay
        self.attempts = 0

    @property
    def reconnect_delay(self) -> float:
        return self._reconnect_delay

    async def run(self) -> StreamSession:
        """Stream snapshots until cancelled.

        Raises:
            asyncio.CancelledError: Always, once the session is torn down.
        """
        session = self._session
        await session.start()
        try:
            while True:
                self.attempts += 1
                dispatcher = RecordDispatcher(session)
                try:
                    await self._consume(dispatcher)
                except StreamTransportError as exc:
                    reason = str(exc)
                else:
                    reason = session.error or "metrics stream closed by server"

                await session.set_connected(False)
                await session.append_log(
                    f"Metrics connection error: {reason}", logging.WARNING
                )
                session.resume()
                logger.info(
                    "Reconnecting metrics in %.1fs (attempt %d)",
                    self._reconnect_delay, self.attempts + 1,
                )
                await session.reconnect_scheduled(self._reconnect_delay, self.attempts + 1)
                await asyncio.sleep(self._reconnect_delay)
        except asyncio.CancelledError:
            await session.set_connected(False)
            await session.mark_cancelled()
            logger.info("Metrics session %s torn down", session.session_id)
            raise

    async def _consume(self, dispatcher: RecordDispatcher) -> None:
        session = self._session
        async with self._source(self._request) as chunks:
            await session.set_connected(True)
            await self._pump(chunks, dispatcher)
