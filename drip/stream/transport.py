"""HTTP byte sources for stream sessions.

A byte source opens one streaming request and yields the raw body chunks.
Supervisors depend only on the ``ByteSource`` signature, so tests can pass
a plain async generator instead of a network connection.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager

import httpx

from drip.exceptions import StreamTransportError
from drip.schemas.requests import StreamRequest

logger = logging.getLogger(__name__)

# Opens a request and yields its body chunks while the context is active
ByteSource = Callable[[StreamRequest], AbstractAsyncContextManager[AsyncIterator[bytes]]]

STREAM_HEADERS = {"Accept": "text/event-stream"}


def stream_timeout(connect: float = 10.0) -> httpx.Timeout:
    """Timeout for streaming clients: bounded connect, unbounded reads.

    Interactive deadlines are enforced per session; the metrics feed may
    stay quiet between snapshots for as long as the server likes.
    """
    return httpx.Timeout(connect=connect, read=None, write=connect, pool=connect)


class HttpByteSource:
    """Opens streaming requests on a shared ``httpx.AsyncClient``.

    httpx failures raised while connecting or while reading the body are
    re-raised as StreamTransportError; anything else passes through.
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    def __call__(
        self, request: StreamRequest
    ) -> AbstractAsyncContextManager[AsyncIterator[bytes]]:
        return self.open(request)

    @asynccontextmanager
    async def open(self, request: StreamRequest) -> AsyncIterator[AsyncIterator[bytes]]:
        try:
            async with self._client.stream(
                request.method,
                request.path,
                json=request.body,
                headers=STREAM_HEADERS,
            ) as response:
                if response.is_error:
                    await response.aread()
                    raise StreamTransportError(
                        f"HTTP {response.status_code} from {request.path}: "
                        f"{response.text[:120]}"
                    )
                logger.debug("Stream opened: %s %s", request.method, request.path)
                yield response.aiter_bytes()
        except httpx.HTTPError as exc:
            raise StreamTransportError(_describe(exc)) from exc


def _describe(error: httpx.HTTPError) -> str:
    """Short, readable reason for an httpx failure."""
    if isinstance(error, httpx.ConnectError):
        return f"connection error: {error}"
    if isinstance(error, httpx.TimeoutException):
        return f"transport timeout: {error}"
    if isinstance(error, httpx.RemoteProtocolError):
        return f"connection closed: {error}"
    return str(error) or type(error).__name__
