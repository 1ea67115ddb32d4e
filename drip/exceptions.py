"""Exception hierarchy for the drip client.

Parse errors are recovered inside a session; transport errors end the
current stream attempt; backend errors surface from request/response calls.
"""

from __future__ import annotations

TIMEOUT_REASON = "Request aborted: timeout"


class DripError(Exception):
    """Base exception for all drip errors."""


class RecordParseError(DripError):
    """A record body could not be parsed into a typed event."""


class StreamTransportError(DripError):
    """The byte stream failed: connection reset, read failure, bad status."""


class StreamTimeoutError(StreamTransportError, TimeoutError):
    """The stream exceeded its client-side deadline."""

    def __init__(self, message: str = TIMEOUT_REASON) -> None:
        super().__init__(message)


class BackendError(DripError):
    """A request/response call to the backend failed."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
