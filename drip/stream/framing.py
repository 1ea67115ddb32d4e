"""Frame reader for ``data: <json>\\n\\n`` record streams.

Turns byte chunks of arbitrary size into complete record strings. The
decoder is incremental, so a multi-byte character split across chunks is
held back until its remaining bytes arrive, and the unterminated tail of
the text buffer is carried into the next read.
"""

from __future__ import annotations

import codecs
import logging
from collections.abc import AsyncIterable, AsyncIterator

logger = logging.getLogger(__name__)

RECORD_DELIMITER = "\n\n"
RECORD_PREFIX = "data: "


class FrameReader:
    """Incremental record framer.

    Feed byte chunks and collect the records they complete. Call
    :meth:`flush` once at end-of-stream to recover a final record that
    arrived without its trailing delimiter.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""

    @property
    def pending(self) -> str:
        """The carry-over fragment waiting for more bytes."""
        return self._buffer

    def feed(self, chunk: bytes) -> list[str]:
        """Decode a chunk and return the records it completes, in order."""
        self._buffer += self._decoder.decode(chunk)
        *records, self._buffer = self._buffer.split(RECORD_DELIMITER)
        return records

    def flush(self) -> list[str]:
        """Finish decoding and return the trailing record, if it is one."""
        tail = (self._buffer + self._decoder.decode(b"", final=True)).strip()
        self._buffer = ""
        if tail.startswith(RECORD_PREFIX):
            return [tail]
        if tail:
            logger.debug("Dropping unterminated fragment at end of stream: %.80r", tail)
        return []


async def iter_records(
    chunks: AsyncIterable[bytes], reader: FrameReader | None = None
) -> AsyncIterator[str]:
    """Yield records framed from an async byte source.

    Lazy and single-pass: records come out as soon as the chunk that
    completes them has been read. Transport errors and cancellation raised
    by the source propagate unchanged, and any partial fragment is lost
    with the reader.

    Args:
        chunks: Async iterable of raw byte chunks.
        reader: Optional FrameReader to use (a fresh one by default).
    """
    reader = reader or FrameReader()
    async for chunk in chunks:
        for record in reader.feed(chunk):
            yield record
    for record in reader.flush():
        yield record
