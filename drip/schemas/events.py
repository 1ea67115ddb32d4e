"""Wire event schemas for the record stream.

Every record body is a JSON object tagged by ``type``. The models below form
a discriminated union so one ``TypeAdapter`` call both validates the body
and selects the variant.
"""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from drip.exceptions import RecordParseError


class MetaEvent(BaseModel):
    """Normalized input echoed back before generation starts."""

    type: Literal["meta"] = "meta"
    english_in: str = Field(default="", description="Input text after normalization")


class SentenceEvent(BaseModel):
    """One generated or translated sentence fragment."""

    type: Literal["sentence"] = "sentence"
    translated: str = Field(default="", description="Sentence text to reveal")

    def words(self) -> list[str]:
        """Split the sentence on whitespace, dropping empty units."""
        return self.translated.split()


class DoneEvent(BaseModel):
    """Marks the end of the stream."""

    type: Literal["done"] = "done"


class ErrorEvent(BaseModel):
    """Fatal stream-level error reported by the backend."""

    type: Literal["error"] = "error"
    message: str = Field(default="unknown error", description="Backend error message")


# ── Metrics snapshot ──────────────────────────────────────────────


class RamStats(BaseModel):
    total_bytes: int = Field(default=0, ge=0)
    used_bytes: int = Field(default=0, ge=0)
    available_bytes: int = Field(default=0, ge=0)
    percent: float = Field(default=0.0, ge=0.0)


class SwapStats(BaseModel):
    total_bytes: int = Field(default=0, ge=0)
    used_bytes: int = Field(default=0, ge=0)
    percent: float = Field(default=0.0, ge=0.0)


class VramStats(BaseModel):
    available: bool = False
    total_bytes: int = Field(default=0, ge=0)
    used_bytes: int = Field(default=0, ge=0)
    reserved_bytes: int = Field(default=0, ge=0)

    @property
    def percent(self) -> float:
        """Used VRAM as a percentage of total, 0 when unavailable."""
        if not self.available or not self.total_bytes:
            return 0.0
        return self.used_bytes / self.total_bytes * 100


class ProcessStats(BaseModel):
    pid: int = 0
    cpu_percent: float = Field(default=0.0, ge=0.0)
    rss_bytes: int = Field(default=0, ge=0)
    vms_bytes: int = Field(default=0, ge=0)


class MetricsSnapshot(BaseModel):
    """A point-in-time resource snapshot pushed by the metrics feed.

    Applied immediately on arrival; never queued behind the reveal pacing.
    """

    type: Literal["metrics", "metrics-snapshot"] = "metrics"
    cpu_percent: float = Field(default=0.0, ge=0.0)
    ram: RamStats = Field(default_factory=RamStats)
    swap: SwapStats = Field(default_factory=SwapStats)
    vram: VramStats = Field(default_factory=VramStats)
    process: ProcessStats = Field(default_factory=ProcessStats)


StreamEvent = Annotated[
    Union[MetaEvent, SentenceEvent, DoneEvent, ErrorEvent, MetricsSnapshot],
    Field(discriminator="type"),
]

_EVENT_ADAPTER: TypeAdapter[StreamEvent] = TypeAdapter(StreamEvent)


def parse_event(body: str) -> StreamEvent:
    """Parse a record body into its typed event.

    Args:
        body: The JSON text following the record prefix.

    Returns:
        The matching event model.

    Raises:
        RecordParseError: If the body is not valid JSON, carries an unknown
            ``type``, or has mistyped fields.
    """
    try:
        return _EVENT_ADAPTER.validate_json(body)
    except ValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {}
        detail = first.get("msg", str(exc))
        raise RecordParseError(f"{detail}: {body[:120]}") from exc
