"""drip schema definitions.

Pydantic v2 models for wire events, outbound requests and backend
responses.
"""

from drip.schemas.backend import (
    CurrentModel,
    ModelListing,
    ModelMeasurement,
    RagDocument,
    RagListing,
    RagSearchQuery,
    RagSearchResult,
)
from drip.schemas.events import (
    DoneEvent,
    ErrorEvent,
    MetaEvent,
    MetricsSnapshot,
    ProcessStats,
    RamStats,
    SentenceEvent,
    StreamEvent,
    SwapStats,
    VramStats,
    parse_event,
)
from drip.schemas.requests import AUTO_LANGUAGE, StreamRequest, TextStreamBody

__all__ = [
    "AUTO_LANGUAGE",
    "CurrentModel",
    "DoneEvent",
    "ErrorEvent",
    "MetaEvent",
    "MetricsSnapshot",
    "ModelListing",
    "ModelMeasurement",
    "ProcessStats",
    "RagDocument",
    "RagListing",
    "RagSearchQuery",
    "RagSearchResult",
    "RamStats",
    "SentenceEvent",
    "StreamEvent",
    "StreamRequest",
    "SwapStats",
    "TextStreamBody",
    "VramStats",
    "parse_event",
]
