"""Tests for drip.schemas: wire events and request bodies."""

from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from drip.exceptions import RecordParseError
from drip.schemas import (
    DoneEvent,
    ErrorEvent,
    MetaEvent,
    MetricsSnapshot,
    RagSearchQuery,
    SentenceEvent,
    StreamRequest,
    TextStreamBody,
    VramStats,
    parse_event,
)

_METRICS = {
    "type": "metrics",
    "cpu_percent": 12.5,
    "ram": {
        "total_bytes": 8 * 1024**3,
        "used_bytes": 2 * 1024**3,
        "available_bytes": 6 * 1024**3,
        "percent": 25.0,
    },
    "swap": {"total_bytes": 1024**3, "used_bytes": 0, "percent": 0.0},
    "vram": {
        "available": True,
        "total_bytes": 4 * 1024**3,
        "used_bytes": 1024**3,
        "reserved_bytes": 512 * 1024**2,
    },
    "process": {"pid": 4242, "cpu_percent": 3.0, "rss_bytes": 300 * 1024**2, "vms_bytes": 0},
}


# ── parse_event ───────────────────────────────────────────────


class TestParseEvent:
    def test_sentence(self):
        event = parse_event('{"type":"sentence","translated":"hello world"}')
        assert isinstance(event, SentenceEvent)
        assert event.words() == ["hello", "world"]

    def test_meta(self):
        event = parse_event('{"type":"meta","english_in":"bonjour"}')
        assert isinstance(event, MetaEvent)
        assert event.english_in == "bonjour"

    def test_done(self):
        assert isinstance(parse_event('{"type":"done"}'), DoneEvent)

    def test_error_message(self):
        event = parse_event('{"type":"error","message":"oom"}')
        assert isinstance(event, ErrorEvent)
        assert event.message == "oom"

    def test_error_without_message(self):
        event = parse_event('{"type":"error"}')
        assert event.message == "unknown error"

    def test_metrics(self):
        event = parse_event(json.dumps(_METRICS))
        assert isinstance(event, MetricsSnapshot)
        assert event.cpu_percent == 12.5
        assert event.ram.percent == 25.0
        assert event.process.pid == 4242
        assert event.vram.percent == pytest.approx(25.0)

    def test_metrics_snapshot_alias(self):
        event = parse_event('{"type":"metrics-snapshot","cpu_percent":1}')
        assert isinstance(event, MetricsSnapshot)
        assert event.ram.total_bytes == 0

    def test_extra_fields_ignored(self):
        event = parse_event('{"type":"sentence","translated":"a","lang":"hi"}')
        assert event.translated == "a"

    def test_invalid_json(self):
        with pytest.raises(RecordParseError):
            parse_event('{"type":"sentence"')

    def test_unknown_type(self):
        with pytest.raises(RecordParseError, match="heartbeat"):
            parse_event('{"type":"heartbeat"}')

    def test_missing_type(self):
        with pytest.raises(RecordParseError):
            parse_event('{"translated":"x"}')

    def test_mistyped_field(self):
        with pytest.raises(RecordParseError):
            parse_event('{"type":"sentence","translated":5}')


class TestSentenceWords:
    def test_collapses_whitespace(self):
        event = SentenceEvent(translated="  one   two\tthree\n")
        assert event.words() == ["one", "two", "three"]

    def test_empty_sentence(self):
        assert SentenceEvent(translated="").words() == []


class TestVramStats:
    def test_unavailable_percent_is_zero(self):
        assert VramStats(available=False, total_bytes=10, used_bytes=5).percent == 0.0

    def test_zero_total(self):
        assert VramStats(available=True).percent == 0.0


# ── Requests ──────────────────────────────────────────────────


class TestTextStreamBody:
    def test_defaults(self):
        body = TextStreamBody(text="hello")
        assert body.model_dump() == {"text": "hello", "lang": "auto", "stream": True}

    def test_strips_text_and_normalizes_lang(self):
        body = TextStreamBody(text="  hi  ", lang=" HI ")
        assert body.text == "hi"
        assert body.lang == "hi"

    def test_blank_text_rejected(self):
        with pytest.raises(ValidationError):
            TextStreamBody(text="   ")

    def test_bad_language_rejected(self):
        with pytest.raises(ValidationError):
            TextStreamBody(text="hi", lang="english")


class TestStreamRequest:
    def test_for_text_builds_post(self):
        req = StreamRequest.for_text("/infer", TextStreamBody(text="x", lang="es"))
        assert req.method == "POST"
        assert req.path == "/infer"
        assert req.body == {"text": "x", "lang": "es", "stream": True}

    def test_default_is_bodiless_get(self):
        req = StreamRequest(path="/system/metrics")
        assert req.method == "GET"
        assert req.body is None


class TestRagSearchQuery:
    def test_defaults(self):
        query = RagSearchQuery(query="q")
        assert query.top_k == 3
        assert query.similarity_threshold == 0.35

    def test_bounds(self):
        with pytest.raises(ValidationError):
            RagSearchQuery(query="q", top_k=0)
        with pytest.raises(ValidationError):
            RagSearchQuery(query="q", similarity_threshold=1.5)
