"""Tests for drip.stream.framing: incremental record framing."""

from __future__ import annotations

import json

import pytest

from drip.stream.framing import RECORD_DELIMITER, RECORD_PREFIX, FrameReader, iter_records

# ── Helpers ───────────────────────────────────────────────────


def _record(payload: dict) -> str:
    return f"{RECORD_PREFIX}{json.dumps(payload, ensure_ascii=False)}"


def _wire(*payloads: dict) -> bytes:
    return "".join(_record(p) + RECORD_DELIMITER for p in payloads).encode("utf-8")


def _frame(chunks: list[bytes]) -> list[str]:
    reader = FrameReader()
    records: list[str] = []
    for chunk in chunks:
        records.extend(reader.feed(chunk))
    records.extend(reader.flush())
    return records


async def _agen(chunks: list[bytes]):
    for chunk in chunks:
        yield chunk


_STREAM = _wire(
    {"type": "meta", "english_in": "hello"},
    {"type": "sentence", "translated": "नमस्ते दुनिया"},
    {"type": "sentence", "translated": "你好 世界"},
    {"type": "done"},
)


# ── FrameReader ───────────────────────────────────────────────


class TestFrameReader:
    def test_single_chunk_multiple_records(self):
        records = _frame([_wire({"type": "done"}, {"type": "done"})])
        assert records == [_record({"type": "done"})] * 2

    def test_record_split_inside_body(self):
        records = _frame([b'data: {"typ', b'e":"done"}\n\n'])
        assert records == ['data: {"type":"done"}']

    def test_record_split_inside_delimiter(self):
        reader = FrameReader()
        assert reader.feed(b'data: {"type":"done"}\n') == []
        assert reader.pending == 'data: {"type":"done"}\n'
        assert reader.feed(b"\n") == ['data: {"type":"done"}']
        assert reader.pending == ""

    def test_partial_record_is_carried_over(self):
        reader = FrameReader()
        first = reader.feed(b'data: {"type":"done"}\n\ndata: {"type"')
        assert first == ['data: {"type":"done"}']
        assert reader.pending == 'data: {"type"'

    def test_byte_by_byte_matches_single_chunk(self):
        whole = _frame([_STREAM])
        split = _frame([bytes([b]) for b in _STREAM])
        assert split == whole
        assert len(whole) == 4

    def test_every_two_way_split_is_equivalent(self):
        expected = _frame([_STREAM])
        for i in range(len(_STREAM) + 1):
            assert _frame([_STREAM[:i], _STREAM[i:]]) == expected

    def test_every_three_way_split_is_equivalent(self):
        data = _wire({"type": "sentence", "translated": "é ü"}, {"type": "done"})
        expected = _frame([data])
        for i in range(len(data) + 1):
            for j in range(i, len(data) + 1):
                assert _frame([data[:i], data[i:j], data[j:]]) == expected

    def test_multibyte_character_split_across_chunks(self):
        data = _wire({"type": "sentence", "translated": "€"})
        cut = data.index("€".encode()) + 1
        reader = FrameReader()
        assert reader.feed(data[:cut]) == []
        assert "�" not in reader.pending
        records = reader.feed(data[cut:])
        assert records == [_record({"type": "sentence", "translated": "€"})]

    def test_invalid_utf8_is_replaced(self):
        records = _frame([b"data: \xff\n\n"])
        assert records == ["data: �"]

    def test_empty_chunk_yields_nothing(self):
        reader = FrameReader()
        assert reader.feed(b"") == []
        assert reader.pending == ""


class TestFlush:
    def test_flush_emits_unterminated_record(self):
        reader = FrameReader()
        assert reader.feed(b'data: {"type":"done"}') == []
        assert reader.flush() == ['data: {"type":"done"}']
        assert reader.pending == ""

    def test_flush_drops_fragment_without_prefix(self):
        reader = FrameReader()
        reader.feed(b'{"type":"done"}')
        assert reader.flush() == []

    def test_flush_on_empty_buffer(self):
        assert FrameReader().flush() == []

    def test_flush_ignores_trailing_whitespace(self):
        reader = FrameReader()
        reader.feed(b'data: {"type":"done"}\n\n\n')
        assert reader.flush() == []


# ── iter_records ──────────────────────────────────────────────


class TestIterRecords:
    @pytest.mark.asyncio
    async def test_yields_in_order(self):
        chunks = [_STREAM[:10], _STREAM[10:57], _STREAM[57:]]
        records = [r async for r in iter_records(_agen(chunks))]
        assert records == _frame([_STREAM])

    @pytest.mark.asyncio
    async def test_flushes_tail_at_end_of_stream(self):
        records = [r async for r in iter_records(_agen([b'data: {"type":"done"}']))]
        assert records == ['data: {"type":"done"}']

    @pytest.mark.asyncio
    async def test_source_error_propagates(self):
        async def _failing():
            yield b'data: {"type":"done"}\n\n'
            raise ConnectionResetError("reset")

        seen: list[str] = []
        with pytest.raises(ConnectionResetError):
            async for record in iter_records(_failing()):
                seen.append(record)
        assert seen == ['data: {"type":"done"}']

    @pytest.mark.asyncio
    async def test_uses_given_reader(self):
        reader = FrameReader()
        records = [r async for r in iter_records(_agen([b"data: x\n\ndata: y"]), reader)]
        assert records == ["data: x", "data: y"]
        assert reader.pending == ""
