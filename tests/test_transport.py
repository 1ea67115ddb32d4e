"""Tests for drip.stream.transport and the streaming side of DripClient."""

from __future__ import annotations

import json

import httpx
import pytest

from drip.client import DripClient
from drip.exceptions import StreamTransportError
from drip.schemas.requests import StreamRequest
from drip.settings import ClientConfig
from drip.stream.session import SessionState, TextAccumulator
from drip.stream.transport import STREAM_HEADERS, HttpByteSource, stream_timeout

_BODY = (
    b'data: {"type":"meta","english_in":"hi"}\n\n'
    b'data: {"type":"sentence","translated":"hello there"}\n\n'
    b'data: {"type":"done"}\n\n'
)


def _config(**overrides) -> ClientConfig:
    defaults = {"base_url": "http://backend.test", "reveal_interval": 0.001}
    defaults.update(overrides)
    return ClientConfig(**defaults)


async def _read(source: HttpByteSource, request: StreamRequest) -> bytes:
    async with source(request) as chunks:
        return b"".join([c async for c in chunks])


# ── HttpByteSource ────────────────────────────────────────────


class TestHttpByteSource:
    @pytest.mark.asyncio
    async def test_streams_body_and_sends_headers(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, content=_BODY)

        async with httpx.AsyncClient(
            base_url="http://backend.test", transport=httpx.MockTransport(handler)
        ) as client:
            body = await _read(
                HttpByteSource(client),
                StreamRequest(method="POST", path="/infer", body={"text": "hi"}),
            )

        assert body == _BODY
        assert seen[0].method == "POST"
        assert seen[0].url.path == "/infer"
        assert seen[0].headers["accept"] == STREAM_HEADERS["Accept"]
        assert json.loads(seen[0].content) == {"text": "hi"}

    @pytest.mark.asyncio
    async def test_error_status_raises(self):
        transport = httpx.MockTransport(lambda r: httpx.Response(503, text="busy"))
        async with httpx.AsyncClient(base_url="http://backend.test", transport=transport) as client:
            with pytest.raises(StreamTransportError, match="HTTP 503"):
                await _read(HttpByteSource(client), StreamRequest(path="/system/metrics"))

    @pytest.mark.asyncio
    async def test_connect_error_is_wrapped(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with httpx.AsyncClient(
            base_url="http://backend.test", transport=httpx.MockTransport(handler)
        ) as client:
            with pytest.raises(StreamTransportError, match="connection error"):
                await _read(HttpByteSource(client), StreamRequest(path="/system/metrics"))

    def test_stream_timeout_has_no_read_limit(self):
        timeout = stream_timeout(connect=3.0)
        assert timeout.read is None
        assert timeout.connect == 3.0


# ── DripClient streaming ──────────────────────────────────────


class TestClientStreaming:
    @pytest.mark.asyncio
    async def test_chat_end_to_end(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, content=_BODY)

        sink = TextAccumulator()
        async with DripClient(_config(), transport=httpx.MockTransport(handler)) as client:
            session = await client.chat("hi", lang="en", sink=sink)

        assert session.state == SessionState.COMPLETED
        assert sink.text == "hello there"
        assert session.sink is sink
        assert list(session.log) == ["English input: hi", "Prompt generated", "Response complete"]
        assert seen[0].url.path == "/infer"
        assert json.loads(seen[0].content) == {"text": "hi", "lang": "en", "stream": True}

    @pytest.mark.asyncio
    async def test_translate_uses_translate_endpoint(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, content=_BODY)

        async with DripClient(_config(), transport=httpx.MockTransport(handler)) as client:
            session = await client.translate("hola")

        assert seen[0].url.path == "/translate"
        assert json.loads(seen[0].content)["lang"] == "auto"
        assert session.sink.text == "hello there"

    @pytest.mark.asyncio
    async def test_server_error_fails_session(self):
        transport = httpx.MockTransport(lambda r: httpx.Response(500, text="boom"))
        async with DripClient(_config(), transport=transport) as client:
            session = await client.chat("hi")

        assert session.state == SessionState.FAILED
        assert "HTTP 500" in session.error

    @pytest.mark.asyncio
    async def test_metrics_supervisor_uses_config(self):
        transport = httpx.MockTransport(lambda r: httpx.Response(200, content=b""))
        async with DripClient(
            _config(reconnect_delay=1.5), transport=transport
        ) as client:
            supervisor = client.metrics_supervisor()

        assert supervisor.reconnect_delay == 1.5
        assert supervisor.request.method == "GET"
        assert supervisor.request.path == "/system/metrics"

    @pytest.mark.asyncio
    async def test_blank_text_rejected_before_request(self):
        calls: list[httpx.Request] = []
        transport = httpx.MockTransport(lambda r: calls.append(r) or httpx.Response(200))
        async with DripClient(_config(), transport=transport) as client:
            with pytest.raises(ValueError):
                client.chat_supervisor("   ")
        assert calls == []
