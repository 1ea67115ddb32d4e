"""Backend client facade.

``DripClient`` is the one place drip talks to the edge assistant backend.
It builds supervised stream sessions for chat, translation and the metrics
feed, and wraps the plain request/response endpoints for model and
document-store management. Request/response calls retry transient
failures with exponential backoff; streams never retry on their own.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx
from pydantic import ValidationError

from drip.exceptions import BackendError
from drip.schemas.backend import (
    CurrentModel,
    InferRawResult,
    ModelListing,
    ModelMeasurement,
    RagDocument,
    RagListing,
    RagSearchQuery,
    RagSearchResult,
)
from drip.schemas.requests import StreamRequest, TextStreamBody
from drip.settings import ClientConfig, load_client_config
from drip.stream.events import SessionEventEmitter
from drip.stream.session import SessionKind, StreamSession, TextAccumulator
from drip.stream.supervisor import MetricsSupervisor, SessionSupervisor
from drip.stream.transport import HttpByteSource, stream_timeout

logger = logging.getLogger(__name__)

# Max attempts for transient request/response failures
_MAX_RETRIES = 3
_BASE_BACKOFF = 1.0  # seconds


def _short_error_reason(error: Exception) -> str:
    """Map an httpx failure to a concise description."""
    if isinstance(error, httpx.HTTPStatusError):
        code = error.response.status_code
        if code == 503:
            return "service unavailable"
        return f"server error {code}"
    if isinstance(error, httpx.TimeoutException):
        return "timeout"
    if isinstance(error, httpx.ConnectError):
        return "connection error"
    return str(error)[:80] or type(error).__name__


def filename_from_url(url: str) -> str:
    """Last path segment of a download URL, or '' when there is none."""
    try:
        path = httpx.URL(url).path
    except httpx.InvalidURL:
        return ""
    return path.rsplit("/", 1)[-1]


class DripClient:
    """Async client for the edge assistant backend.

    Use as an async context manager so the underlying connection pool is
    closed::

        async with DripClient() as client:
            session = await client.chat("hello", lang="en")
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        emitter: SessionEventEmitter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config or load_client_config()
        self._emitter = emitter
        self._http = httpx.AsyncClient(
            base_url=self._config.base_url,
            timeout=stream_timeout(),
            transport=transport,
        )
        self._source = HttpByteSource(self._http)

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def emitter(self) -> SessionEventEmitter | None:
        return self._emitter

    async def __aenter__(self) -> DripClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # ── Streaming sessions ────────────────────────────────────────

    def _interactive(
        self,
        kind: SessionKind,
        path: str,
        text: str,
        lang: str | None,
        sink: TextAccumulator | None,
    ) -> SessionSupervisor:
        body = TextStreamBody(text=text, lang=lang or self._config.default_lang)
        session = StreamSession(kind, sink=sink, emitter=self._emitter)
        return SessionSupervisor(
            session,
            self._source,
            StreamRequest.for_text(path, body),
            timeout=self._config.request_timeout,
            reveal_interval=self._config.reveal_interval,
        )

    def chat_supervisor(
        self, text: str, *, lang: str | None = None, sink: TextAccumulator | None = None
    ) -> SessionSupervisor:
        """Prepare a chat session against the inference endpoint.

        Raises:
            pydantic.ValidationError: If the text is blank or the language
                selector is not 'auto' or a two-letter code.
        """
        return self._interactive(
            SessionKind.CHAT, self._config.endpoints.chat, text, lang, sink
        )

    def translate_supervisor(
        self, text: str, *, lang: str | None = None, sink: TextAccumulator | None = None
    ) -> SessionSupervisor:
        """Prepare a translation session."""
        return self._interactive(
            SessionKind.TRANSLATE, self._config.endpoints.translate, text, lang, sink
        )

    def metrics_supervisor(self, session: StreamSession | None = None) -> MetricsSupervisor:
        """Prepare the standing metrics feed."""
        session = session or StreamSession(SessionKind.METRICS, emitter=self._emitter)
        return MetricsSupervisor(
            session,
            self._source,
            StreamRequest(method="GET", path=self._config.endpoints.metrics),
            reconnect_delay=self._config.reconnect_delay,
        )

    async def chat(
        self, text: str, *, lang: str | None = None, sink: TextAccumulator | None = None
    ) -> StreamSession:
        """Run a chat session to completion and return it."""
        return await self.chat_supervisor(text, lang=lang, sink=sink).run()

    async def translate(
        self, text: str, *, lang: str | None = None, sink: TextAccumulator | None = None
    ) -> StreamSession:
        """Run a translation session to completion and return it."""
        return await self.translate_supervisor(text, lang=lang, sink=sink).run()

    # ── Model management ──────────────────────────────────────────

    async def current_model(self) -> CurrentModel:
        data = await self._request("GET", "/current_llm")
        return self._parse(CurrentModel, data)

    async def list_models(self) -> list[str]:
        data = await self._request("GET", "/list_llms")
        return self._parse(ModelListing, data).downloaded_llms

    async def load_model(self, name: str) -> None:
        await self._request("POST", "/load_llm", json={"name": name})
        logger.info("Loaded model %s", name)

    async def unload_model(self) -> None:
        await self._request("POST", "/unload_llm")
        logger.info("Unloaded model")

    async def download_model(self, url: str, name: str | None = None) -> str:
        """Ask the backend to download a model file.

        Args:
            url: Download link.
            name: Target model name. Defaults to the URL's file name.

        Returns:
            The model name used.

        Raises:
            ValueError: If no name is given and the URL has no file name.
            BackendError: If the backend rejects or fails the download.
        """
        name = (name or filename_from_url(url)).strip()
        if not name:
            raise ValueError(f"Cannot derive a model name from {url!r}")
        await self._request(
            "POST",
            "/download_llm",
            json={"url": url, "name": name},
            timeout=self._config.download_timeout,
        )
        return name

    async def measure_model(self, name: str) -> ModelMeasurement:
        """Run the backend's load/latency/memory measurement for a model."""
        data = await self._request(
            "POST",
            "/llm_metrics",
            json={"llm_name": name},
            timeout=self._config.measure_timeout,
        )
        return self._parse(ModelMeasurement, data)

    async def infer_raw(self, prompt: str) -> InferRawResult:
        """Run one non-streaming completion on the loaded model.

        Raises:
            ValueError: If the prompt is blank.
            BackendError: If the backend rejects or fails the call.
        """
        prompt = prompt.strip()
        if not prompt:
            raise ValueError("Prompt must not be empty")
        data = await self._request("POST", "/infer_raw", json={"prompt": prompt})
        return self._parse(InferRawResult, data)

    # ── Document store ────────────────────────────────────────────

    async def list_documents(self) -> list[RagDocument]:
        data = await self._request("GET", "/rag/list")
        return self._parse(RagListing, data).documents

    async def add_document(self, text: str) -> None:
        text = text.strip()
        if not text:
            raise ValueError("Document text must not be empty")
        await self._request("POST", "/rag/add", json={"text": text})

    async def clear_documents(self) -> None:
        await self._request("POST", "/rag/clear")

    async def search_documents(
        self, query: str, *, top_k: int = 3, similarity_threshold: float = 0.35
    ) -> list[str]:
        body = RagSearchQuery(
            query=query.strip(), top_k=top_k, similarity_threshold=similarity_threshold
        )
        data = await self._request("POST", "/rag/search", json=body.model_dump())
        return self._parse(RagSearchResult, data).results

    # ── Plumbing ──────────────────────────────────────────────────

    @staticmethod
    def _parse(model: type, data: Any) -> Any:
        try:
            return model.model_validate(data or {})
        except ValidationError as exc:
            raise BackendError(f"Unexpected response shape for {model.__name__}: {exc}") from exc

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Any:
        """Send a request/response call with exponential backoff retry.

        Connection failures, timeouts and 5xx responses are retried; 4xx
        responses fail immediately.

        Raises:
            BackendError: If the call fails after all retries, or with a
                client error status.
        """
        last_error: Exception | None = None

        for attempt in range(_MAX_RETRIES):
            try:
                response = await self._http.request(
                    method, path, json=json, timeout=timeout or self._config.backend_timeout
                )
                response.raise_for_status()
                return response.json() if response.content else {}
            except httpx.HTTPStatusError as e:
                if e.response.status_code < 500:
                    raise BackendError(
                        f"{method} {path} failed: HTTP {e.response.status_code} "
                        f"{e.response.text[:120]}",
                        status_code=e.response.status_code,
                    ) from e
                last_error = e
            except httpx.TransportError as e:
                last_error = e
            except ValueError as e:
                raise BackendError(f"{method} {path} returned invalid JSON") from e

            if attempt < _MAX_RETRIES - 1:
                backoff = _BASE_BACKOFF * (2**attempt)
                logger.warning(
                    "Retry %d/%d for %s %s (%s, backoff: %.1fs)",
                    attempt + 1, _MAX_RETRIES, method, path,
                    _short_error_reason(last_error), backoff,
                )
                await asyncio.sleep(backoff)

        status = (
            last_error.response.status_code
            if isinstance(last_error, httpx.HTTPStatusError)
            else None
        )
        raise BackendError(
            f"{method} {path} failed after {_MAX_RETRIES} attempts: "
            f"{_short_error_reason(last_error)}",
            status_code=status,
        ) from last_error
