"""Response schemas for the backend's request/response endpoints.

Model management and document-store calls return plain JSON objects;
these models give them names and defaults so missing keys never crash
the CLI.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class CurrentModel(BaseModel):
    """Result of ``GET /current_llm``."""

    loaded_llm: str | None = Field(default=None, description="Loaded model name, if any")
    server_url: str | None = Field(default=None, description="Inference server URL")


class ModelListing(BaseModel):
    """Result of ``GET /list_llms``."""

    downloaded_llms: list[str] = Field(default_factory=list)


class MeasureConfig(BaseModel):
    llm_name: str = ""
    max_tokens: int = 0
    n_ctx: int = 0
    n_gpu_layers: int = 0
    demo_prompt: str = ""


class MemoryUsage(BaseModel):
    baseline_rss_mb: float = 0.0
    loaded_rss_mb: float = 0.0
    peak_rss_mb: float = 0.0
    load_increase_mb: float = 0.0
    inference_increase_mb: float = 0.0


class VramUsage(BaseModel):
    total_mb: float = 0.0
    baseline_used_mb: float = 0.0
    loaded_used_mb: float = 0.0
    peak_used_mb: float = 0.0


class ModelMeasurement(BaseModel):
    """Performance report returned by ``POST /llm_metrics``."""

    config: MeasureConfig = Field(default_factory=MeasureConfig)
    model_size_gb: float = 0.0
    load_time_s: float = 0.0
    first_token_latency_ms: float = 0.0
    total_inference_time_s: float = 0.0
    tokens_per_second: float = 0.0
    output_length_tokens: int = 0
    output_text: str = ""
    memory: MemoryUsage = Field(default_factory=MemoryUsage)
    vram: VramUsage = Field(default_factory=VramUsage)


class RagDocument(BaseModel):
    id: str
    text: str = ""


class RagListing(BaseModel):
    """Result of ``GET /rag/list``."""

    documents: list[RagDocument] = Field(default_factory=list)


class RagSearchQuery(BaseModel):
    """Body for ``POST /rag/search``."""

    query: str = Field(min_length=1)
    top_k: int = Field(default=3, ge=1, le=20)
    similarity_threshold: float = Field(default=0.35, ge=0.0, le=1.0)


class RagSearchResult(BaseModel):
    results: list[str] = Field(default_factory=list)


class InferRawResult(BaseModel):
    """Result of ``POST /infer_raw``: one non-streaming completion."""

    prompt: str = ""
    final_prompt: str = Field(default="", description="Prompt after document-store augmentation")
    output: str = ""
    rag_used: list[str] | None = Field(default=None, description="Passages injected into the prompt")
