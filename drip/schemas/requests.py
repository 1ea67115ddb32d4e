"""Outbound request schemas.

``StreamRequest`` describes one HTTP call the transport should open;
``TextStreamBody`` is the JSON body shared by the chat and translate
endpoints.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

AUTO_LANGUAGE = "auto"


class TextStreamBody(BaseModel):
    """JSON body for an interactive streaming request."""

    text: str = Field(min_length=1, description="User-provided text")
    lang: str = Field(
        default=AUTO_LANGUAGE,
        pattern=r"^(auto|[a-z]{2})$",
        description="Two-letter language code, or 'auto' to detect",
    )
    stream: bool = Field(default=True, description="Request streamed delivery")

    @field_validator("text", mode="before")
    @classmethod
    def _strip_text(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("lang", mode="before")
    @classmethod
    def _normalize_lang(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value


class StreamRequest(BaseModel):
    """One streaming HTTP call, relative to the client's base URL."""

    method: Literal["GET", "POST"] = "GET"
    path: str = Field(description="Endpoint path, e.g. '/infer'")
    body: dict[str, Any] | None = Field(
        default=None, description="JSON body, None for bodiless requests"
    )

    @classmethod
    def for_text(cls, path: str, body: TextStreamBody) -> StreamRequest:
        """Build a POST request carrying a text body."""
        return cls(method="POST", path=path, body=body.model_dump())
