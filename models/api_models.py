# models/api_models.py
"""Request and response bodies for the HTTP endpoints."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ChatRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    messages: list[dict[str, Any]]
    temperature: float = 0.7
    max_tokens: int = 4096
    model: str | None = None
    tools: list[dict[str, Any]] | None = None
    config: dict[str, Any] | None = None

    @field_validator("messages")
    @classmethod
    def require_messages(cls, value: list[dict[str, Any]]) -> list[dict[str, Any]]:
        if not value:
            raise ValueError("Messages array is required")
        return value


class ChatResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    content: str
    candidates: list[dict[str, Any]] | None = None
    usage: dict[str, int] | None = None
    finish_reason: str | None = Field(default=None, alias="finishReason")
    truncated: bool = False
    key_used: int = Field(alias="keyUsed")


class SourceMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    name: str
    mime_type: str | None = Field(default=None, alias="mimeType")
    is_binary: bool = Field(default=False, alias="isBinary")
    url: str | None = None

    @field_validator("name")
    @classmethod
    def require_name(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("metadata.name must not be empty")
        return value


class PreprocessSource(BaseModel):
    type: Literal["file", "url"]
    content: str
    metadata: SourceMetadata

    @field_validator("content")
    @classmethod
    def require_content(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("content must not be empty")
        return value


class PreprocessRequest(BaseModel):
    sources: list[PreprocessSource]

    @field_validator("sources")
    @classmethod
    def require_sources(cls, value: list[PreprocessSource]) -> list[PreprocessSource]:
        if not value:
            raise ValueError("At least one source is required")
        return value


class PreprocessResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    cleaned_texts: list[str] = Field(alias="cleanedTexts")
    sources_processed: int = Field(alias="sourcesProcessed")
    key_used: int = Field(alias="keyUsed")


class ErrorEnvelope(BaseModel):
    """JSON body returned for every failed request."""

    model_config = ConfigDict(populate_by_name=True)

    error: str
    type: str
    details: str | None = None
    keys_attempted: int | None = Field(default=None, alias="keysAttempted")

    def to_body(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)
