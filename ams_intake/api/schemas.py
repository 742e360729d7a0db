"""Pydantic schemas for the FastAPI endpoints."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator


class HistoryTurn(BaseModel):
    """One prior turn as sent by the chat client.

    Roles other than ``assistant`` are treated as ``user`` downstream;
    the model accepts anything so a sloppy client is coerced, not rejected.
    """

    role: Any = None
    content: Any = None


class ChatRequest(BaseModel):
    """Incoming chat message from the frontend."""

    message: str = Field(..., max_length=4000, description="The user's message")
    history: list[HistoryTurn] = Field(
        default_factory=list,
        description="Recent conversation turns, oldest first",
    )
    max_output_tokens: float | None = Field(
        default=None,
        description="Requested completion size; never lowers the service floor",
    )

    @field_validator("message", mode="before")
    @classmethod
    def message_not_blank(cls, value: Any) -> str:
        text = ("" if value is None else str(value)).strip()
        if not text:
            raise ValueError("message required")
        return text

    @field_validator("history", mode="before")
    @classmethod
    def history_is_list(cls, value: Any) -> list:
        if not isinstance(value, list):
            return []
        return [entry for entry in value if isinstance(entry, dict)]

    @field_validator("max_output_tokens", mode="before")
    @classmethod
    def tokens_numeric(cls, value: Any) -> float | None:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        return value


class ChatResponse(BaseModel):
    """Response from the assistant."""

    reply: str = Field(..., description="The assistant's response message")
    debug: dict[str, Any] | None = Field(
        default=None, description="Diagnostics, present only with ?debug=1",
    )


class ErrorDetail(BaseModel):
    kind: str
    message: str
    status: int | None = None
    detail: Any = None


class ErrorResponse(BaseModel):
    """Structured failure body returned for every error."""

    error: ErrorDetail


class LookupResponse(BaseModel):
    """Provider or schedule listing."""

    source: Literal["emr", "directory"]
    count: int
    items: list[Any]


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    service: str = "ams-intake-assistant"


class DiagResponse(BaseModel):
    """Configuration presence report; never contains secrets."""

    completion: dict[str, Any]
    search: dict[str, Any]
    emr: dict[str, Any]
    files_present: dict[str, bool]
    reference_timezone: str
