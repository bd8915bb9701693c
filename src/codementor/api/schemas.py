"""Request/response schemas for the HTTP API."""

from typing import Any, Literal

from pydantic import BaseModel, Field


class APIResponse(BaseModel):
    """Standard response envelope for all API endpoints."""

    success: bool
    data: Any | None = None
    error: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class RefactorRequest(BaseModel):
    """Request body for POST /api/sessions/{id}/refactor."""

    feedback_id: str = Field(min_length=1)


class LiveMessage(BaseModel):
    """Client-to-server frame on the live feedback channel."""

    type: Literal["subscribe-session", "unsubscribe-session"]
    session_id: str = Field(min_length=1)
