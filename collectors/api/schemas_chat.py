"""Pydantic schemas for chat API endpoints.

Field names are camelCase on the wire. Request fields are optional at the
schema level so that blank or missing values reach the service and come
back as 400 rather than 422.
"""

from typing import Any

from pydantic import Field

from collectors.orchestrator.models import CamelModel


class ChatRequest(CamelModel):
    """Request body for POST /api/chat."""

    message: str | None = None
    session_id: str | None = None
    collection_id: str | None = None
    research_mode: bool | None = Field(
        default=None,
        description="True forces product research, false disables it",
    )


class ChatResponse(CamelModel):
    """Assistant reply for one turn."""

    message: str
    session_id: str
    metadata: dict[str, Any] | None = None


class SuggestionsResponse(CamelModel):
    suggestions: list[str]


class ChatSessionSummary(CamelModel):
    """A chat session as listed in the sidebar."""

    id: str
    title: str | None = None
    created_at: str
    updated_at: str
    message_count: int = 0


class ChatSessionListResponse(CamelModel):
    sessions: list[ChatSessionSummary]


class ChatMessageResponse(CamelModel):
    id: str
    role: str
    content: str
    metadata: dict[str, Any] | None = None
    sequence: int
    created_at: str


class ChatSessionDetailResponse(CamelModel):
    """A session with its full message history."""

    session: ChatSessionSummary
    messages: list[ChatMessageResponse]
