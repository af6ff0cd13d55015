"""
NewsBot - HTTP Request / Response Bodies
==========================================
Pydantic models for the REST surface.  Domain models (``ChatOptions``,
``SearchOptions``, ``ConversationMessage``) are reused as-is; this
module only adds the envelopes around them.

Request fields accept both ``snake_case`` and the ``camelCase`` names
used by the web client (``sessionId``, ``topK``, ...).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from newsbot.src.core.models import ChatOptions, ConversationMessage, SearchOptions


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    session_id: str | None = Field(default=None, alias="sessionId")
    options: ChatOptions = Field(default_factory=ChatOptions)


class SessionSummary(BaseModel):
    message_count: int = 0
    created_at: datetime | None = None
    last_activity: datetime | None = None
    conversation_length: int | None = None
    context_managed: bool | None = None


class ChatResponse(BaseModel):
    session_id: str
    message: ConversationMessage
    rag_context: dict[str, Any] = Field(default_factory=dict)
    session_info: SessionSummary = Field(default_factory=SessionSummary)
    processing_error: str | None = None


class Pagination(BaseModel):
    limit: int
    offset: int
    total: int
    has_more: bool


class HistoryResponse(BaseModel):
    session_id: str
    messages: list[ConversationMessage]
    pagination: Pagination
    session_info: SessionSummary


class SessionActionResponse(BaseModel):
    session_id: str
    deleted: bool = False
    cleared: bool = False
    messages_deleted: int = 0
    messages_cleared: int = 0


class SearchRequest(BaseModel):
    query: str
    options: SearchOptions = Field(default_factory=SearchOptions)


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    components: dict[str, Any]
