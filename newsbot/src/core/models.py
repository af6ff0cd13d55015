"""
NewsBot - Domain Models
=========================
Pydantic models for every record that crosses a pipeline boundary.

External payloads (scraped articles, HTTP request options, vector-store
rows) are validated *once* here, so the chunker, ranker and assembler
only ever see typed objects with documented defaults.

Immutability:
    ``Chunk``, ``EmbeddedChunk`` and ``SearchHit`` are frozen.  The
    ranker and assembler build new objects instead of mutating inputs.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from newsbot.src.utils.text_utils import stable_id

ChunkType = Literal["title", "content"]
Role = Literal["user", "assistant"]
MetadataValue = str | int | float | bool | None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ══════════════════════════════════════════════════════════════════════
#  ARTICLES & CHUNKS
# ══════════════════════════════════════════════════════════════════════


class Article(BaseModel):
    """A scraped news article as loaded from a source."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = ""
    title: str
    content: str = ""
    summary: str = ""
    source: str = "unknown"
    category: str = "general"
    published_date: str | None = Field(default=None, alias="publishedDate")
    url: str | None = None
    scraped_at: str | None = Field(default=None, alias="scrapedAt")

    @model_validator(mode="after")
    def _derive_id(self) -> "Article":
        if not self.id:
            self.id = stable_id(self.url or "", self.title)
        return self


class ChunkMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    source: str = "unknown"
    category: str = "general"
    published_date: str | None = None
    url: str | None = None
    scraped_at: str | None = None


class Chunk(BaseModel):
    """
    A bounded slice of one article prepared for embedding.

    ``char_count`` always equals ``len(text)``; construction fails
    otherwise.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    article_id: str
    chunk_id: int = Field(ge=0)
    text: str
    type: ChunkType
    start_index: int = Field(ge=0)
    end_index: int = Field(ge=0)
    word_count: int = Field(ge=0)
    char_count: int = Field(ge=0)
    metadata: ChunkMetadata

    @model_validator(mode="after")
    def _check_counts(self) -> "Chunk":
        if self.char_count != len(self.text):
            raise ValueError(f"char_count {self.char_count} != len(text) {len(self.text)}")
        if self.end_index < self.start_index:
            raise ValueError("end_index precedes start_index")
        return self


class EmbeddedChunk(BaseModel):
    model_config = ConfigDict(frozen=True)

    chunk: Chunk
    embedding: tuple[float, ...]
    embedding_dimension: int

    @model_validator(mode="after")
    def _check_dimension(self) -> "EmbeddedChunk":
        if len(self.embedding) != self.embedding_dimension:
            raise ValueError(f"embedding has {len(self.embedding)} values, expected {self.embedding_dimension}")
        return self


# ══════════════════════════════════════════════════════════════════════
#  SEARCH
# ══════════════════════════════════════════════════════════════════════


class SearchHit(BaseModel):
    """One vector-store result.  Higher ``score`` means more relevant."""

    model_config = ConfigDict(frozen=True)

    id: str
    score: float
    payload: dict[str, MetadataValue] = Field(default_factory=dict)

    @property
    def title(self) -> str:
        return str(self.payload.get("title") or "")


class RelevanceContext(BaseModel):
    matched_terms: list[str] = Field(default_factory=list)
    score_explanation: str
    content_type: str


class RankedResult(BaseModel):
    """A diversified hit with its snippet and relevance explanation."""

    id: str
    score: float
    content: str
    chunk_type: str
    metadata: dict[str, MetadataValue] = Field(default_factory=dict)
    relevance_context: RelevanceContext | None = None
    snippet: str = ""


class SearchFilters(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sources: list[str] | None = None
    categories: list[str] | None = None
    date_from: str | None = Field(default=None, alias="dateFrom")
    date_to: str | None = Field(default=None, alias="dateTo")
    content_type: ChunkType | None = Field(default=None, alias="contentType")


class SearchOptions(BaseModel):
    """Per-request retrieval knobs.  ``top_k`` is capped by the retrieval service."""

    model_config = ConfigDict(populate_by_name=True)

    top_k: int = Field(default=5, ge=1, alias="topK")
    min_score: float = Field(default=0.3, ge=0.0, le=1.0, alias="minScore")
    filters: SearchFilters = Field(default_factory=SearchFilters)
    diversity_threshold: float = Field(default=0.8, ge=0.0, le=1.0, alias="diversityThreshold")
    use_cache: bool = Field(default=True, alias="useCache")
    include_metadata: bool = Field(default=True, alias="includeMetadata")


class SearchResponse(BaseModel):
    query: str
    processed_query: str
    results: list[RankedResult]
    total_found: int
    search_time_ms: float
    cached: bool = False


# ══════════════════════════════════════════════════════════════════════
#  CONVERSATION
# ══════════════════════════════════════════════════════════════════════


class ConversationMessage(BaseModel):
    id: str
    role: Role
    content: str
    timestamp: datetime = Field(default_factory=_utcnow)
    metadata: dict[str, MetadataValue] = Field(default_factory=dict)


class AssembledContext(BaseModel):
    messages: list[ConversationMessage]
    total_tokens: int
    trimmed_count: int


class SessionInfo(BaseModel):
    id: str
    created_at: datetime
    last_activity: datetime
    message_count: int = 0
    stored_messages: int = 0
    metadata: dict[str, MetadataValue] = Field(default_factory=dict)


class GenerationResult(BaseModel):
    content: str
    metadata: dict[str, MetadataValue] = Field(default_factory=dict)


class ChatOptions(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    use_rag: bool = Field(default=True, alias="useRAG")
    max_context: int = Field(default=3, ge=0, le=20, alias="maxContext")
    search_options: SearchOptions | None = Field(default=None, alias="searchOptions")


class ChatTurn(BaseModel):
    """Outcome of one chat turn.  ``message`` is the persisted assistant reply."""

    session_id: str
    user_message: ConversationMessage
    message: ConversationMessage
    rag_context: dict[str, Any] = Field(default_factory=dict)
