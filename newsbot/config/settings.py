"""
NewsBot - Centralized Configuration
=====================================
One ``pydantic-settings`` model reads every knob from the process
environment, falling back to ``newsbot/.env``.

Secrets
-------
- ``GOOGLE_API_KEY`` and ``MONGO_URI`` are required ``SecretStr`` fields:
  the process fails at import with a ``ValidationError`` naming the
  missing variable, and neither value ever shows up in a repr or log line.
- ``ADMIN_API_KEY`` gates the admin endpoints (``X-Admin-Key`` header).

Retrieval limits
----------------
``MAX_TOP_K`` caps every search.  The vector store is asked for
``min(2 × top_k, MAX_TOP_K)`` candidates so the diversity filter has
something to choose from.

Downstream calls
----------------
Every embedding, vector-search and generation call is bounded by
``DOWNSTREAM_TIMEOUT_SECONDS`` and retried up to
``DOWNSTREAM_MAX_ATTEMPTS`` times with exponential backoff.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    NewsBot settings.

    Field names double as environment variable names.  A field with no
    default must be set before anything imports this module.

    Attributes
    ----------
    GOOGLE_API_KEY : SecretStr
        API key for Google AI Studio (Gemini generation + embeddings).  **Required.**
    MONGO_URI : SecretStr
        MongoDB connection string for sessions, history and the search cache.  **Required.**
    ENV : Literal["dev", "prod"]
        ``dev`` logs at DEBUG, ``prod`` at WARNING.
    CHUNK_SIZE / CHUNK_OVERLAP / MIN_CHUNK_SIZE : int
        Character budgets for article chunking.
    PRESERVE_PARAGRAPHS : bool
        Chunk on paragraph boundaries (``True``) or sentence boundaries.
    EMBEDDING_DIMENSION : int
        Fixed vector length produced by ``EMBEDDING_MODEL``.
    CONVERSATION_TOKEN_LIMIT : int
        Token budget for conversation history included in a prompt.
    TOKEN_COUNTER : Literal["heuristic", "gemini"]
        How history tokens are counted: ``len / 4`` or the Gemini API.
    SESSION_TTL_HOURS : int
        Inactivity window after which a chat session expires.
    """

    # ── Data Locations (under newsbot/data) ────────────────────────────
    DATA_DIR: Path = Path(__file__).resolve().parent.parent / "data"
    LANCEDB_PATH: Path = DATA_DIR / "lancedb"
    ARTICLES_PATH: Path = DATA_DIR / "raw" / "latest.json"

    # ── Environment Mode ───────────────────────────────────────────────
    ENV: Literal["dev", "prod"] = "dev"

    # ── API Keys (REQUIRED — no default) ───────────────────────────────
    GOOGLE_API_KEY: SecretStr
    ADMIN_API_KEY: SecretStr = SecretStr("change-me-admin-key")

    # ── MongoDB (REQUIRED — no default) ────────────────────────────────
    MONGO_URI: SecretStr
    MONGO_DB_NAME: str = "newsbot"
    SESSION_TTL_HOURS: int = 24
    MAX_CONVERSATION_HISTORY: int = 50
    HISTORY_FETCH_LIMIT: int = 10

    # ── Chunking Parameters ────────────────────────────────────────────
    CHUNK_SIZE: int = 800
    CHUNK_OVERLAP: int = 200
    MIN_CHUNK_SIZE: int = 100
    PRESERVE_PARAGRAPHS: bool = True

    # ── Model Configuration ────────────────────────────────────────────
    EMBEDDING_MODEL: str = "models/text-embedding-004"
    EMBEDDING_DIMENSION: int = 768
    EMBED_BATCH_SIZE: int = 50
    LLM_MODEL: str = "gemini-1.5-flash"
    LLM_TEMPERATURE: float = 0.7
    LLM_TOP_P: float = 0.8
    LLM_TOP_K: int = 40
    LLM_MAX_OUTPUT_TOKENS: int = 4096

    # ── LanceDB ────────────────────────────────────────────────────────
    LANCEDB_TABLE_NAME: str = "news_chunks"

    # ── Retrieval ──────────────────────────────────────────────────────
    DEFAULT_TOP_K: int = 5
    MAX_TOP_K: int = 20
    MIN_SIMILARITY_SCORE: float = 0.3
    DIVERSITY_THRESHOLD: float = 0.8
    SEARCH_CACHE_ENABLED: bool = True
    SEARCH_CACHE_TTL_SECONDS: int = 300

    # ── Chat ───────────────────────────────────────────────────────────
    MAX_CONTEXT_RESULTS: int = 3
    CONVERSATION_TOKEN_LIMIT: int = 2000
    TOKEN_COUNTER: Literal["heuristic", "gemini"] = "heuristic"
    MAX_MESSAGE_LENGTH: int = 2000
    MAX_QUERY_LENGTH: int = 500
    FALLBACK_TO_SIMPLE_RESPONSE: bool = True

    # ── HTTP API ───────────────────────────────────────────────────────
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    CORS_ORIGINS: list[str] = ["*"]

    # ── Downstream Calls ───────────────────────────────────────────────
    DOWNSTREAM_TIMEOUT_SECONDS: float = 30.0
    DOWNSTREAM_MAX_ATTEMPTS: int = 3

    # ── Background Refresh ─────────────────────────────────────────────
    REFRESH_ENABLED: bool = False
    REFRESH_INTERVAL_HOURS: float = 24.0
    NEWS_RETENTION_DAYS: int = 7

    # ── Validators ─────────────────────────────────────────────────────

    @field_validator("CHUNK_SIZE")
    @classmethod
    def _chunk_size_positive(cls, v: int) -> int:
        if v < 50:
            raise ValueError(f"CHUNK_SIZE must be ≥ 50, got {v}")
        return v


    @field_validator("MIN_SIMILARITY_SCORE", "DIVERSITY_THRESHOLD")
    @classmethod
    def _unit_interval(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError(f"value must be within [0, 1], got {v}")
        return v


    @field_validator("DOWNSTREAM_MAX_ATTEMPTS")
    @classmethod
    def _attempts_range(cls, v: int) -> int:
        if not 1 <= v <= 10:
            raise ValueError(f"DOWNSTREAM_MAX_ATTEMPTS must be 1–10, got {v}")
        return v


    @model_validator(mode="after")
    def _overlap_below_chunk_size(self) -> "Settings":
        if not 0 <= self.CHUNK_OVERLAP < self.CHUNK_SIZE:
            raise ValueError(f"CHUNK_OVERLAP must be in [0, CHUNK_SIZE), got {self.CHUNK_OVERLAP}")
        if self.DEFAULT_TOP_K > self.MAX_TOP_K:
            raise ValueError(f"DEFAULT_TOP_K ({self.DEFAULT_TOP_K}) exceeds MAX_TOP_K ({self.MAX_TOP_K})")
        return self

    # ── Pydantic Settings Configuration ────────────────────────────────
    model_config = SettingsConfigDict(env_file=Path(__file__).resolve().parent.parent / ".env", env_file_encoding="utf-8", extra="ignore")


# ── Singleton Instance ─────────────────────────────────────────────────
# Import this throughout the project:
#     from newsbot.config.settings import settings
settings = Settings()
