"""
NewsBot - Exception Hierarchy
===============================
Every error the pipeline raises on purpose derives from ``NewsBotError``.

    NewsBotError
    ├── InvalidInput               user error, surfaced as 4xx
    │   └── InvalidQuery
    ├── SessionNotFound            404
    ├── ChunkingError              one article, isolated by the batch
    └── DownstreamError(stage)     embedding / vector search / generation / session store
        ├── DownstreamUnavailable  retryable
        │   ├── DownstreamTimeout
        │   └── DownstreamRateLimited
        └── DownstreamAuthError    not retryable

"No relevant context" is *not* an exception: retrieval returning
nothing above threshold is an ordinary outcome handled by the chat
service's fallback path.
"""

from __future__ import annotations


class NewsBotError(Exception):
    """Base class for NewsBot errors."""

    http_status: int = 500

    def __init__(self, message: str, error_code: str = "NEWSBOT_ERROR", details: dict[str, str] | None = None) -> None:
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(message)


    def to_dict(self) -> dict[str, str | dict[str, str]]:
        return {"error": self.error_code, "message": self.message, "details": self.details}


    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.error_code}, msg={self.message})"


# ── Caller errors ──────────────────────────────────────────────────────

class InvalidInput(NewsBotError):
    """Malformed message, query or options."""

    http_status = 400

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message, "INVALID_INPUT", {"field": field} if field else None)


class InvalidQuery(InvalidInput):
    """Query is missing or not a string."""


class SessionNotFound(NewsBotError):
    http_status = 404

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Session '{session_id}' not found or expired", "SESSION_NOT_FOUND", {"session_id": session_id})


class ArticleNotFound(NewsBotError):
    http_status = 404

    def __init__(self, article_id: str) -> None:
        self.article_id = article_id
        super().__init__(f"Article '{article_id}' is not in the index", "ARTICLE_NOT_FOUND", {"article_id": article_id})


class ChunkingError(NewsBotError):
    """A single article could not be chunked (empty or malformed)."""

    http_status = 422

    def __init__(self, message: str, article_id: str | None = None) -> None:
        self.article_id = article_id
        super().__init__(message, "CHUNKING_ERROR", {"article_id": article_id} if article_id else None)


# ── Downstream collaborators ───────────────────────────────────────────

class DownstreamError(NewsBotError):
    """
    An external collaborator failed.

    Attributes:
        stage: Pipeline stage that made the call (``"embedding"``,
               ``"vector_search"``, ``"generation"``, ...).
    """

    http_status = 502
    retryable: bool = False

    def __init__(self, stage: str, message: str, error_code: str = "DOWNSTREAM_ERROR") -> None:
        self.stage = stage
        super().__init__(message, error_code, {"stage": stage})


class DownstreamUnavailable(DownstreamError):
    http_status = 503
    retryable = True

    def __init__(self, stage: str, message: str, error_code: str = "DOWNSTREAM_UNAVAILABLE") -> None:
        super().__init__(stage, message, error_code)


class DownstreamTimeout(DownstreamUnavailable):
    http_status = 504

    def __init__(self, stage: str, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(stage, f"{stage} timed out after {timeout:.1f}s", "DOWNSTREAM_TIMEOUT")


class DownstreamRateLimited(DownstreamUnavailable):
    http_status = 429

    def __init__(self, stage: str, message: str) -> None:
        super().__init__(stage, message, "DOWNSTREAM_RATE_LIMITED")


class DownstreamAuthError(DownstreamError):
    def __init__(self, stage: str, message: str) -> None:
        super().__init__(stage, message, "DOWNSTREAM_AUTH_ERROR")
