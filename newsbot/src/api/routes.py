"""
NewsBot - API Routes
======================
Thin controllers: validate the request, delegate to a service, shape
the response.  No retrieval or generation logic lives here.

    POST   /api/chat                        → one chat turn (always returns text)
    GET    /api/chat/{session_id}/history   → paginated history
    DELETE /api/chat/{session_id}           → delete a session
    POST   /api/chat/{session_id}/clear     → clear history, keep the session
    POST   /api/search                      → ranked news passages
    GET    /api/search/stats                → retrieval statistics
    GET    /health                          → liveness + component readiness
    POST   /api/admin/refresh               → rebuild the index now       (X-Admin-Key)
    DELETE /api/admin/cache                 → clear the search cache      (X-Admin-Key)
    DELETE /api/admin/articles/{article_id}  → drop one article's chunks    (X-Admin-Key)
    GET    /api/admin/stats                 → index / config statistics   (X-Admin-Key)

Errors raised as ``NewsBotError`` are mapped to HTTP statuses by
``errors.register_exception_handlers``.
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, Query

from newsbot.config.prompt_templates import DEGRADED_RESPONSE
from newsbot.config.settings import settings
from newsbot.src.api.dependencies import get_chat_service, get_refresh_worker, get_retrieval_service, get_session_store, get_vector_store, require_admin_key
from newsbot.src.api.schemas import ChatRequest, ChatResponse, HealthResponse, HistoryResponse, Pagination, SearchRequest, SessionActionResponse, SessionSummary
from newsbot.src.core.exceptions import ArticleNotFound, InvalidInput, InvalidQuery, NewsBotError, SessionNotFound
from newsbot.src.core.filters import quote
from newsbot.src.core.models import ConversationMessage, SearchResponse, SessionInfo
from newsbot.src.core.rag_engine import RAGChatService
from newsbot.src.core.refresh_worker import NewsRefreshWorker
from newsbot.src.core.retrieval import RetrievalService
from newsbot.src.database.session_store import MongoSessionStore
from newsbot.src.database.vector_store import NewsVectorStore
from newsbot.src.utils.logger import get_logger

logger = get_logger(__name__)

# Shortest session id accepted on path parameters
_MIN_SESSION_ID_LENGTH = 10

chat_router = APIRouter(prefix="/api/chat", tags=["chat"])
search_router = APIRouter(prefix="/api/search", tags=["search"])
admin_router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin_key)])
health_router = APIRouter(tags=["health"])


def _check_session_id(session_id: str) -> None:
    if len(session_id.strip()) < _MIN_SESSION_ID_LENGTH:
        raise InvalidInput("Invalid session ID format", field="session_id")


async def _require_session(sessions: MongoSessionStore, session_id: str) -> SessionInfo:
    _check_session_id(session_id)
    info = await sessions.get_session(session_id)
    if info is None:
        raise SessionNotFound(session_id)
    return info


def _summary(info: SessionInfo) -> SessionSummary:
    return SessionSummary(message_count=info.message_count, created_at=info.created_at, last_activity=info.last_activity)


# ══════════════════════════════════════════════════════════════════════
#  CHAT
# ══════════════════════════════════════════════════════════════════════


@chat_router.post("", response_model=ChatResponse)
async def chat(request: ChatRequest, chat_service: RAGChatService = Depends(get_chat_service), sessions: MongoSessionStore = Depends(get_session_store)) -> ChatResponse:
    """
    Run one chat turn.

    Creates the session when it does not exist yet.  Caller errors
    (empty or over-long message) are 400s; any other failure still
    answers with a canned reply and ``processing_error`` set.
    """
    if not request.message.strip():
        raise InvalidInput("Message is required and must be a non-empty string", field="message")
    if len(request.message) > settings.MAX_MESSAGE_LENGTH:
        raise InvalidInput(f"Message too long (max {settings.MAX_MESSAGE_LENGTH} characters)", field="message")

    session_id = request.session_id or str(uuid.uuid4())

    try:
        if await sessions.get_session(session_id) is None:
            await sessions.create_session(session_id=session_id)
        turn = await chat_service.process_message(session_id, request.message.strip(), request.options)
    except InvalidInput:
        raise
    except NewsBotError as exc:
        logger.error("[CHAT] Turn failed — session=%s code=%s: %s", session_id, exc.error_code, exc.message)
        return _degraded_reply(session_id, exc.error_code)
    except Exception:
        logger.exception("[CHAT] Unexpected failure — session=%s", session_id)
        return _degraded_reply(session_id, "INTERNAL_ERROR")

    rag_context = dict(turn.rag_context)
    turn_info = rag_context.pop("session_info", {})
    summary = await _session_summary(sessions, session_id)
    summary.conversation_length = turn_info.get("conversation_length")
    summary.context_managed = turn_info.get("context_managed")
    return ChatResponse(session_id=session_id, message=turn.message, rag_context=rag_context, session_info=summary)


def _degraded_reply(session_id: str, error_code: str) -> ChatResponse:
    message = ConversationMessage(id=str(uuid.uuid4()), role="assistant", content=DEGRADED_RESPONSE, metadata={"degraded": True, "fallback_used": True, "model": "error_fallback", "error_code": error_code})
    return ChatResponse(session_id=session_id, message=message, processing_error=error_code)


async def _session_summary(sessions: MongoSessionStore, session_id: str) -> SessionSummary:
    try:
        info = await sessions.get_session(session_id)
    except Exception as exc:
        logger.warning("[SESSION] Could not load session info for %s: %s", session_id, exc)
        return SessionSummary()
    if info is None:
        return SessionSummary()
    return _summary(info)


@chat_router.get("/{session_id}/history", response_model=HistoryResponse)
async def get_history(session_id: str, limit: int = Query(default=50, ge=1, le=100), offset: int = Query(default=0, ge=0), sessions: MongoSessionStore = Depends(get_session_store)) -> HistoryResponse:
    """Newest-last page of history; ``offset`` skips the most recent messages."""
    info = await _require_session(sessions, session_id)
    messages = await sessions.get_history(session_id, limit=limit, offset=offset)
    total = info.stored_messages
    return HistoryResponse(session_id=session_id, messages=messages, pagination=Pagination(limit=limit, offset=offset, total=total, has_more=offset + len(messages) < total), session_info=_summary(info))


@chat_router.delete("/{session_id}", response_model=SessionActionResponse)
async def delete_session(session_id: str, sessions: MongoSessionStore = Depends(get_session_store)) -> SessionActionResponse:
    info = await _require_session(sessions, session_id)
    deleted = await sessions.delete_session(session_id)
    return SessionActionResponse(session_id=session_id, deleted=deleted, messages_deleted=info.stored_messages if deleted else 0)


@chat_router.post("/{session_id}/clear", response_model=SessionActionResponse)
async def clear_session(session_id: str, sessions: MongoSessionStore = Depends(get_session_store)) -> SessionActionResponse:
    info = await _require_session(sessions, session_id)
    cleared = await sessions.clear_history(session_id)
    return SessionActionResponse(session_id=session_id, cleared=cleared, messages_cleared=info.stored_messages if cleared else 0)


# ══════════════════════════════════════════════════════════════════════
#  SEARCH
# ══════════════════════════════════════════════════════════════════════


@search_router.post("", response_model=SearchResponse)
async def search(request: SearchRequest, retrieval: RetrievalService = Depends(get_retrieval_service)) -> SearchResponse:
    """Semantic news search.  ``top_k`` above ``MAX_TOP_K`` is clamped, not rejected."""
    query = request.query.strip()
    if not query:
        raise InvalidQuery("Query is required and must be a non-empty string", field="query")
    if len(query) > settings.MAX_QUERY_LENGTH:
        raise InvalidInput(f"Query too long (max {settings.MAX_QUERY_LENGTH} characters)", field="query")

    options = request.options.model_copy(update={"top_k": min(request.options.top_k, settings.MAX_TOP_K)})
    return await retrieval.search_documents(query, options)


@search_router.get("/stats")
async def search_stats(retrieval: RetrievalService = Depends(get_retrieval_service)) -> dict[str, Any]:
    return await asyncio.to_thread(retrieval.get_stats)


# ══════════════════════════════════════════════════════════════════════
#  HEALTH
# ══════════════════════════════════════════════════════════════════════


@health_router.get("/health", response_model=HealthResponse)
async def health(sessions: MongoSessionStore = Depends(get_session_store), vector_store: NewsVectorStore = Depends(get_vector_store), worker: NewsRefreshWorker = Depends(get_refresh_worker)) -> HealthResponse:
    """Liveness plus readiness of each collaborator.  Never raises."""
    components: dict[str, Any] = {}

    try:
        components["session_store"] = {"ready": await sessions.ping()}
    except Exception as exc:
        logger.warning("[HEALTH] Session store not ready: %s", exc)
        components["session_store"] = {"ready": False, "error": type(exc).__name__}

    try:
        components["vector_store"] = {"ready": True, "rows": await asyncio.to_thread(vector_store.count)}
    except Exception as exc:
        logger.warning("[HEALTH] Vector store not ready: %s", exc)
        components["vector_store"] = {"ready": False, "error": type(exc).__name__}

    components["refresh_worker"] = {"running": worker.running}

    ready = all(c.get("ready", True) for c in components.values())
    return HealthResponse(status="ok" if ready else "degraded", timestamp=datetime.now(timezone.utc), components=components)


# ══════════════════════════════════════════════════════════════════════
#  ADMIN
# ══════════════════════════════════════════════════════════════════════


@admin_router.post("/refresh")
async def trigger_refresh(worker: NewsRefreshWorker = Depends(get_refresh_worker)) -> dict[str, Any]:
    logger.info("[ADMIN] Manual refresh requested.")
    return await worker.refresh_once()


@admin_router.delete("/cache")
async def clear_cache(retrieval: RetrievalService = Depends(get_retrieval_service)) -> dict[str, int]:
    cleared = await retrieval.clear_cache()
    logger.info("[ADMIN] Search cache cleared (%d entries).", cleared)
    return {"cleared": cleared}


@admin_router.delete("/articles/{article_id}")
async def delete_article(article_id: str, vector_store: NewsVectorStore = Depends(get_vector_store), retrieval: RetrievalService = Depends(get_retrieval_service)) -> dict[str, Any]:
    """Remove every chunk of one article, then drop cached searches that may still cite it."""
    removed = await asyncio.to_thread(vector_store.delete_by_filter, f"article_id = {quote(article_id)}")
    if removed == 0:
        raise ArticleNotFound(article_id)
    cleared = await retrieval.clear_cache()
    logger.info("[ADMIN] Article %s removed (%d chunk(s), %d cached search(es) cleared).", article_id, removed, cleared)
    return {"article_id": article_id, "chunks_deleted": removed, "cache_cleared": cleared}


@admin_router.get("/stats")
async def admin_stats(chat_service: RAGChatService = Depends(get_chat_service), sessions: MongoSessionStore = Depends(get_session_store), worker: NewsRefreshWorker = Depends(get_refresh_worker)) -> dict[str, Any]:
    stats = await asyncio.to_thread(chat_service.get_stats)
    stats["sessions"] = {"active": await sessions.count_active_sessions(), "ttl_hours": settings.SESSION_TTL_HOURS, "max_history": settings.MAX_CONVERSATION_HISTORY}
    stats["refresh"] = worker.get_stats()
    return stats
