"""
NewsBot - Dependency Injection
================================
Builds the long-lived service graph once per process and exposes each
service to the routes through FastAPI ``Depends`` providers.

    ServiceContainer
    ├── vector_store    NewsVectorStore        (LanceDB)
    ├── sessions        MongoSessionStore      (motor)
    ├── retrieval       RetrievalService       (+ SearchCache)
    ├── chat            RAGChatService         (+ GeminiGenerator)
    └── refresh_worker  NewsRefreshWorker      (+ IngestionPipeline)

The container lives on ``app.state.services`` (set by the lifespan in
``main.py``).  Tests bypass it entirely with ``app.dependency_overrides``.

Admin routes additionally require ``X-Admin-Key`` to match
``settings.ADMIN_API_KEY``.
"""

from __future__ import annotations

import secrets

from fastapi import Depends, Header, HTTPException, Request, status

from newsbot.config.settings import settings
from newsbot.src.core.chunker import ArticleChunker
from newsbot.src.core.context import ContextAssembler, GeminiTokenCounter
from newsbot.src.core.embeddings import EmbeddingService, create_embedder
from newsbot.src.core.generator import GeminiGenerator
from newsbot.src.core.ingestor import IngestionPipeline
from newsbot.src.core.rag_engine import RAGChatService
from newsbot.src.core.refresh_worker import JsonFileArticleSource, NewsRefreshWorker
from newsbot.src.core.retrieval import RetrievalService
from newsbot.src.database.session_store import MongoSessionStore, SearchCache
from newsbot.src.database.vector_store import NewsVectorStore
from newsbot.src.utils.logger import get_logger

logger = get_logger(__name__)


class ServiceContainer:
    """Holds one instance of every service for the lifetime of the app."""

    __slots__ = ("vector_store", "sessions", "cache", "retrieval", "chat", "pipeline", "refresh_worker")

    def __init__(self, vector_store: NewsVectorStore, sessions: MongoSessionStore, cache: SearchCache, retrieval: RetrievalService, chat: RAGChatService, pipeline: IngestionPipeline, refresh_worker: NewsRefreshWorker) -> None:
        self.vector_store = vector_store
        self.sessions = sessions
        self.cache = cache
        self.retrieval = retrieval
        self.chat = chat
        self.pipeline = pipeline
        self.refresh_worker = refresh_worker


def build_services() -> ServiceContainer:
    """Wire the production service graph from settings."""
    vector_store = NewsVectorStore()
    embeddings = EmbeddingService(create_embedder())
    sessions = MongoSessionStore()
    cache = SearchCache()

    retrieval = RetrievalService(embeddings, vector_store, cache)
    assembler = ContextAssembler(GeminiTokenCounter() if settings.TOKEN_COUNTER == "gemini" else None)
    chat = RAGChatService(retrieval, GeminiGenerator(), sessions, assembler=assembler)

    pipeline = IngestionPipeline(ArticleChunker(), embeddings, vector_store)
    worker = NewsRefreshWorker(JsonFileArticleSource(), pipeline, retrieval)

    logger.info("Service container built (%r).", vector_store)
    return ServiceContainer(vector_store, sessions, cache, retrieval, chat, pipeline, worker)


# ── Providers ──────────────────────────────────────────────────────────

def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


def get_chat_service(services: ServiceContainer = Depends(get_services)) -> RAGChatService:
    return services.chat


def get_session_store(services: ServiceContainer = Depends(get_services)) -> MongoSessionStore:
    return services.sessions


def get_retrieval_service(services: ServiceContainer = Depends(get_services)) -> RetrievalService:
    return services.retrieval


def get_vector_store(services: ServiceContainer = Depends(get_services)) -> NewsVectorStore:
    return services.vector_store


def get_refresh_worker(services: ServiceContainer = Depends(get_services)) -> NewsRefreshWorker:
    return services.refresh_worker


def require_admin_key(x_admin_key: str | None = Header(default=None, alias="X-Admin-Key")) -> None:
    """Reject the request unless ``X-Admin-Key`` matches ``ADMIN_API_KEY``."""
    expected = settings.ADMIN_API_KEY.get_secret_value()
    if not x_admin_key or not secrets.compare_digest(x_admin_key.encode("utf-8"), expected.encode("utf-8")):
        logger.warning("[ADMIN] Rejected request with missing or invalid admin key.")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or missing admin key")
