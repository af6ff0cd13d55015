"""
NewsBot - EmbeddingService
============================
Async facade over any LangChain-compatible embedding model.

  • ``embed_query``     — one vector for a search query.
  • ``embed_documents`` — order-preserving batched embedding of chunk
                          texts (``EMBED_BATCH_SIZE`` per request).

The LangChain embedders are synchronous, so each call runs in a worker
thread and goes through ``call_downstream("embedding", ...)`` for
timeout, error classification and retry.  Vectors whose length differs
from ``EMBEDDING_DIMENSION`` are rejected immediately.

Usage:
    service = EmbeddingService(create_embedder())
    vector = await service.embed_query("latest rbi policy")
"""

from __future__ import annotations

import asyncio
from typing import Protocol, runtime_checkable

from newsbot.config.settings import settings
from newsbot.src.core.exceptions import DownstreamError
from newsbot.src.core.resilience import call_downstream
from newsbot.src.utils.logger import get_logger

logger = get_logger(__name__)


@runtime_checkable
class Embedder(Protocol):
    """Structural type for any LangChain-compatible embedding model."""

    def embed_documents(self, texts: list[str]) -> list[list[float]]: ...

    def embed_query(self, text: str) -> list[float]: ...


def create_embedder() -> Embedder:
    """Build the Google embedding model configured in settings."""
    from langchain_google_genai import GoogleGenerativeAIEmbeddings

    logger.info("Initialising embedding model: %s", settings.EMBEDDING_MODEL)
    return GoogleGenerativeAIEmbeddings(model=settings.EMBEDDING_MODEL, google_api_key=settings.GOOGLE_API_KEY.get_secret_value())


class EmbeddingService:
    """
    Parameters
    ----------
    embedder
        Object satisfying ``Embedder``.
    dimension
        Expected vector length.  Defaults to ``settings.EMBEDDING_DIMENSION``.
    batch_size
        Texts per ``embed_documents`` request.
    """

    __slots__ = ("_embedder", "dimension", "batch_size", "_requests")

    def __init__(self, embedder: Embedder, dimension: int | None = None, batch_size: int | None = None) -> None:
        self._embedder = embedder
        self.dimension = dimension or settings.EMBEDDING_DIMENSION
        self.batch_size = batch_size or settings.EMBED_BATCH_SIZE
        self._requests = 0


    async def embed_query(self, text: str) -> list[float]:
        vector = await call_downstream("embedding", lambda: asyncio.to_thread(self._embedder.embed_query, text))
        self._requests += 1
        return self._checked(vector)


    async def embed_documents(self, texts: list[str]) -> list[list[float]]:
        vectors: list[list[float]] = []
        for i in range(0, len(texts), self.batch_size):
            batch = texts[i : i + self.batch_size]
            result = await call_downstream("embedding", lambda batch=batch: asyncio.to_thread(self._embedder.embed_documents, batch))
            self._requests += 1
            if len(result) != len(batch):
                raise DownstreamError("embedding", f"Provider returned {len(result)} vectors for {len(batch)} texts")
            vectors.extend(self._checked(v) for v in result)
            logger.debug("[EMBED] Batch %d–%d embedded.", i, i + len(batch) - 1)
        return vectors


    def _checked(self, vector: list[float]) -> list[float]:
        values = [float(x) for x in vector]
        if len(values) != self.dimension:
            raise DownstreamError("embedding", f"Expected {self.dimension}-dimensional vector, got {len(values)}")
        return values


    def get_stats(self) -> dict[str, str | int]:
        return {"model": settings.EMBEDDING_MODEL, "dimension": self.dimension, "batch_size": self.batch_size, "requests": self._requests}
