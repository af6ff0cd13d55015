"""
NewsBot - RetrievalService
============================
Query → ranked, diversified news passages.

Flow (``search_documents``)
---------------------------
    1. Validate query and options (``top_k ≤ MAX_TOP_K``).
    2. Cache lookup (SHA-256 of query + options).
    3. Normalise the query.
    4. Embed it.
    5. Build the LanceDB ``WHERE`` filter.
    6. Vector search, over-fetching ``min(2·top_k, MAX_TOP_K)`` hits
       above ``min_score``.
    7. Rank + diversify down to ``top_k``.
    8. Cache the response (only when non-empty).

Cache failures are logged and ignored; they never fail a search.
Steps run strictly in sequence inside one task.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import time
from collections.abc import Sequence
from typing import Any, Protocol

from newsbot.config.settings import settings
from newsbot.src.core.embeddings import EmbeddingService
from newsbot.src.core.exceptions import InvalidInput, InvalidQuery
from newsbot.src.core.filters import build_filter
from newsbot.src.core.models import SearchHit, SearchOptions, SearchResponse
from newsbot.src.core.query_processor import QueryNormalizer
from newsbot.src.core.ranker import ResultRanker
from newsbot.src.core.resilience import call_downstream
from newsbot.src.utils.logger import get_logger

logger = get_logger(__name__)


class VectorIndex(Protocol):
    def search(self, vector: Sequence[float], limit: int = 10, where: str | None = None, score_threshold: float | None = None) -> list[SearchHit]: ...

    def get_stats(self) -> dict[str, str | int]: ...


class ResultCache(Protocol):
    async def get(self, key: str) -> dict[str, Any] | None: ...

    async def set(self, key: str, value: dict[str, Any], ttl_seconds: int | None = None) -> None: ...

    async def clear(self) -> int: ...


def cache_key(query: str, options: SearchOptions) -> str:
    """``search:<sha256(query)[:16]>:<sha256(options json)[:16]>``, ``use_cache`` aside."""
    query_hash = hashlib.sha256(query.encode("utf-8")).hexdigest()[:16]
    options_json = json.dumps(options.model_dump(mode="json", exclude={"use_cache"}, exclude_none=True), sort_keys=True)
    options_hash = hashlib.sha256(options_json.encode("utf-8")).hexdigest()[:16]
    return f"search:{query_hash}:{options_hash}"


class RetrievalService:
    """
    Parameters
    ----------
    embeddings
        ``EmbeddingService`` used for query vectors.
    vector_store
        Any ``VectorIndex`` (``NewsVectorStore`` in production).
    cache
        Optional ``ResultCache``; ``None`` disables caching.
    normalizer / ranker
        Injected heuristics; defaults are built from settings.
    """

    __slots__ = ("_embeddings", "_store", "_cache", "_normalizer", "_ranker", "max_top_k", "_searches", "_cache_hits")

    def __init__(self, embeddings: EmbeddingService, vector_store: VectorIndex, cache: ResultCache | None = None, normalizer: QueryNormalizer | None = None, ranker: ResultRanker | None = None, max_top_k: int | None = None) -> None:
        self._embeddings = embeddings
        self._store = vector_store
        self._cache = cache if settings.SEARCH_CACHE_ENABLED else None
        self._normalizer = normalizer or QueryNormalizer()
        self._ranker = ranker or ResultRanker()
        self.max_top_k = max_top_k or settings.MAX_TOP_K
        self._searches = 0
        self._cache_hits = 0

    # ══════════════════════════════════════════════════════════════════
    #  SEARCH
    # ══════════════════════════════════════════════════════════════════

    async def search_documents(self, query: str, options: SearchOptions | None = None) -> SearchResponse:
        """
        Raises
        ------
        InvalidQuery
            Empty or non-string query.
        InvalidInput
            ``top_k`` above ``max_top_k``.
        DownstreamError
            Embedding or vector search failed after retries.
        """
        options = options or SearchOptions()
        if not isinstance(query, str) or not query.strip():
            raise InvalidQuery("Query must be a non-empty string", field="query")
        if options.top_k > self.max_top_k:
            raise InvalidInput(f"top_k cannot exceed {self.max_top_k}", field="top_k")

        t_start = time.perf_counter()
        self._searches += 1
        key = cache_key(query, options)

        if options.use_cache:
            cached = await self._cache_get(key)
            if cached is not None:
                self._cache_hits += 1
                logger.info("[SEARCH] Cache hit for %r", query[:50])
                return SearchResponse.model_validate({**cached, "cached": True})

        processed = self._normalizer.normalize(query)
        vector = await self._embeddings.embed_query(processed)
        where = build_filter(options.filters)
        limit = min(options.top_k * 2, self.max_top_k)

        hits = await call_downstream("vector_search", lambda: asyncio.to_thread(self._store.search, vector, limit, where, options.min_score))
        results = self._ranker.rank(hits, options.top_k, options.diversity_threshold, query=query, include_metadata=options.include_metadata)

        elapsed_ms = round((time.perf_counter() - t_start) * 1000, 1)
        response = SearchResponse(query=query, processed_query=processed, results=results, total_found=len(hits), search_time_ms=elapsed_ms)
        logger.info("[SEARCH] %r → %d hit(s), %d result(s) in %.1fms (filter=%s)", query[:50], len(hits), len(results), elapsed_ms, where)

        if options.use_cache and results:
            await self._cache_set(key, response.model_dump(mode="json"))

        return response


    # ══════════════════════════════════════════════════════════════════
    #  CACHE
    # ══════════════════════════════════════════════════════════════════

    async def _cache_get(self, key: str) -> dict[str, Any] | None:
        if self._cache is None:
            return None
        try:
            return await self._cache.get(key)
        except Exception as exc:
            logger.warning("[SEARCH] Cache read failed (%s) — continuing without cache.", exc)
            return None


    async def _cache_set(self, key: str, value: dict[str, Any]) -> None:
        if self._cache is None:
            return
        try:
            await self._cache.set(key, value, settings.SEARCH_CACHE_TTL_SECONDS)
        except Exception as exc:
            logger.warning("[SEARCH] Cache write failed (%s) — result not cached.", exc)


    async def clear_cache(self) -> int:
        if self._cache is None:
            return 0
        return await self._cache.clear()

    # ══════════════════════════════════════════════════════════════════
    #  STATS
    # ══════════════════════════════════════════════════════════════════

    def get_stats(self) -> dict[str, Any]:
        return {
            "vector_store": self._store.get_stats(),
            "embeddings": self._embeddings.get_stats(),
            "searches": self._searches,
            "cache_hits": self._cache_hits,
            "config": {"default_top_k": settings.DEFAULT_TOP_K, "max_top_k": self.max_top_k, "min_similarity_score": settings.MIN_SIMILARITY_SCORE, "cache_enabled": self._cache is not None, "cache_ttl_seconds": settings.SEARCH_CACHE_TTL_SECONDS},
        }
