"""
NewsBot - IngestionPipeline
=============================
Turns a batch of scraped articles into searchable vectors.

    articles → chunk → embed (batched) → LanceDB

Key design decisions:
    • **Dependency Injection** – receives the chunker, ``EmbeddingService``
      and ``NewsVectorStore``; nothing is built inside ``run``.
    • **Isolated failures** – a malformed article is skipped by the
      chunker and never aborts the batch.
    • **Two write modes** –
        ``replace=False`` upserts by chunk id (incremental ingestion);
        ``replace=True``  swaps in a brand-new table version, so readers
        never observe a half-built corpus.
    • **Timed phases** – chunking, embedding and storage are timed
      independently and reported in the summary.

Usage:
    from newsbot.src.core.ingestor import IngestionPipeline
    pipeline = IngestionPipeline(chunker, embeddings, vector_store)
    summary  = await pipeline.run(articles, replace=True)
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Iterable
from typing import Any

from newsbot.src.core.chunker import ArticleChunker, chunk_stats
from newsbot.src.core.embeddings import EmbeddingService
from newsbot.src.core.models import Article, Chunk, EmbeddedChunk
from newsbot.src.core.resilience import call_downstream
from newsbot.src.database.vector_store import NewsVectorStore
from newsbot.src.utils.logger import get_logger

logger = get_logger(__name__)


class IngestionPipeline:
    """
    End-to-end article ingestion: chunk → embed → store.

    Parameters
    ----------
    chunker
        ``ArticleChunker`` configured from settings (or a test double).
    embeddings
        ``EmbeddingService`` used for chunk vectors.
    vector_store
        The ``NewsVectorStore`` that receives the records.
    """

    __slots__ = ("_chunker", "_embeddings", "_store")

    def __init__(self, chunker: ArticleChunker, embeddings: EmbeddingService, vector_store: NewsVectorStore) -> None:
        self._chunker = chunker
        self._embeddings = embeddings
        self._store = vector_store

    # ══════════════════════════════════════════════════════════════════
    #  PUBLIC ENTRY POINT
    # ══════════════════════════════════════════════════════════════════

    async def run(self, articles: Iterable[Article | dict], replace: bool = False) -> dict[str, Any]:
        """
        Execute the pipeline for one batch.

        Returns
        -------
        dict
            Execution summary with keys ``total_articles``,
            ``articles_chunked``, ``total_chunks``, ``chunks_stored``,
            ``replaced``, ``chunk_ms``, ``embed_ms``, ``store_ms``,
            ``elapsed_seconds`` and ``stats``.
        """
        t_start = time.perf_counter()
        batch = list(articles)
        logger.info("[INGEST] Starting ingestion — %d article(s), mode=%s", len(batch), "replace" if replace else "upsert")

        # ── 1. Chunking (timed) ────────────────────────────────────────
        t_chunk = time.perf_counter()
        chunks = self._chunker.chunk_articles(batch)
        chunk_ms = (time.perf_counter() - t_chunk) * 1000

        if not chunks:
            logger.warning("[INGEST] No chunks produced — existing index left unchanged.")
            return self._summary(len(batch), chunks, 0, False, chunk_ms, 0.0, 0.0, time.perf_counter() - t_start)

        # ── 2. Embedding (timed) ───────────────────────────────────────
        t_embed = time.perf_counter()
        embedded = await self.embed_chunks(chunks)
        embed_ms = (time.perf_counter() - t_embed) * 1000

        # ── 3. Storage (timed) ─────────────────────────────────────────
        t_store = time.perf_counter()
        write = self._store.replace_all if replace else self._store.upsert
        stored = await call_downstream("vector_store", lambda: asyncio.to_thread(write, embedded), attempts=1)
        store_ms = (time.perf_counter() - t_store) * 1000

        elapsed = time.perf_counter() - t_start
        logger.info("[INGEST] Ingestion complete — %d chunk(s) stored in %.2fs (chunk: %.1fms, embed: %.1fms, store: %.1fms).", stored, elapsed, chunk_ms, embed_ms, store_ms)
        return self._summary(len(batch), chunks, stored, replace, chunk_ms, embed_ms, store_ms, elapsed)


    async def embed_chunks(self, chunks: list[Chunk]) -> list[EmbeddedChunk]:
        """Embed chunk texts in ``EMBED_BATCH_SIZE`` batches, preserving order."""
        if not chunks:
            return []
        vectors = await self._embeddings.embed_documents([c.text for c in chunks])
        dimension = self._embeddings.dimension
        return [EmbeddedChunk(chunk=chunk, embedding=tuple(vector), embedding_dimension=dimension) for chunk, vector in zip(chunks, vectors)]

    # ── Summary ────────────────────────────────────────────────────────

    @staticmethod
    def _summary(total_articles: int, chunks: list[Chunk], stored: int, replaced: bool, chunk_ms: float, embed_ms: float, store_ms: float, elapsed: float) -> dict[str, Any]:
        return {
            "total_articles": total_articles,
            "articles_chunked": len({c.article_id for c in chunks}),
            "total_chunks": len(chunks),
            "chunks_stored": stored,
            "replaced": replaced,
            "chunk_ms": round(chunk_ms, 1),
            "embed_ms": round(embed_ms, 1),
            "store_ms": round(store_ms, 1),
            "elapsed_seconds": round(elapsed, 2),
            "stats": chunk_stats(chunks),
        }
