"""
NewsBot - News Refresh Worker
===============================
Keeps the vector index in step with the latest scraped articles.

Lifecycle:
    ``start()``  schedules a background task that calls
                 ``refresh_once()`` every ``REFRESH_INTERVAL_HOURS``.
    ``stop()``   cancels the task and waits for it to exit.

``refresh_once`` (also callable on demand, e.g. from the admin API):
    1. Load articles from an ``ArticleSource``.
    2. Drop articles older than ``NEWS_RETENTION_DAYS``.
    3. Rebuild the index through ``IngestionPipeline.run(replace=True)``
       (versioned table swap; readers keep the previous version until
       the new one is complete).
    4. Clear the search cache.

Overlapping refreshes are serialised with an ``asyncio.Lock``.  A batch
that yields no articles leaves the current index untouched.

Usage:
    worker = NewsRefreshWorker(JsonFileArticleSource(settings.ARTICLES_PATH), pipeline, retrieval)
    worker.start()
    ...
    await worker.stop()
"""

from __future__ import annotations

import asyncio
import json
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from pydantic import ValidationError

from newsbot.config.settings import settings
from newsbot.src.core.ingestor import IngestionPipeline
from newsbot.src.core.models import Article
from newsbot.src.utils.logger import get_logger

logger = get_logger(__name__)


@runtime_checkable
class ArticleSource(Protocol):
    """Anything that can hand over the current batch of scraped articles."""

    async def load(self) -> list[Article]: ...


class CacheClearer(Protocol):
    async def clear_cache(self) -> int: ...


# ══════════════════════════════════════════════════════════════════════
#  ARTICLE SOURCES
# ══════════════════════════════════════════════════════════════════════


class JsonFileArticleSource:
    """
    Reads scraped articles from a JSON file written by the scraper.

    Accepts either a bare list of article objects or ``{"articles": [...]}``.
    Invalid entries are logged and skipped.
    """

    __slots__ = ("path",)

    def __init__(self, path: Path | str | None = None) -> None:
        self.path = Path(path or settings.ARTICLES_PATH)


    async def load(self) -> list[Article]:
        return await asyncio.to_thread(self._read)


    def _read(self) -> list[Article]:
        if not self.path.exists():
            logger.warning("[REFRESH] Article file not found: %s", self.path)
            return []

        raw = json.loads(self.path.read_text(encoding="utf-8"))
        items = raw.get("articles", []) if isinstance(raw, dict) else raw

        articles: list[Article] = []
        for item in items:
            try:
                articles.append(Article.model_validate(item))
            except ValidationError as exc:
                logger.warning("[REFRESH] Skipping invalid article entry: %s", exc.errors()[0].get("msg", exc))
        logger.info("[REFRESH] Loaded %d article(s) from %s", len(articles), self.path.name)
        return articles


# ══════════════════════════════════════════════════════════════════════
#  RETENTION
# ══════════════════════════════════════════════════════════════════════


def _parse_date(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def filter_recent(articles: list[Article], retention_days: int, now: datetime | None = None) -> list[Article]:
    """
    Keep articles published within *retention_days*.

    Articles without a parseable ``published_date`` fall back to
    ``scraped_at``; if neither parses they are kept.
    """
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=retention_days)
    kept: list[Article] = []
    for article in articles:
        stamp = _parse_date(article.published_date) or _parse_date(article.scraped_at)
        if stamp is None or stamp >= cutoff:
            kept.append(article)
    return kept


# ══════════════════════════════════════════════════════════════════════
#  WORKER
# ══════════════════════════════════════════════════════════════════════


class NewsRefreshWorker:
    """
    Parameters
    ----------
    source
        ``ArticleSource`` providing the latest articles.
    pipeline
        ``IngestionPipeline`` used for the full rebuild.
    cache
        Object with ``clear_cache()`` (the ``RetrievalService``); ``None``
        skips cache invalidation.
    interval_hours / retention_days
        Default to ``REFRESH_INTERVAL_HOURS`` / ``NEWS_RETENTION_DAYS``.
    """

    __slots__ = ("_source", "_pipeline", "_cache", "interval_seconds", "retention_days", "_lock", "_task", "last_summary", "last_refreshed_at")

    def __init__(self, source: ArticleSource, pipeline: IngestionPipeline, cache: CacheClearer | None = None, interval_hours: float | None = None, retention_days: int | None = None) -> None:
        self._source = source
        self._pipeline = pipeline
        self._cache = cache
        self.interval_seconds = (interval_hours or settings.REFRESH_INTERVAL_HOURS) * 3600
        self.retention_days = retention_days or settings.NEWS_RETENTION_DAYS
        self._lock = asyncio.Lock()
        self._task: asyncio.Task | None = None
        self.last_summary: dict[str, Any] | None = None
        self.last_refreshed_at: datetime | None = None


    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ── Lifecycle ──────────────────────────────────────────────────────

    def start(self) -> None:
        """Schedule the periodic loop on the running event loop."""
        if self.running:
            logger.warning("[REFRESH] Worker already running.")
            return
        self._task = asyncio.create_task(self._loop(), name="news-refresh")
        logger.info("[REFRESH] Worker started (every %.1fh, retention %d day(s)).", self.interval_seconds / 3600, self.retention_days)


    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("[REFRESH] Worker stopped.")


    async def _loop(self) -> None:
        while True:
            try:
                await self.refresh_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("[REFRESH] Scheduled refresh failed — keeping the current index.")
            await asyncio.sleep(self.interval_seconds)

    # ── One refresh ────────────────────────────────────────────────────

    async def refresh_once(self) -> dict[str, Any]:
        """
        Rebuild the index from the source.  Concurrent callers wait
        for the in-flight refresh and then run their own.
        """
        async with self._lock:
            t_start = time.perf_counter()
            articles = await self._source.load()
            recent = filter_recent(articles, self.retention_days)
            logger.info("[REFRESH] %d article(s) loaded, %d within %d day(s).", len(articles), len(recent), self.retention_days)

            if not recent:
                summary = {"status": "skipped", "reason": "no_articles", "articles_loaded": len(articles), "articles_kept": 0}
                logger.warning("[REFRESH] No recent articles — index left unchanged.")
                self.last_summary = summary
                return summary

            ingest = await self._pipeline.run(recent, replace=True)
            cleared = await self._cache.clear_cache() if self._cache is not None else 0

            summary = {"status": "completed", "articles_loaded": len(articles), "articles_kept": len(recent), "chunks_stored": ingest["chunks_stored"], "cache_entries_cleared": cleared, "elapsed_seconds": round(time.perf_counter() - t_start, 2)}
            self.last_summary = summary
            self.last_refreshed_at = datetime.now(timezone.utc)
            logger.info("[REFRESH] Refresh complete — %d chunk(s) in %.2fs.", summary["chunks_stored"], summary["elapsed_seconds"])
            return summary


    def get_stats(self) -> dict[str, Any]:
        return {"running": self.running, "interval_hours": self.interval_seconds / 3600, "retention_days": self.retention_days, "last_refreshed_at": self.last_refreshed_at.isoformat() if self.last_refreshed_at else None, "last_summary": self.last_summary}
