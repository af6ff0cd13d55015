"""
NewsBot - Index Bootstrap CLI
===============================
Builds (or rebuilds) the LanceDB news index from a scraped-articles file.

Steps:
    1. Load settings; a missing ``GOOGLE_API_KEY`` / ``MONGO_URI`` aborts here.
    2. Open ``NewsVectorStore``, dropping existing table versions on request.
    3. Build the Google embedder.
    4. Read articles with ``JsonFileArticleSource`` and feed them to
       ``IngestionPipeline`` (upsert, or versioned full replace).
    5. Print a report: corpus counts plus per-phase timings.

Flags:
    --drop          Remove all table versions, then ingest into a fresh one.
    --replace       Ingest into a new table version and swap it in.
    --drop-only     Remove all table versions and stop.
    --articles PATH Article JSON file (default: ``settings.ARTICLES_PATH``).

Usage:
    newsbot-setup-db                                          # Upsert latest.json
    python -m newsbot.scripts.setup_db --replace              # Rebuild without downtime
    python -m newsbot.scripts.setup_db --drop-only            # Wipe the index
    python -m newsbot.scripts.setup_db --articles feed.json   # Another article file
"""

from __future__ import annotations

import argparse
import asyncio
import sys
import time
from pathlib import Path
from typing import Any

REPORT_WIDTH = 64


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="newsbot-setup-db", description="Create the NewsBot vector index and load scraped news articles into it.")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--drop", action="store_true", help="Remove all table versions before ingesting.")
    mode.add_argument("--replace", action="store_true", help="Ingest into a new table version and swap it in.")
    mode.add_argument("--drop-only", action="store_true", help="Remove all table versions and exit.")
    parser.add_argument("--articles", type=Path, default=None, help="Scraped-articles JSON file.")
    return parser.parse_args(argv)


# ══════════════════════════════════════════════════════════════════════
#  ENTRY POINT
# ══════════════════════════════════════════════════════════════════════


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    started = time.perf_counter()
    phases: dict[str, float] = {}

    # ── Settings ───────────────────────────────────────────────────────
    mark = time.perf_counter()
    try:
        from newsbot.config.settings import settings
    except Exception as exc:
        print(f"\n[FATAL] Settings could not be loaded (is .env complete?)\n  {exc}\n")
        sys.exit(1)
    phases["settings"] = (time.perf_counter() - mark) * 1000

    from newsbot.src.utils.logger import get_logger
    logger = get_logger(__name__)

    articles_path = args.articles or settings.ARTICLES_PATH
    _print_banner(settings, articles_path, args)

    # ── Vector store ───────────────────────────────────────────────────
    from newsbot.src.database.vector_store import NewsVectorStore

    mark = time.perf_counter()
    store = NewsVectorStore()
    if args.drop or args.drop_only:
        logger.warning("Removing every version of '%s'.", settings.LANCEDB_TABLE_NAME)
        store.drop()
        if not args.drop_only:
            store = NewsVectorStore()
    phases["lancedb"] = (time.perf_counter() - mark) * 1000
    logger.info("[INGEST] Vector store ready in %.1fms: %r", phases["lancedb"], store)

    if args.drop_only:
        _print_report({}, phases, time.perf_counter() - started)
        return

    # ── Embedder ───────────────────────────────────────────────────────
    from newsbot.src.core.embeddings import EmbeddingService, create_embedder

    mark = time.perf_counter()
    try:
        embeddings = EmbeddingService(create_embedder())
    except Exception:
        logger.exception("Embedding model could not be created.")
        sys.exit(1)
    phases["embedder"] = (time.perf_counter() - mark) * 1000
    logger.info("[INGEST] Startup done in %.1fms (%s).", sum(phases.values()), ", ".join(f"{k}={v:.1f}ms" for k, v in phases.items()))

    # ── Ingestion ──────────────────────────────────────────────────────
    from newsbot.src.core.chunker import ArticleChunker
    from newsbot.src.core.exceptions import NewsBotError
    from newsbot.src.core.ingestor import IngestionPipeline
    from newsbot.src.core.refresh_worker import JsonFileArticleSource

    pipeline = IngestionPipeline(ArticleChunker(), embeddings, store)
    source = JsonFileArticleSource(articles_path)

    async def _ingest() -> dict[str, Any]:
        return await pipeline.run(await source.load(), replace=args.replace)

    try:
        summary = asyncio.run(_ingest())
    except NewsBotError as exc:
        logger.error("[INGEST] Aborted: %r", exc)
        sys.exit(1)

    _print_report(summary, phases, time.perf_counter() - started)


# ══════════════════════════════════════════════════════════════════════
#  REPORTING
# ══════════════════════════════════════════════════════════════════════


def _print_banner(settings: Any, articles_path: Path, args: argparse.Namespace) -> None:
    mode = "drop-only" if args.drop_only else "drop + upsert" if args.drop else "replace" if args.replace else "upsert"
    rows = [
        ("Environment", settings.ENV),
        ("Mode", mode),
        ("Articles", articles_path),
        ("Index", f"{settings.LANCEDB_PATH} / {settings.LANCEDB_TABLE_NAME}"),
        ("Embedding", f"{settings.EMBEDDING_MODEL} ({settings.EMBEDDING_DIMENSION}d, batch {settings.EMBED_BATCH_SIZE})"),
        ("Chunking", f"{settings.CHUNK_SIZE} chars, overlap {settings.CHUNK_OVERLAP}"),
    ]
    print("\n" + "═" * REPORT_WIDTH)
    print("  NewsBot index bootstrap")
    print("═" * REPORT_WIDTH)
    for label, value in rows:
        print(f"  {label:<12} {value}")
    print("═" * REPORT_WIDTH + "\n")


def _print_report(summary: dict[str, Any], phases: dict[str, float], elapsed: float) -> None:
    startup_ms = sum(phases.values())
    counts = [
        ("articles in file", summary.get("total_articles", 0)),
        ("articles chunked", summary.get("articles_chunked", 0)),
        ("chunks produced", summary.get("total_chunks", 0)),
        ("chunks written", summary.get("chunks_stored", 0)),
    ]
    timings = [(f"startup: {name}", f"{ms:.1f}ms") for name, ms in phases.items()]
    timings += [("chunking", f"{summary.get('chunk_ms', 0.0):.1f}ms"), ("embedding", f"{summary.get('embed_ms', 0.0):.1f}ms"), ("storage", f"{summary.get('store_ms', 0.0):.1f}ms")]
    timings += [("startup total", f"{startup_ms:.1f}ms"), ("processing", f"{elapsed - startup_ms / 1000:.2f}s"), ("elapsed", f"{elapsed:.2f}s")]

    print("\n" + "═" * REPORT_WIDTH)
    print("  Corpus")
    print("─" * REPORT_WIDTH)
    for label, value in counts:
        print(f"  {label:<20} {value:>10}")
    print("─" * REPORT_WIDTH)
    print("  Timings")
    print("─" * REPORT_WIDTH)
    for label, value in timings:
        print(f"  {label:<20} {value:>10}")
    print("═" * REPORT_WIDTH + "\n")


if __name__ == "__main__":
    main()
