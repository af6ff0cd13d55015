"""
NewsBot - NewsVectorStore
===========================
LanceDB-backed index of embedded article chunks.

  • Strict PyArrow schema with a fixed-size ``vector`` column.
  • ``upsert``            — merge-insert on ``id`` (re-ingest overwrites).
  • ``search``            — cosine search, ``score = 1 - distance``,
                            optional SQL ``where`` and score threshold,
                            results in descending score order.
  • ``delete_by_filter``  — SQL predicate delete.
  • ``replace_all``       — full corpus swap without a half-built state.

Versioned tables
----------------
Physical tables are named ``<table>__v<N>``.  The store reads from the
highest version.  ``replace_all`` builds version ``N+1`` completely,
then swaps the in-memory pointer under a lock, so a concurrent search
sees either the old corpus or the new one.  The version just replaced
is kept until the next swap for searches still reading it; older ones
are dropped.

Usage:
    store = NewsVectorStore()
    store.upsert(embedded_chunks)
    hits = store.search(vector, limit=10, where="(source IN ('BBC'))", score_threshold=0.3)
"""

from __future__ import annotations

import re
import threading
from collections.abc import Sequence

import lancedb
import pyarrow as pa

from newsbot.config.settings import settings
from newsbot.src.core.models import EmbeddedChunk, SearchHit
from newsbot.src.utils.logger import get_logger

logger = get_logger(__name__)

# ── Type Aliases ──────────────────────────────────────────────────────
ChunkRecord = dict[str, str | int | list[float] | None]

_DB_LOCK = threading.Lock()
_db_connection_cache: dict[str, lancedb.DBConnection] = {}

# Row fields that are returned as hit payload
_PAYLOAD_EXCLUDE = {"vector", "_distance"}


def build_schema(dimension: int) -> pa.Schema:
    """Arrow schema for the chunk table with a ``dimension``-wide vector."""
    return pa.schema([
        pa.field("id", pa.utf8(), nullable=False),
        pa.field("vector", pa.list_(pa.float32(), dimension)),
        pa.field("text", pa.utf8()),
        pa.field("chunk_type", pa.utf8()),
        pa.field("article_id", pa.utf8()),
        pa.field("chunk_id", pa.int32()),
        pa.field("start_index", pa.int32()),
        pa.field("end_index", pa.int32()),
        pa.field("word_count", pa.int32()),
        pa.field("char_count", pa.int32()),
        pa.field("title", pa.utf8()),
        pa.field("source", pa.utf8()),
        pa.field("category", pa.utf8()),
        pa.field("url", pa.utf8()),
        pa.field("published_date", pa.utf8()),
        pa.field("scraped_at", pa.utf8()),
    ])


def _get_connection(db_path: str) -> lancedb.DBConnection:
    """Return a **singleton** ``lancedb.DBConnection`` for *db_path*."""
    if db_path not in _db_connection_cache:
        with _DB_LOCK:
            if db_path not in _db_connection_cache:
                logger.info("Opening new LanceDB connection: %s", db_path)
                _db_connection_cache[db_path] = lancedb.connect(db_path)
    return _db_connection_cache[db_path]


def to_record(item: EmbeddedChunk) -> ChunkRecord:
    chunk = item.chunk
    meta = chunk.metadata
    return {
        "id": chunk.id,
        "vector": list(item.embedding),
        "text": chunk.text,
        "chunk_type": chunk.type,
        "article_id": chunk.article_id,
        "chunk_id": chunk.chunk_id,
        "start_index": chunk.start_index,
        "end_index": chunk.end_index,
        "word_count": chunk.word_count,
        "char_count": chunk.char_count,
        "title": meta.title,
        "source": meta.source,
        "category": meta.category,
        "url": meta.url,
        "published_date": meta.published_date,
        "scraped_at": meta.scraped_at,
    }


class NewsVectorStore:
    """
    Parameters
    ----------
    db_path
        Database directory.  Defaults to ``settings.LANCEDB_PATH``.
    table_name
        Logical table name.  Defaults to ``settings.LANCEDB_TABLE_NAME``.
    dimension
        Vector width.  Defaults to ``settings.EMBEDDING_DIMENSION``.
    """

    __slots__ = ("_db_path", "_table_name", "dimension", "schema", "db", "table", "_version", "_swap_lock")

    def __init__(self, db_path: str | None = None, table_name: str | None = None, dimension: int | None = None) -> None:
        self._db_path: str = str(db_path or settings.LANCEDB_PATH)
        self._table_name: str = table_name or settings.LANCEDB_TABLE_NAME
        self.dimension: int = dimension or settings.EMBEDDING_DIMENSION
        self.schema = build_schema(self.dimension)
        self.db: lancedb.DBConnection | None = None
        self.table: lancedb.table.Table | None = None
        self._version: int = 0
        self._swap_lock = threading.Lock()
        self._connect()


    def _connect(self) -> None:
        """Open (or re-use) the connection and the newest table version."""
        try:
            self.db = _get_connection(self._db_path)
            versions = self._existing_versions()

            if versions:
                self._version = versions[-1]
                self.table = self.db.open_table(self._physical_name(self._version))
                logger.info("Opened table '%s' v%d (%d rows).", self._table_name, self._version, self.table.count_rows())
            else:
                self._version = 1
                self.table = self.db.create_table(self._physical_name(1), schema=self.schema)
                logger.info("Created new table '%s' v1.", self._table_name)

        except OSError as exc:
            logger.error("LanceDB filesystem error at %s: %s", self._db_path, exc)
            raise


    def _physical_name(self, version: int) -> str:
        return f"{self._table_name}__v{version}"


    def _existing_versions(self) -> list[int]:
        pattern = re.compile(rf"^{re.escape(self._table_name)}__v(\d+)$")
        names = self.db.table_names() if self.db is not None else []
        return sorted(int(m.group(1)) for name in names if (m := pattern.match(name)))


    def _require_table(self) -> lancedb.table.Table:
        if self.table is None:
            raise RuntimeError("Vector table is not initialised.")
        return self.table

    # ══════════════════════════════════════════════════════════════════
    #  WRITES
    # ══════════════════════════════════════════════════════════════════

    def upsert(self, items: Sequence[EmbeddedChunk]) -> int:
        """Insert or overwrite chunks by ``id``.  Returns rows written."""
        if not items:
            return 0
        records = [self._validated(to_record(item)) for item in items]
        table = self._require_table()

        try:
            table.merge_insert("id").when_matched_update_all().when_not_matched_insert_all().execute(records)
        except OSError as exc:
            logger.error("Failed to write records to LanceDB: %s", exc)
            raise

        logger.info("[INGEST] Upserted %d chunk(s) into '%s' v%d.", len(records), self._table_name, self._version)
        return len(records)


    def replace_all(self, items: Sequence[EmbeddedChunk]) -> int:
        """
        Atomically replace the whole corpus with *items*.

        The new version is fully written before it becomes visible.
        """
        records = [self._validated(to_record(item)) for item in items]
        if self.db is None:
            raise RuntimeError("No database connection.")

        with self._swap_lock:
            new_version = max(self._existing_versions(), default=0) + 1
            new_table = self.db.create_table(self._physical_name(new_version), schema=self.schema)
            if records:
                new_table.add(records)

            previous = self._version
            self.table, self._version = new_table, new_version
            logger.info("[REFRESH] Swapped '%s' v%d → v%d (%d rows).", self._table_name, previous, new_version, len(records))

            for stale in self._existing_versions():
                if stale < previous:
                    self.db.drop_table(self._physical_name(stale))
                    logger.debug("[REFRESH] Dropped stale table version v%d.", stale)

        return len(records)


    def delete_by_filter(self, where: str) -> int:
        """Delete rows matching a SQL predicate.  Returns rows removed."""
        table = self._require_table()
        before = table.count_rows()
        table.delete(where)
        removed = before - table.count_rows()
        logger.info("Deleted %d row(s) where %s", removed, where)
        return removed


    def _validated(self, record: ChunkRecord) -> ChunkRecord:
        vector = record["vector"]
        if not isinstance(vector, list) or len(vector) != self.dimension:
            raise ValueError(f"Chunk {record['id']} has a vector of the wrong dimension (expected {self.dimension}).")
        return record

    # ══════════════════════════════════════════════════════════════════
    #  READS
    # ══════════════════════════════════════════════════════════════════

    def search(self, vector: Sequence[float], limit: int = 10, where: str | None = None, score_threshold: float | None = None) -> list[SearchHit]:
        """
        Cosine similarity search.

        Returns
        -------
        list[SearchHit]
            At most *limit* hits with ``score >= score_threshold``,
            sorted by score descending.
        """
        if len(vector) != self.dimension:
            raise ValueError(f"Query vector has {len(vector)} dimensions, expected {self.dimension}.")
        table = self._require_table()

        query = table.search(list(vector)).distance_type("cosine").limit(limit)
        if where:
            query = query.where(where, prefilter=True)

        rows = query.to_list()
        hits: list[SearchHit] = []
        for row in rows:
            score = 1.0 - float(row["_distance"])
            if score_threshold is not None and score < score_threshold:
                continue
            payload = {key: value for key, value in row.items() if key not in _PAYLOAD_EXCLUDE}
            hits.append(SearchHit(id=str(row["id"]), score=score, payload=payload))

        hits.sort(key=lambda hit: hit.score, reverse=True)
        logger.debug("[SEARCH] LanceDB returned %d row(s), %d above threshold.", len(rows), len(hits))
        return hits


    def count(self) -> int:
        """Total rows in the active table version."""
        if self.table is None:
            return 0
        return self.table.count_rows()


    def get_stats(self) -> dict[str, str | int]:
        return {"table": self._table_name, "version": self._version, "rows": self.count(), "dimension": self.dimension, "path": self._db_path}


    def drop(self) -> None:
        """Drop every version of the table (used by ``--drop``)."""
        if self.db is None:
            logger.warning("No database connection; nothing to drop.")
            return
        with self._swap_lock:
            for version in self._existing_versions():
                self.db.drop_table(self._physical_name(version))
            self.table = None
            logger.info("Dropped all versions of table '%s'.", self._table_name)


    def __repr__(self) -> str:
        return f"NewsVectorStore(db='{self._db_path}', table='{self._table_name}', version={self._version}, rows={self.count()})"
