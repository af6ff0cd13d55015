"""
NewsBot - ArticleChunker
==========================
Splits a news article into one *title* chunk and a sequence of
overlapping, size-bounded *content* chunks.

Strategy
--------
1. Clean title, summary and content with ``clean_text`` (paragraph
   breaks survive as ``"\\n\\n"``).
2. Title chunk: ``"Title: <title>"`` plus ``"\\n\\nSummary: <summary>"``
   when a summary exists.  Always emitted.
3. Content longer than ``min_chunk_size`` is cut into *units*:
   paragraphs (or sentences when ``preserve_paragraphs=False``).  A
   unit longer than ``chunk_size`` is split again, paragraph → sentence
   → word group, so no unit exceeds ``chunk_size``.
4. Units are packed greedily into windows of at most ``chunk_size``
   characters.  Each following window starts ``chunk_overlap``
   characters before the previous window's end, moved back to a
   sentence start (or word start) when one is close by.

Every content chunk's text is an exact slice of the cleaned content,
so ``start_index`` / ``end_index`` are real offsets and start offsets
strictly increase.

Usage:
    from newsbot.src.core.chunker import ArticleChunker
    chunker = ArticleChunker()
    chunks = chunker.chunk(article)
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Iterable

from pydantic import ValidationError

from newsbot.config.settings import settings
from newsbot.src.core.exceptions import ChunkingError
from newsbot.src.core.models import Article, Chunk, ChunkMetadata
from newsbot.src.utils.logger import get_logger
from newsbot.src.utils.text_utils import clean_text, count_words

logger = get_logger(__name__)

Span = tuple[int, int]

_PARAGRAPH_SEP_RE = re.compile(r"\n\s*\n")
_SENTENCE_SEP_RE = re.compile(r"(?<=[.!?])\s+|\n\s*\n")
_WORD_RE = re.compile(r"\S+")
_SENTENCE_END_CHARS = ".!?"


# ══════════════════════════════════════════════════════════════════════
#  SPAN HELPERS
# ══════════════════════════════════════════════════════════════════════


def _split_spans(text: str, span: Span, separator: re.Pattern[str]) -> list[Span]:
    """Split ``text[span]`` on *separator*, returning trimmed, non-empty sub-spans."""
    start, end = span
    pieces: list[Span] = []
    cursor = start
    for match in separator.finditer(text, start, end):
        pieces.append((cursor, match.start()))
        cursor = match.end()
    pieces.append((cursor, end))
    return [trimmed for piece in pieces if (trimmed := _trim(text, piece)) is not None]


def _trim(text: str, span: Span) -> Span | None:
    start, end = span
    while start < end and text[start].isspace():
        start += 1
    while end > start and text[end - 1].isspace():
        end -= 1
    return (start, end) if end > start else None


def _pack_words(text: str, span: Span, limit: int) -> list[Span]:
    """Group consecutive words of ``text[span]`` into spans of at most *limit* chars."""
    groups: list[Span] = []
    group_start: int | None = None
    group_end = 0

    for match in _WORD_RE.finditer(text, *span):
        w_start, w_end = match.span()

        if w_end - w_start > limit:
            if group_start is not None:
                groups.append((group_start, group_end))
                group_start = None
            # A single oversize token is hard-cut
            groups.extend((i, min(i + limit, w_end)) for i in range(w_start, w_end, limit))
            continue

        if group_start is None:
            group_start, group_end = w_start, w_end
        elif w_end - group_start <= limit:
            group_end = w_end
        else:
            groups.append((group_start, group_end))
            group_start, group_end = w_start, w_end

    if group_start is not None:
        groups.append((group_start, group_end))
    return groups


# ══════════════════════════════════════════════════════════════════════
#  CHUNKER
# ══════════════════════════════════════════════════════════════════════


class ArticleChunker:
    """
    Pure, stateless article → chunks transformer.

    Parameters
    ----------
    chunk_size
        Maximum characters per content chunk.
    chunk_overlap
        Characters shared between consecutive content chunks.
    min_chunk_size
        Content shorter than this is not chunked; intermediate windows
        shorter than this are dropped.
    preserve_paragraphs
        Pack whole paragraphs (``True``) or whole sentences (``False``).
    """

    __slots__ = ("chunk_size", "chunk_overlap", "min_chunk_size", "preserve_paragraphs")

    def __init__(self, chunk_size: int | None = None, chunk_overlap: int | None = None, min_chunk_size: int | None = None, preserve_paragraphs: bool | None = None) -> None:
        self.chunk_size = chunk_size if chunk_size is not None else settings.CHUNK_SIZE
        self.chunk_overlap = chunk_overlap if chunk_overlap is not None else settings.CHUNK_OVERLAP
        self.min_chunk_size = min_chunk_size if min_chunk_size is not None else settings.MIN_CHUNK_SIZE
        self.preserve_paragraphs = preserve_paragraphs if preserve_paragraphs is not None else settings.PRESERVE_PARAGRAPHS

        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")
        if not 0 <= self.chunk_overlap < self.chunk_size:
            raise ValueError(f"chunk_overlap must be in [0, chunk_size), got {self.chunk_overlap}")

    # ══════════════════════════════════════════════════════════════════
    #  PUBLIC API
    # ══════════════════════════════════════════════════════════════════

    def chunk(self, article: Article) -> list[Chunk]:
        """
        Chunk one article.

        Raises
        ------
        ChunkingError
            If the article has no usable title.
        """
        title = clean_text(article.title)
        if not title:
            raise ChunkingError("Article has an empty title", article_id=article.id)

        summary = clean_text(article.summary)
        content = clean_text(article.content)
        metadata = ChunkMetadata(title=article.title, source=article.source, category=article.category, published_date=article.published_date, url=article.url, scraped_at=article.scraped_at)

        title_text = f"Title: {title}" + (f"\n\nSummary: {summary}" if summary else "")
        chunks = [self._make_chunk(article.id, 0, title_text, "title", 0, len(title_text), metadata)]

        if len(content) > self.min_chunk_size:
            for start, end in self._windows(content):
                chunks.append(self._make_chunk(article.id, len(chunks), content[start:end], "content", start, end, metadata))

        return chunks


    def chunk_articles(self, articles: Iterable[Article | dict]) -> list[Chunk]:
        """
        Chunk a batch.  A malformed article is logged and skipped; it
        never aborts the rest of the batch.
        """
        chunks: list[Chunk] = []
        total = 0
        failed = 0

        for raw in articles:
            total += 1
            try:
                article = raw if isinstance(raw, Article) else Article.model_validate(raw)
                chunks.extend(self.chunk(article))
            except (ChunkingError, ValidationError) as exc:
                failed += 1
                label = raw.title if isinstance(raw, Article) else (raw.get("title") if isinstance(raw, dict) else repr(raw))
                logger.warning("[INGEST] Skipping article %r: %s", label, exc)

        logger.info("[INGEST] Chunked %d/%d article(s) into %d chunk(s).", total - failed, total, len(chunks))
        return chunks

    # ══════════════════════════════════════════════════════════════════
    #  WINDOWING
    # ══════════════════════════════════════════════════════════════════

    def _windows(self, content: str) -> list[Span]:
        units = self._units(content)
        if not units:
            return []

        windows: list[Span] = []
        start = units[0][0]
        i = 0

        while i < len(units):
            end = units[i][1]
            j = i + 1
            while j < len(units) and units[j][1] - start <= self.chunk_size:
                end = units[j][1]
                j += 1
            windows.append((start, end))

            if j >= len(units):
                break

            floor = max(units[j][1] - self.chunk_size, start + 1)
            start = self._overlap_start(content, end, floor, fallback=units[j][0])
            i = j

        return self._drop_short(windows)


    def _drop_short(self, windows: list[Span]) -> list[Span]:
        kept = [w for w in windows[:-1] if w[1] - w[0] >= self.min_chunk_size]
        last = windows[-1]
        if last[1] - last[0] >= max(1, self.min_chunk_size // 2):
            kept.append(last)
        return kept


    def _overlap_start(self, content: str, end: int, floor: int, fallback: int) -> int:
        """
        Pick where the next window starts so it repeats roughly the last
        ``chunk_overlap`` characters of the previous one.

        Preference: a sentence start at or just before ``end - overlap``,
        then a word start in the same range, then the next word start
        after it.  Never earlier than *floor*.
        """
        if self.chunk_overlap == 0 or floor >= end:
            return fallback

        target = max(end - self.chunk_overlap, floor)
        lowest = max(floor, target - self.chunk_overlap // 2)

        for pos in range(target, lowest - 1, -1):
            if self._is_sentence_start(content, pos):
                return pos
        for pos in range(target, lowest - 1, -1):
            if self._is_word_start(content, pos):
                return pos
        for pos in range(target, end):
            if self._is_word_start(content, pos):
                return pos
        return fallback


    @staticmethod
    def _is_word_start(content: str, pos: int) -> bool:
        return 0 < pos < len(content) and not content[pos].isspace() and content[pos - 1].isspace()


    @classmethod
    def _is_sentence_start(cls, content: str, pos: int) -> bool:
        if not cls._is_word_start(content, pos):
            return False
        k = pos - 1
        while k >= 0 and content[k].isspace():
            k -= 1
        return k >= 0 and (content[k] in _SENTENCE_END_CHARS or "\n" in content[k + 1 : pos])

    # ══════════════════════════════════════════════════════════════════
    #  UNITS
    # ══════════════════════════════════════════════════════════════════

    def _units(self, content: str) -> list[Span]:
        separator = _PARAGRAPH_SEP_RE if self.preserve_paragraphs else _SENTENCE_SEP_RE
        units: list[Span] = []
        for span in _split_spans(content, (0, len(content)), separator):
            units.extend(self._fit(content, span))
        return units


    def _fit(self, content: str, span: Span) -> list[Span]:
        """Break *span* down until every piece fits in ``chunk_size``."""
        if span[1] - span[0] <= self.chunk_size:
            return [span]

        sentences = _split_spans(content, span, _SENTENCE_SEP_RE)
        if len(sentences) > 1:
            return [piece for sentence in sentences for piece in self._fit(content, sentence)]
        return _pack_words(content, span, self.chunk_size)

    # ══════════════════════════════════════════════════════════════════
    #  HELPERS
    # ══════════════════════════════════════════════════════════════════

    @staticmethod
    def _make_chunk(article_id: str, chunk_id: int, text: str, chunk_type: str, start: int, end: int, metadata: ChunkMetadata) -> Chunk:
        return Chunk(id=f"{article_id}_chunk_{chunk_id}", article_id=article_id, chunk_id=chunk_id, text=text, type=chunk_type, start_index=start, end_index=end, word_count=count_words(text), char_count=len(text), metadata=metadata)


    def __repr__(self) -> str:
        return f"ArticleChunker(chunk_size={self.chunk_size}, overlap={self.chunk_overlap}, min={self.min_chunk_size}, paragraphs={self.preserve_paragraphs})"


def chunk_stats(chunks: list[Chunk]) -> dict[str, int | dict[str, int]]:
    """Per-type / per-source / per-category counts plus average sizes."""
    if not chunks:
        return {"total_chunks": 0, "total_articles": 0, "chunk_types": {}, "sources": {}, "categories": {}, "avg_chunk_size": 0, "avg_word_count": 0}

    return {
        "total_chunks": len(chunks),
        "total_articles": len({c.article_id for c in chunks}),
        "chunk_types": dict(Counter(c.type for c in chunks)),
        "sources": dict(Counter(c.metadata.source for c in chunks)),
        "categories": dict(Counter(c.metadata.category for c in chunks)),
        "avg_chunk_size": round(sum(c.char_count for c in chunks) / len(chunks)),
        "avg_word_count": round(sum(c.word_count for c in chunks) / len(chunks)),
    }
