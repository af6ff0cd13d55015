"""
NewsBot - ResultRanker
========================
Turns raw vector-store hits into the final, diversified result list.

Algorithm (``diversify``)
-------------------------
1. Stable sort by score, descending.
2. Walk the sorted hits keeping a list of accepted titles (lower-cased).
3. A candidate is a near-duplicate when, against any accepted title,
   the word-set Jaccard similarity exceeds ``threshold``, *or* it is
   within 0.1 of ``threshold`` and one title's word set contains the
   other's (at least two words), e.g. "fed raises rates" inside
   "fed raises interest rates" (0.75 against 0.8).  "fed raises rates
   again today" scores 0.6 and is kept at 0.9.
4. Stop at ``target_count`` accepted hits.

Cost is O(n·k) with n ≤ ``MAX_TOP_K`` candidates, so it stays trivial.

``ResultRanker.rank`` then formats every accepted hit into a
``RankedResult`` with a snippet and relevance explanation.  Inputs are
never mutated.
"""

from __future__ import annotations

from collections.abc import Sequence

from newsbot.config.settings import settings
from newsbot.src.core.models import RankedResult, SearchHit
from newsbot.src.core.snippets import generate_snippet, relevance_context
from newsbot.src.utils.logger import get_logger

logger = get_logger(__name__)

# Payload fields copied into ``RankedResult.metadata``
_METADATA_FIELDS = ("title", "source", "category", "url", "published_date", "word_count", "char_count")

# Smallest title (in words) that can be swallowed by a longer one
_MIN_CONTAINED_WORDS = 2

# Containment only counts when Jaccard is within this much of the threshold
_CONTAINMENT_MARGIN = 0.1


def _title_words(title: str) -> frozenset[str]:
    return frozenset(title.lower().split())


def _word_set_jaccard(set_a: frozenset[str], set_b: frozenset[str]) -> float:
    union = set_a | set_b
    if not union:
        return 1.0
    return len(set_a & set_b) / len(union)


def jaccard_similarity(a: str, b: str) -> float:
    """
    ``|A ∩ B| / |A ∪ B|`` over lower-cased whitespace tokens.

    Two empty titles are identical (1.0).
    """
    return _word_set_jaccard(_title_words(a), _title_words(b))


def _is_near_duplicate(candidate: frozenset[str], accepted: frozenset[str], threshold: float) -> bool:
    similarity = _word_set_jaccard(candidate, accepted)
    if similarity > threshold:
        return True
    if similarity < threshold - _CONTAINMENT_MARGIN:
        return False
    smaller, larger = (candidate, accepted) if len(candidate) <= len(accepted) else (accepted, candidate)
    return len(smaller) >= _MIN_CONTAINED_WORDS and smaller <= larger


def diversify(hits: Sequence[SearchHit], target_count: int, threshold: float) -> list[SearchHit]:
    """
    Greedy score-ordered selection that skips near-duplicate titles.

    Raises
    ------
    ValueError
        If ``target_count`` is negative.
    """
    if target_count < 0:
        raise ValueError(f"target_count must be >= 0, got {target_count}")
    if target_count == 0 or not hits:
        return []

    ordered = sorted(hits, key=lambda hit: hit.score, reverse=True)
    accepted: list[SearchHit] = []
    accepted_titles: list[frozenset[str]] = []

    for hit in ordered:
        words = _title_words(hit.title)
        if any(_is_near_duplicate(words, seen, threshold) for seen in accepted_titles):
            logger.debug("[RANK] Dropped near-duplicate '%s' (score=%.4f)", hit.title, hit.score)
            continue

        accepted.append(hit)
        accepted_titles.append(words)
        if len(accepted) >= target_count:
            break

    return accepted


class ResultRanker:
    """Sort → diversify → format.  Holds only configuration."""

    __slots__ = ("default_threshold",)

    def __init__(self, default_threshold: float | None = None) -> None:
        self.default_threshold = default_threshold if default_threshold is not None else settings.DIVERSITY_THRESHOLD


    def rank(self, hits: Sequence[SearchHit], target_count: int, diversity_threshold: float | None = None, query: str = "", include_metadata: bool = True) -> list[RankedResult]:
        threshold = self.default_threshold if diversity_threshold is None else diversity_threshold
        selected = diversify(hits, target_count, threshold)
        logger.debug("[RANK] %d candidate(s) → %d result(s) (threshold=%.2f)", len(hits), len(selected), threshold)
        return [self.format_hit(hit, query, include_metadata) for hit in selected]


    @staticmethod
    def format_hit(hit: SearchHit, query: str = "", include_metadata: bool = True) -> RankedResult:
        content = str(hit.payload.get("text") or "")
        chunk_type = str(hit.payload.get("chunk_type") or "content")
        score = round(hit.score, 4)
        metadata = {field: hit.payload.get(field) for field in _METADATA_FIELDS} if include_metadata else {}

        return RankedResult(id=hit.id, score=score, content=content, chunk_type=chunk_type, metadata=metadata, relevance_context=relevance_context(content, score, chunk_type, query), snippet=generate_snippet(content, query))
