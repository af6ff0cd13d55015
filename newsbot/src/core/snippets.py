"""
NewsBot - Snippets & Source Attribution
=========================================
Builds the short, query-focused excerpt shown under each search
result and the attribution records attached to RAG answers.

Snippet anchor
--------------
Every occurrence of every query term is a candidate.  A candidate is
scored by how many *distinct* query terms appear within ±50 characters
of it; the best-scoring candidate (earliest on ties) wins and the
excerpt starts 50 characters before it.  With no match the excerpt
starts at offset 0.
"""

from __future__ import annotations

from newsbot.src.core.models import MetadataValue, RankedResult, RelevanceContext

SNIPPET_WINDOW = 50
DEFAULT_SNIPPET_LENGTH = 200
ELLIPSIS = "..."


def _query_terms(query: str) -> list[str]:
    seen: list[str] = []
    for term in query.lower().split():
        if term not in seen:
            seen.append(term)
    return seen


def _best_anchor(lower_content: str, terms: list[str]) -> int:
    best_position = 0
    best_score = 0
    best_occurrence = -1

    for term in terms:
        position = lower_content.find(term)
        while position != -1:
            window = lower_content[max(0, position - SNIPPET_WINDOW) : position + SNIPPET_WINDOW]
            score = sum(1 for t in terms if t in window)
            if score > best_score or (score == best_score and position < best_occurrence):
                best_score = score
                best_occurrence = position
                best_position = max(0, position - SNIPPET_WINDOW)
            position = lower_content.find(term, position + 1)

    return best_position


def generate_snippet(content: str, query: str, max_length: int = DEFAULT_SNIPPET_LENGTH) -> str:
    """
    Return at most ``max_length`` characters of *content* around the
    densest cluster of query terms, with partial words trimmed and
    ``"..."`` appended when the excerpt stops before the end.
    """
    if not content:
        return ""

    anchor = _best_anchor(content.lower(), _query_terms(query))
    end = anchor + max_length
    snippet = content[anchor:end]

    # Leading partial word
    if anchor > 0 and not content[anchor - 1].isspace() and not snippet[:1].isspace():
        cut = snippet.find(" ")
        if cut != -1:
            snippet = snippet[cut + 1 :]
    # Trailing partial word
    if end < len(content) and not content[end].isspace() and not snippet[-1:].isspace():
        cut = snippet.rfind(" ")
        if cut != -1:
            snippet = snippet[:cut]

    snippet = snippet.strip()
    return snippet + ELLIPSIS if end < len(content) else snippet


def relevance_context(content: str, score: float, chunk_type: str, query: str) -> RelevanceContext:
    """Why a result was returned: matched query terms and its similarity score."""
    lower_content = content.lower()
    matched = [term for term in _query_terms(query) if term in lower_content]
    return RelevanceContext(matched_terms=matched, score_explanation=f"Similarity score: {score}", content_type=chunk_type)


def source_attribution(result: RankedResult) -> dict[str, MetadataValue]:
    """Attribution record attached to a RAG answer for one context."""
    meta = result.metadata
    excerpt = result.snippet or result.content[:DEFAULT_SNIPPET_LENGTH]
    return {
        "title": meta.get("title") or "Unknown Title",
        "source": meta.get("source") or "Unknown Source",
        "url": meta.get("url"),
        "published_date": meta.get("published_date"),
        "relevance_score": result.score,
        "content_snippet": excerpt,
        "category": meta.get("category") or "unknown",
    }
