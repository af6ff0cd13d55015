"""
NewsBot - Text Utilities
=========================
Stateless helpers for cleaning scraped article text, estimating token
cost and deriving stable identifiers.

Consumed by the ``ArticleChunker``, the ``ContextAssembler`` and the
article models.  Nothing here performs I/O.
"""

from __future__ import annotations

import hashlib
import math
import re
import unicodedata


# ── Non-printable character pattern ────────────────────────────────────
# C0/C1 control characters (except \n, \r, \t), BOM, zero-width chars,
# soft hyphens and directional marks.
_NON_PRINTABLE_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f\ufeff\u200b\u200c\u200d\u200e\u200f\u00ad\u2060\ufffe]")

_PARAGRAPH_SPLIT_RE = re.compile(r"\n\s*\n")
_WHITESPACE_RE = re.compile(r"\s+")
_DISALLOWED_CHARS_RE = re.compile(r"[^\w\s.,!?;:()\-\"']")
_ELLIPSIS_RE = re.compile(r"\.{3,}")
_SPACE_BEFORE_PUNCT_RE = re.compile(r"\s+([.,!?;:])")
_SPACE_AFTER_PUNCT_RE = re.compile(r"([.,!?;:])\s+")

# Characters per token for the heuristic estimator
CHARS_PER_TOKEN = 4


# ── Public API ─────────────────────────────────────────────────────────

def clean_text(text: str | None) -> str:
    """
    Sanitise scraped article text for chunking and embedding.

    Steps:
        1. Unicode NFC normalisation.
        2. Strip non-printable / zero-width characters.
        3. Split into paragraphs on blank lines.
        4. Inside each paragraph: collapse whitespace to single spaces,
           drop characters outside ``[\\w\\s.,!?;:()\\-"']``, collapse
           runs of 3+ periods to ``...`` and tidy spacing around
           punctuation.
        5. Re-join non-empty paragraphs with a blank line.

    Args:
        text: Raw text (``None`` is treated as empty).

    Returns:
        Cleaned text whose paragraphs are separated by ``"\\n\\n"``.
    """
    if not text:
        return ""

    text = unicodedata.normalize("NFC", text)
    text = _NON_PRINTABLE_RE.sub("", text)

    paragraphs = [_clean_paragraph(p) for p in _PARAGRAPH_SPLIT_RE.split(text)]
    return "\n\n".join(p for p in paragraphs if p)


def _clean_paragraph(paragraph: str) -> str:
    paragraph = _WHITESPACE_RE.sub(" ", paragraph)
    paragraph = _DISALLOWED_CHARS_RE.sub("", paragraph)
    paragraph = _ELLIPSIS_RE.sub("...", paragraph)
    paragraph = _SPACE_BEFORE_PUNCT_RE.sub(r"\1", paragraph)
    paragraph = _SPACE_AFTER_PUNCT_RE.sub(r"\1 ", paragraph)
    return paragraph.strip()


def estimate_tokens(text: str) -> int:
    """Approximate token count: ``ceil(len(text) / 4)``."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def count_words(text: str) -> int:
    """Whitespace-delimited word count (0 for blank text)."""
    return len(text.split())


def stable_id(*parts: str, length: int = 16) -> str:
    """
    Derive a deterministic hex identifier from *parts*.

    Used for article ids when the source did not provide one, so
    re-ingesting the same article overwrites rather than duplicates.
    """
    digest = hashlib.sha256("\x1f".join(parts).encode("utf-8")).hexdigest()
    return digest[:length]
