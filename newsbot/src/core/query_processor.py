"""
NewsBot - QueryNormalizer
===========================
Turns a raw user query into the string that gets embedded.

    raw ─► lowercase ─► strip disallowed chars ─► collapse whitespace
        ─► expand abbreviations ─► (short query) append missing key terms

The stop-word set and abbreviation table are data from
``newsbot.config.prompt_templates`` and can be overridden per instance.

Normalisation is idempotent on its own output:
``normalize(normalize(q)) == normalize(q)``.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping

from newsbot.config.prompt_templates import ABBREVIATIONS, STOP_WORDS
from newsbot.src.core.exceptions import InvalidQuery

_DISALLOWED_RE = re.compile(r"[^\w\s.,!?-]")
_WHITESPACE_RE = re.compile(r"\s+")
_TERM_PUNCTUATION = ".,!?-"

MAX_KEY_TERMS = 5
MAX_APPENDED_TERMS = 3
SHORT_QUERY_LENGTH = 100
MIN_TERM_LENGTH = 3


class QueryNormalizer:
    """
    Heuristic query cleaner and expander.

    Parameters
    ----------
    stop_words
        Words never treated as key terms.
    abbreviations
        Whole-word replacements applied after cleaning (``"ai"`` →
        ``"artificial intelligence"``).
    """

    __slots__ = ("_stop_words", "_abbreviations")

    def __init__(self, stop_words: Iterable[str] | None = None, abbreviations: Mapping[str, str] | None = None) -> None:
        self._stop_words = frozenset(stop_words) if stop_words is not None else STOP_WORDS
        table = abbreviations if abbreviations is not None else ABBREVIATIONS
        self._abbreviations = [(re.compile(rf"\b{re.escape(short)}\b"), expanded) for short, expanded in table.items()]


    def normalize(self, raw: str) -> str:
        """
        Return the search string for *raw*.

        Raises
        ------
        InvalidQuery
            If *raw* is not a string.  An empty string is valid.
        """
        if not isinstance(raw, str):
            raise InvalidQuery(f"Query must be a string, got {type(raw).__name__}", field="query")

        processed = _DISALLOWED_RE.sub("", raw.lower())
        processed = _WHITESPACE_RE.sub(" ", processed).strip()
        for pattern, expanded in self._abbreviations:
            processed = pattern.sub(expanded, processed)

        if processed and len(processed) < SHORT_QUERY_LENGTH:
            missing = [term for term in self.extract_key_terms(processed) if term not in processed]
            if missing:
                processed = f"{processed} {' '.join(missing[:MAX_APPENDED_TERMS])}"

        return processed


    def extract_key_terms(self, text: str) -> list[str]:
        """First ``MAX_KEY_TERMS`` non-stop-words longer than two characters."""
        terms: list[str] = []
        for word in text.split():
            term = word.strip(_TERM_PUNCTUATION)
            if len(term) >= MIN_TERM_LENGTH and term not in self._stop_words and term not in terms:
                terms.append(term)
                if len(terms) == MAX_KEY_TERMS:
                    break
        return terms
