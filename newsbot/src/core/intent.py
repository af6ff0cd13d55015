"""
NewsBot - Intent Heuristics
=============================
Two small, swappable heuristics used by the chat service:

``IntentClassifier.should_use_rag_context``
    Decides whether a turn needs retrieval at all.  True when the
    message contains an information-seeking keyword, matches an
    interrogative pattern, or one of the last three *user* turns
    contained such a keyword.  False positives only cost a search.

``FollowUpQueryEnhancer.enhance_query``
    Adds prior context to follow-up questions ("tell me more",
    "what about ...").  If an earlier user turn was an entity lookup
    (``"Tell me about: <headline>"``), the headline is appended;
    otherwise the last two user turns are.  Anything that is not a
    follow-up passes through untouched.

All keyword lists, patterns and the entity prefix are constructor
arguments, defaulting to ``newsbot.config.prompt_templates``.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from typing import Protocol, runtime_checkable

from newsbot.config.prompt_templates import ENTITY_QUERY_PREFIX, FOLLOW_UP_PATTERNS, INFORMATION_KEYWORDS, QUESTION_PATTERNS
from newsbot.src.core.models import ConversationMessage

HISTORY_LOOKBACK = 3
CONTEXT_TURNS = 2


def _recent_user_turns(history: Sequence[ConversationMessage], count: int) -> list[str]:
    turns = [m.content for m in history if m.role == "user"]
    return turns[-count:] if count else []


@runtime_checkable
class IntentDetector(Protocol):
    def should_use_rag_context(self, message: str, history: Sequence[ConversationMessage]) -> bool: ...


@runtime_checkable
class QueryEnhancer(Protocol):
    def enhance_query(self, message: str, history: Sequence[ConversationMessage]) -> str: ...


class IntentClassifier:
    """Keyword / regex gate for retrieval."""

    __slots__ = ("_keywords", "_patterns")

    def __init__(self, keywords: Iterable[str] | None = None, patterns: Iterable[str] | None = None) -> None:
        self._keywords = tuple(k.lower() for k in (keywords if keywords is not None else INFORMATION_KEYWORDS))
        self._patterns = tuple(re.compile(p, re.IGNORECASE) for p in (patterns if patterns is not None else QUESTION_PATTERNS))


    def has_information_keyword(self, text: str) -> bool:
        lowered = text.lower()
        return any(keyword in lowered for keyword in self._keywords)


    def matches_question_pattern(self, text: str) -> bool:
        return any(pattern.search(text) for pattern in self._patterns)


    def should_use_rag_context(self, message: str, history: Sequence[ConversationMessage]) -> bool:
        if self.has_information_keyword(message) or self.matches_question_pattern(message):
            return True
        return any(self.has_information_keyword(turn) for turn in _recent_user_turns(history, HISTORY_LOOKBACK))


class FollowUpQueryEnhancer:
    """Follow-up detection and query enrichment."""

    __slots__ = ("_patterns", "_entity_prefix")

    def __init__(self, patterns: Iterable[str] | None = None, entity_prefix: str = ENTITY_QUERY_PREFIX) -> None:
        self._patterns = tuple(re.compile(p, re.IGNORECASE) for p in (patterns if patterns is not None else FOLLOW_UP_PATTERNS))
        self._entity_prefix = entity_prefix


    def is_entity_query(self, message: str) -> bool:
        return message.startswith(self._entity_prefix)


    def is_follow_up(self, message: str) -> bool:
        if self.is_entity_query(message):
            return False
        stripped = message.strip()
        return any(pattern.search(stripped) for pattern in self._patterns)


    def enhance_query(self, message: str, history: Sequence[ConversationMessage]) -> str:
        if not history or not self.is_follow_up(message):
            return message

        user_turns = [m.content for m in history if m.role == "user"]
        entity_turns = [turn for turn in user_turns if self.is_entity_query(turn)]
        if entity_turns:
            entity = entity_turns[-1][len(self._entity_prefix) :].strip()
            if entity:
                return f"{message} {entity}"

        recent = user_turns[-CONTEXT_TURNS:]
        if not recent:
            return message
        return f"{message} {' '.join(recent)}"
