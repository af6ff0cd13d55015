"""
NewsBot - Conversation Context Assembler
==========================================
Selects the most recent conversation messages that fit a token budget.

    history (oldest → newest) ──► walk newest → oldest, keep while
    running total ≤ budget ──► stop at the first message that does not
    fit ──► return kept messages in chronological order

Token cost is a pluggable ``TokenEstimator``:
  • ``estimate_tokens``     — ``ceil(len / 4)``, deterministic, no I/O.
  • ``GeminiTokenCounter``  — google-genai ``count_tokens`` with the
                              heuristic as fallback when the API fails.

The assembler never mutates the history it is given.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Protocol, runtime_checkable

from newsbot.config.settings import settings
from newsbot.src.core.models import AssembledContext, ConversationMessage
from newsbot.src.utils.logger import get_logger
from newsbot.src.utils.text_utils import estimate_tokens

logger = get_logger(__name__)


@runtime_checkable
class TokenEstimator(Protocol):
    """Anything that maps text to an (approximate) token count."""

    def __call__(self, text: str) -> int: ...


class GeminiTokenCounter:
    """
    Exact token counts from the Gemini counting API.

    Falls back to ``estimate_tokens`` if the API call fails, so the
    assembler keeps working when the provider is unreachable.
    """

    __slots__ = ("_client", "_model")

    def __init__(self, client: object | None = None, model: str | None = None) -> None:
        if client is None:
            from google import genai

            client = genai.Client(api_key=settings.GOOGLE_API_KEY.get_secret_value())
        self._client = client
        self._model = model or settings.LLM_MODEL


    def __call__(self, text: str) -> int:
        if not text:
            return 0
        try:
            response = self._client.models.count_tokens(model=self._model, contents=text)  # type: ignore[attr-defined]
            return int(response.total_tokens)
        except Exception as exc:
            logger.warning("[CONTEXT] Token counting API failed (%s) — using heuristic estimate.", type(exc).__name__)
            return estimate_tokens(text)


class ContextAssembler:
    """
    Budget-bounded history selection.

    Parameters
    ----------
    estimator
        Token cost function.  Defaults to ``estimate_tokens``.
    """

    __slots__ = ("_estimate",)

    def __init__(self, estimator: Callable[[str], int] | None = None) -> None:
        self._estimate = estimator or estimate_tokens


    def assemble(self, history: Sequence[ConversationMessage], token_budget: int | None = None) -> AssembledContext:
        """
        Keep the newest messages whose summed cost stays within *token_budget*.

        Raises
        ------
        ValueError
            If *token_budget* is negative.
        """
        budget = settings.CONVERSATION_TOKEN_LIMIT if token_budget is None else token_budget
        if budget < 0:
            raise ValueError(f"token_budget must be >= 0, got {budget}")

        kept: list[ConversationMessage] = []
        total = 0

        for message in reversed(history):
            cost = self._estimate(message.content)
            if total + cost > budget:
                break
            kept.append(message)
            total += cost

        kept.reverse()
        trimmed = len(history) - len(kept)
        if trimmed:
            logger.debug("[CONTEXT] Trimmed %d of %d message(s) to fit %d tokens.", trimmed, len(history), budget)

        return AssembledContext(messages=kept, total_tokens=total, trimmed_count=trimmed)
