"""
NewsBot - RAG Chat Service
============================
Orchestrates one chat turn end to end.

Pipeline (``process_message``)
------------------------------
    1. Validate the message.
    2. Load recent history (``HISTORY_FETCH_LIMIT`` messages).
    3. Trim it to ``CONVERSATION_TOKEN_LIMIT`` with the ``ContextAssembler``.
    4. Intent gate: does this turn need news retrieval?
    5. Enhance follow-up questions with prior-turn context.
    6. Retrieve up to ``max_context`` passages.
    7. Generate:
         • contexts found   → RAG answer with source attribution
         • nothing relevant → simple answer + fallback notice
         • no retrieval     → simple answer ("general_conversation")
    8. Persist the user and assistant messages together.
    9. Return a ``ChatTurn``.

Failure policy
--------------
  • Retrieval failures fall back to a simple answer (``retrieval_failed``).
  • Generation failures produce ``DEGRADED_RESPONSE`` with
    ``metadata.degraded = True`` and the failing stage.
  • History is written once, after the reply exists; a failed turn
    never leaves half a conversation behind.
  • The user always receives text.  Internals are logged with the
    session id, query and stage, not returned.

Usage:
    service = RAGChatService(retrieval, generator, session_store)
    turn = await service.process_message(session_id, "What's the latest on the RBI?")
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, Protocol

from newsbot.config.prompt_templates import DEGRADED_RESPONSE, FALLBACK_NOTICE, NO_CONTEXT_RESPONSE
from newsbot.config.settings import settings
from newsbot.src.core.context import ContextAssembler
from newsbot.src.core.exceptions import DownstreamError, InvalidInput
from newsbot.src.core.generator import GeminiGenerator
from newsbot.src.core.intent import FollowUpQueryEnhancer, IntentClassifier, IntentDetector, QueryEnhancer
from newsbot.src.core.models import ChatOptions, ChatTurn, ConversationMessage, GenerationResult, RankedResult, SearchOptions
from newsbot.src.core.resilience import call_downstream
from newsbot.src.core.retrieval import RetrievalService
from newsbot.src.core.snippets import source_attribution
from newsbot.src.utils.logger import get_logger

logger = get_logger(__name__)


class ConversationStore(Protocol):
    async def get_history(self, session_id: str, limit: int | None = None, offset: int = 0) -> list[ConversationMessage]: ...

    async def add_messages(self, session_id: str, messages: Sequence[ConversationMessage]) -> None: ...


def _new_message(role: str, content: str, metadata: dict[str, Any] | None = None) -> ConversationMessage:
    return ConversationMessage(id=str(uuid.uuid4()), role=role, content=content, metadata=metadata or {})


class RAGChatService:
    """
    Parameters
    ----------
    retrieval
        ``RetrievalService`` for news passages.
    generator
        ``GeminiGenerator`` (or any object with the same two coroutines).
    sessions
        Conversation store (``MongoSessionStore`` in production).
    assembler / intent / enhancer
        Swappable heuristics; defaults come from settings and
        ``prompt_templates``.
    """

    __slots__ = ("_retrieval", "_generator", "_sessions", "_assembler", "_intent", "_enhancer", "token_limit", "history_limit", "fallback_to_simple")

    def __init__(self, retrieval: RetrievalService, generator: GeminiGenerator, sessions: ConversationStore, assembler: ContextAssembler | None = None, intent: IntentDetector | None = None, enhancer: QueryEnhancer | None = None) -> None:
        self._retrieval = retrieval
        self._generator = generator
        self._sessions = sessions
        self._assembler = assembler or ContextAssembler()
        self._intent = intent or IntentClassifier()
        self._enhancer = enhancer or FollowUpQueryEnhancer()
        self.token_limit = settings.CONVERSATION_TOKEN_LIMIT
        self.history_limit = settings.HISTORY_FETCH_LIMIT
        self.fallback_to_simple = settings.FALLBACK_TO_SIMPLE_RESPONSE

    # ══════════════════════════════════════════════════════════════════
    #  PUBLIC ENTRY POINT
    # ══════════════════════════════════════════════════════════════════

    async def process_message(self, session_id: str, message: str, options: ChatOptions | None = None) -> ChatTurn:
        """
        Run one chat turn and persist it.

        Raises
        ------
        InvalidInput
            Empty, non-string or over-long message.
        DownstreamError
            Only when the session store itself is unreachable.
        """
        if not isinstance(message, str) or not message.strip():
            raise InvalidInput("Message must be a non-empty string", field="message")
        if len(message) > settings.MAX_MESSAGE_LENGTH:
            raise InvalidInput(f"Message exceeds {settings.MAX_MESSAGE_LENGTH} characters", field="message")

        options = options or ChatOptions()
        t_start = time.perf_counter()
        logger.info("[CHAT] Session %s: %r", session_id, message[:50])

        # ── 1. History (timed) ─────────────────────────────────────────
        history = await call_downstream("session_store", lambda: self._sessions.get_history(session_id, self.history_limit))
        # The Gemini token counter blocks
        managed = await asyncio.to_thread(self._assembler.assemble, history, self.token_limit)

        # ── 2. Intent + retrieval ──────────────────────────────────────
        rag_context: dict[str, Any] | None = None
        needs_rag = options.use_rag and options.max_context > 0 and self._intent.should_use_rag_context(message, managed.messages)

        if needs_rag:
            contexts, rag_context = await self._retrieve(session_id, message, managed.messages, options)
            result = await self._answer_with_context(session_id, message, contexts, managed.messages, rag_context)
        else:
            result = await self._safe_generate(session_id, message, lambda: self._generator.generate_simple_response(message, managed.messages))
            result.metadata.setdefault("rag_used", False)
            if not result.metadata.get("degraded"):
                result.metadata["reason"] = "general_conversation"

        # ── 3. Metadata ────────────────────────────────────────────────
        total_ms = (time.perf_counter() - t_start) * 1000
        result.metadata["total_processing_time_ms"] = round(total_ms, 1)
        result.metadata["original_messages"] = len(history)
        result.metadata["used_messages"] = len(managed.messages)
        result.metadata["trimmed_messages"] = managed.trimmed_count
        result.metadata["context_tokens"] = managed.total_tokens

        # ── 4. Persist both turns together ─────────────────────────────
        user_message = _new_message("user", message)
        assistant_message = _new_message("assistant", result.content, {k: v for k, v in result.metadata.items() if k != "sources"})
        await call_downstream("session_store", lambda: self._sessions.add_messages(session_id, [user_message, assistant_message]), attempts=1)

        logger.info("[CHAT] Session %s answered in %.1fms (rag=%s, degraded=%s)", session_id, total_ms, result.metadata.get("rag_used"), result.metadata.get("degraded", False))

        if rag_context is not None and "sources" in result.metadata:
            rag_context["sources"] = result.metadata["sources"]
        turn_context = rag_context or {}
        turn_context["session_info"] = {"conversation_length": len(history) + 1, "context_managed": managed.trimmed_count > 0}
        return ChatTurn(session_id=session_id, user_message=user_message, message=assistant_message, rag_context=turn_context)

    # ══════════════════════════════════════════════════════════════════
    #  RETRIEVAL
    # ══════════════════════════════════════════════════════════════════

    async def _retrieve(self, session_id: str, message: str, history: list[ConversationMessage], options: ChatOptions) -> tuple[list[RankedResult], dict[str, Any]]:
        enhanced = self._enhancer.enhance_query(message, history)
        base = options.search_options or SearchOptions()
        top_k = max(1, min(options.max_context, self._retrieval.max_top_k))
        search_options = base.model_copy(update={"top_k": top_k})

        try:
            response = await self._retrieval.search_documents(enhanced, search_options)
        except (DownstreamError, InvalidInput) as exc:
            stage = getattr(exc, "stage", "retrieval")
            logger.error("[CHAT] Retrieval failed — session=%s stage=%s query=%r: %s", session_id, stage, enhanced[:80], exc.message)
            return [], {"query": {"original": message, "enhanced": enhanced}, "metadata": {"search_successful": False, "failed_stage": stage}}

        return response.results, {
            "query": {"original": message, "enhanced": enhanced, "search_time_ms": response.search_time_ms},
            "contexts": [r.model_dump(mode="json") for r in response.results],
            "metadata": {"total_found": response.total_found, "contexts_used": len(response.results), "min_score": search_options.min_score, "search_successful": bool(response.results)},
        }

    # ══════════════════════════════════════════════════════════════════
    #  GENERATION
    # ══════════════════════════════════════════════════════════════════

    async def _answer_with_context(self, session_id: str, message: str, contexts: list[RankedResult], history: list[ConversationMessage], rag_context: dict[str, Any]) -> GenerationResult:
        if contexts:
            result = await self._safe_generate(session_id, message, lambda: self._generator.generate_rag_response(message, contexts, history))
            if not result.metadata.get("degraded"):
                result.metadata["rag_used"] = True
                result.metadata["contexts_count"] = len(contexts)
                result.metadata["sources"] = [source_attribution(c) for c in contexts]
            return result

        result = await self._fallback_response(session_id, message, history)
        failed_stage = rag_context.get("metadata", {}).get("failed_stage")
        result.metadata["rag_used"] = False
        result.metadata["fallback_reason"] = "retrieval_failed" if failed_stage else "no_relevant_context"
        if failed_stage:
            result.metadata["failed_stage"] = failed_stage
        return result


    async def _fallback_response(self, session_id: str, message: str, history: list[ConversationMessage]) -> GenerationResult:
        """Nothing relevant was retrieved: answer from general knowledge, clearly marked."""
        if not self.fallback_to_simple:
            return GenerationResult(content=NO_CONTEXT_RESPONSE, metadata={"fallback_used": True, "fallback_type": "no_response", "model": "fallback"})

        result = await self._safe_generate(session_id, message, lambda: self._generator.generate_simple_response(message, history))
        if result.metadata.get("degraded"):
            return result
        result.content += FALLBACK_NOTICE
        result.metadata["fallback_used"] = True
        result.metadata["fallback_type"] = "simple_response"
        return result


    async def _safe_generate(self, session_id: str, message: str, generate: Callable[[], Awaitable[GenerationResult]]) -> GenerationResult:
        """Run a generation coroutine; on provider failure return the canned degraded reply."""
        try:
            return await generate()
        except DownstreamError as exc:
            logger.error("[CHAT] Generation failed — session=%s stage=%s query=%r: %s", session_id, exc.stage, message[:80], exc.message)
            return GenerationResult(content=DEGRADED_RESPONSE, metadata={"degraded": True, "fallback_used": True, "failed_stage": exc.stage, "error_code": exc.error_code, "rag_used": False})


    def get_stats(self) -> dict[str, Any]:
        return {"generator": self._generator.get_stats(), "retrieval": self._retrieval.get_stats(), "config": {"max_context_results": settings.MAX_CONTEXT_RESULTS, "conversation_token_limit": self.token_limit, "history_fetch_limit": self.history_limit, "fallback_to_simple_response": self.fallback_to_simple}}
