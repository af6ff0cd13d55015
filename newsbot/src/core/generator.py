"""
NewsBot - GeminiGenerator
===========================
Answer generation over ``langchain_google_genai.ChatGoogleGenerativeAI``.

Two prompt shapes:
  • RAG     — system prompt + last 6 history messages + numbered news
              contexts + question (``RAG_PROMPT_TEMPLATE``).
  • Simple  — general assistant prompt + last 4 history messages +
              question (``SIMPLE_PROMPT_TEMPLATE``).

Every LLM call goes through ``call_downstream("generation", ...)`` so it
is timed out, classified and retried like any other external call.

Usage:
    generator = GeminiGenerator()
    result = await generator.generate_rag_response(query, contexts, history)
    print(result.content, result.metadata)
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from datetime import datetime, timezone

from newsbot.config.prompt_templates import CONTEXT_BLOCK_TEMPLATE, NO_HISTORY, NO_NEWS_CONTEXT, RAG_PROMPT_TEMPLATE, SIMPLE_PROMPT_TEMPLATE, SIMPLE_SYSTEM_PROMPT, SYSTEM_PROMPT
from newsbot.config.settings import settings
from newsbot.src.core.models import ConversationMessage, GenerationResult, RankedResult
from newsbot.src.core.resilience import call_downstream
from newsbot.src.utils.logger import get_logger
from newsbot.src.utils.text_utils import estimate_tokens

logger = get_logger(__name__)

RAG_HISTORY_MESSAGES = 6
SIMPLE_HISTORY_MESSAGES = 4


# ══════════════════════════════════════════════════════════════════════
#  PROMPT FORMATTING
# ══════════════════════════════════════════════════════════════════════


def format_history(messages: Sequence[ConversationMessage], limit: int) -> str:
    """Render the last *limit* messages as ``User: ...`` / ``Assistant: ...`` lines."""
    recent = list(messages)[-limit:] if limit else []
    if not recent:
        return NO_HISTORY
    return "\n".join(f"{'User' if m.role == 'user' else 'Assistant'}: {m.content}" for m in recent)


def format_contexts(contexts: Sequence[RankedResult]) -> str:
    """Numbered source blocks, one per retrieved context."""
    if not contexts:
        return NO_NEWS_CONTEXT

    blocks: list[str] = []
    for index, ctx in enumerate(contexts, 1):
        meta = ctx.metadata
        block = CONTEXT_BLOCK_TEMPLATE.format(index=index, source=meta.get("source") or "Unknown", title=meta.get("title") or "Untitled", published_date=meta.get("published_date") or "Unknown date", score=ctx.score, content=ctx.content or ctx.snippet or "No content available")
        if meta.get("url"):
            block += f"\nURL: {meta['url']}"
        blocks.append(block)
    return "\n\n".join(blocks)


def build_rag_prompt(query: str, contexts: Sequence[RankedResult], history: Sequence[ConversationMessage]) -> str:
    return RAG_PROMPT_TEMPLATE.format(history=format_history(history, RAG_HISTORY_MESSAGES), context=format_contexts(contexts), question=query)


def build_simple_prompt(query: str, history: Sequence[ConversationMessage]) -> str:
    return SIMPLE_PROMPT_TEMPLATE.format(history=format_history(history, SIMPLE_HISTORY_MESSAGES), question=query)


# ══════════════════════════════════════════════════════════════════════
#  GENERATOR
# ══════════════════════════════════════════════════════════════════════


class GeminiGenerator:
    """
    Async wrapper around a LangChain chat model.

    Parameters
    ----------
    llm
        Any object exposing ``ainvoke(messages)``.  Defaults to a
        ``ChatGoogleGenerativeAI`` built from settings.
    model
        Model name reported in response metadata.
    """

    __slots__ = ("_llm", "model", "temperature")

    def __init__(self, llm: object | None = None, model: str | None = None, temperature: float | None = None) -> None:
        self.model = model or settings.LLM_MODEL
        self.temperature = settings.LLM_TEMPERATURE if temperature is None else temperature
        self._llm = llm or self._init_llm(self.model, self.temperature)


    @staticmethod
    def _init_llm(model: str, temperature: float) -> object:
        """Initialise Gemini via LangChain."""
        from langchain_google_genai import ChatGoogleGenerativeAI

        llm = ChatGoogleGenerativeAI(model=model, temperature=temperature, top_p=settings.LLM_TOP_P, top_k=settings.LLM_TOP_K, max_output_tokens=settings.LLM_MAX_OUTPUT_TOKENS, google_api_key=settings.GOOGLE_API_KEY.get_secret_value())
        logger.info("LLM initialised: %s (temperature=%.1f, top_p=%.2f, top_k=%d)", model, temperature, settings.LLM_TOP_P, settings.LLM_TOP_K)
        return llm


    async def generate_rag_response(self, query: str, contexts: Sequence[RankedResult], history: Sequence[ConversationMessage] = ()) -> GenerationResult:
        prompt = build_rag_prompt(query, contexts, history)
        result = await self._generate(SYSTEM_PROMPT, prompt)
        result.metadata["contexts_used"] = len(contexts)
        return result


    async def generate_simple_response(self, query: str, history: Sequence[ConversationMessage] = ()) -> GenerationResult:
        prompt = build_simple_prompt(query, history)
        result = await self._generate(SIMPLE_SYSTEM_PROMPT, prompt)
        result.metadata["type"] = "simple_response"
        return result


    async def _generate(self, system_prompt: str, prompt: str) -> GenerationResult:
        from langchain_core.messages import HumanMessage, SystemMessage

        messages = [SystemMessage(content=system_prompt), HumanMessage(content=prompt)]

        t_start = time.perf_counter()
        response = await call_downstream("generation", lambda: self._llm.ainvoke(messages))  # type: ignore[attr-defined]
        elapsed_ms = (time.perf_counter() - t_start) * 1000

        text = self._extract_text(response)
        logger.info("[GEN] %s responded in %.1fms (%d chars)", self.model, elapsed_ms, len(text))

        return GenerationResult(content=text, metadata={"model": self.model, "processing_time_ms": round(elapsed_ms, 1), "prompt_tokens": estimate_tokens(system_prompt + prompt), "response_tokens": estimate_tokens(text), "temperature": self.temperature, "timestamp": datetime.now(timezone.utc).isoformat()})


    @staticmethod
    def _extract_text(response: object) -> str:
        content = getattr(response, "content", response)
        if isinstance(content, list):
            # Multi-part responses: keep the text parts
            return "".join(part if isinstance(part, str) else str(part.get("text", "")) for part in content)
        return str(content)


    def get_stats(self) -> dict[str, str | float | int]:
        return {"model": self.model, "temperature": self.temperature, "top_p": settings.LLM_TOP_P, "top_k": settings.LLM_TOP_K, "max_output_tokens": settings.LLM_MAX_OUTPUT_TOKENS}
