"""
NewsBot - Downstream Call Guard
=================================
Every call to an external collaborator (embedding provider, vector
store, LLM, session store) goes through ``call_downstream``:

    1. ``asyncio.wait_for`` bounds the call by ``timeout`` seconds.
    2. Provider exceptions are classified into the ``DownstreamError``
       family (timeout / rate-limited / unavailable / auth).
    3. Retryable failures are retried with ``tenacity`` exponential
       backoff plus jitter, up to ``attempts`` tries in total.
    4. The last error is re-raised unchanged.

Usage:
    vector = await call_downstream("embedding", lambda: asyncio.to_thread(embedder.embed_query, text))
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt, wait_exponential_jitter

from newsbot.config.settings import settings
from newsbot.src.core.exceptions import DownstreamAuthError, DownstreamError, DownstreamRateLimited, DownstreamTimeout, DownstreamUnavailable, NewsBotError
from newsbot.src.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# ── Provider error markers ─────────────────────────────────────────────
_AUTH_STATUS = {401, 403}
_RATE_LIMIT_STATUS = {429}
_AUTH_MARKERS = ("api key", "api_key", "permission denied", "unauthenticated", "unauthorized")
_RATE_LIMIT_MARKERS = ("rate limit", "quota", "resource exhausted", "resource_exhausted", "too many requests")


def _status_code(exc: BaseException) -> int | None:
    for attr in ("status_code", "code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    return None


def classify_error(stage: str, exc: BaseException) -> DownstreamError:
    """
    Map an arbitrary provider exception onto the ``DownstreamError`` family.

    Auth failures are never retried; rate limits and everything else
    unknown are treated as transient.
    """
    if isinstance(exc, DownstreamError):
        return exc

    status = _status_code(exc)
    text = str(exc).lower()

    if status in _AUTH_STATUS or any(marker in text for marker in _AUTH_MARKERS):
        return DownstreamAuthError(stage, f"{stage} rejected credentials")
    if status in _RATE_LIMIT_STATUS or any(marker in text for marker in _RATE_LIMIT_MARKERS):
        return DownstreamRateLimited(stage, f"{stage} rate limited")
    return DownstreamUnavailable(stage, f"{stage} failed: {type(exc).__name__}")


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, DownstreamError) and exc.retryable


def _log_retry(stage: str, attempts: int) -> Callable[[RetryCallState], None]:
    def _before_sleep(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning("[RETRY] %s attempt %d/%d failed (%s) — backing off.", stage, retry_state.attempt_number, attempts, exc)

    return _before_sleep


async def call_downstream(stage: str, fn: Callable[[], Awaitable[T]], *, timeout: float | None = None, attempts: int | None = None, wait_initial: float = 0.5, wait_max: float = 8.0) -> T:
    """
    Invoke ``fn`` with a timeout and bounded retries.

    Args:
        stage:        Name used in logs and on the raised error.
        fn:           Zero-argument callable returning a *fresh* awaitable
                      on every call (each retry re-invokes it).
        timeout:      Per-attempt timeout.  Defaults to ``DOWNSTREAM_TIMEOUT_SECONDS``.
        attempts:     Total tries.  Defaults to ``DOWNSTREAM_MAX_ATTEMPTS``.
        wait_initial: First backoff interval in seconds.
        wait_max:     Backoff ceiling in seconds.

    Raises:
        DownstreamError: after the retry budget is spent, or immediately
        for non-retryable failures.
    """
    timeout = settings.DOWNSTREAM_TIMEOUT_SECONDS if timeout is None else timeout
    attempts = settings.DOWNSTREAM_MAX_ATTEMPTS if attempts is None else attempts

    async def _attempt() -> T:
        try:
            return await asyncio.wait_for(fn(), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise DownstreamTimeout(stage, timeout) from exc
        except NewsBotError:
            raise
        except Exception as exc:
            raise classify_error(stage, exc) from exc

    retrying = AsyncRetrying(
        retry=retry_if_exception(_is_retryable),
        stop=stop_after_attempt(attempts),
        wait=wait_exponential_jitter(initial=wait_initial, max=wait_max, jitter=wait_initial),
        before_sleep=_log_retry(stage, attempts),
        reraise=True,
    )
    return await retrying(_attempt)
