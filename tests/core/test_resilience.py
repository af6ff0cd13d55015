"""
Test suite for call_downstream: timeouts, error classification and retries.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from newsbot.src.core.exceptions import DownstreamAuthError, DownstreamError, DownstreamRateLimited, DownstreamTimeout, DownstreamUnavailable, InvalidInput
from newsbot.src.core.resilience import call_downstream, classify_error


class ProviderError(Exception):
    """Stand-in for an SDK exception carrying an HTTP status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TestClassifyError:
    def test_auth_status(self) -> None:
        assert isinstance(classify_error("embedding", ProviderError("denied", 403)), DownstreamAuthError)

    def test_auth_message(self) -> None:
        assert isinstance(classify_error("generation", ValueError("API key not valid")), DownstreamAuthError)

    def test_rate_limit_status_and_message(self) -> None:
        assert isinstance(classify_error("embedding", ProviderError("slow down", 429)), DownstreamRateLimited)
        assert isinstance(classify_error("embedding", RuntimeError("Resource exhausted: quota")), DownstreamRateLimited)

    def test_unknown_errors_are_transient(self) -> None:
        error = classify_error("vector_search", ConnectionError("reset by peer"))

        assert isinstance(error, DownstreamUnavailable)
        assert error.retryable is True
        assert error.stage == "vector_search"

    def test_downstream_errors_pass_through(self) -> None:
        original = DownstreamTimeout("generation", 5.0)

        assert classify_error("generation", original) is original


class TestCallDownstream:
    @pytest.mark.asyncio
    async def test_returns_result(self) -> None:
        fn = AsyncMock(return_value=[0.1, 0.2])

        result = await call_downstream("embedding", fn, attempts=3, wait_initial=0, wait_max=0)

        assert result == [0.1, 0.2]
        fn.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_retries_transient_failures(self) -> None:
        # Arrange
        fn = AsyncMock(side_effect=[ConnectionError("blip"), ConnectionError("blip"), "ok"])

        # Act
        result = await call_downstream("generation", fn, attempts=3, wait_initial=0, wait_max=0)

        # Assert
        assert result == "ok"
        assert fn.await_count == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_attempt_budget(self) -> None:
        fn = AsyncMock(side_effect=ConnectionError("down"))

        with pytest.raises(DownstreamUnavailable) as exc_info:
            await call_downstream("vector_search", fn, attempts=2, wait_initial=0, wait_max=0)

        assert fn.await_count == 2
        assert exc_info.value.stage == "vector_search"

    @pytest.mark.asyncio
    async def test_auth_errors_are_not_retried(self) -> None:
        fn = AsyncMock(side_effect=ProviderError("unauthorized", 401))

        with pytest.raises(DownstreamAuthError):
            await call_downstream("embedding", fn, attempts=3, wait_initial=0, wait_max=0)

        assert fn.await_count == 1

    @pytest.mark.asyncio
    async def test_timeout_becomes_downstream_timeout(self) -> None:
        async def _slow() -> str:
            await asyncio.sleep(1)
            return "late"

        with pytest.raises(DownstreamTimeout) as exc_info:
            await call_downstream("generation", _slow, timeout=0.01, attempts=1)

        assert isinstance(exc_info.value, DownstreamError)
        assert exc_info.value.http_status == 504

    @pytest.mark.asyncio
    async def test_newsbot_errors_propagate_unchanged(self) -> None:
        fn = AsyncMock(side_effect=InvalidInput("bad", field="query"))

        with pytest.raises(InvalidInput):
            await call_downstream("embedding", fn, attempts=3, wait_initial=0, wait_max=0)

        assert fn.await_count == 1
