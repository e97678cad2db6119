"""Tests for the central retry policy."""

from unittest.mock import AsyncMock

import pytest

from payeebatch.application.retry import RetryPolicy, is_retryable
from payeebatch.domain.batch import (
    ProviderAuthError,
    ProviderError,
    ProviderJobNotFoundError,
    ProviderUnavailableError,
    StoreUnavailableError,
)


class TestIsRetryable:
    @pytest.mark.parametrize(
        "exc",
        [
            ProviderUnavailableError("timeout"),
            StoreUnavailableError("db down"),
            ConnectionError("reset"),
            TimeoutError(),
        ],
    )
    def test_transient_failures(self, exc):
        assert is_retryable(exc)

    @pytest.mark.parametrize(
        "exc",
        [
            ProviderAuthError("bad key"),
            ProviderJobNotFoundError("batch_x"),
            ProviderError("bad request"),
            ValueError("bug"),
        ],
    )
    def test_permanent_failures(self, exc):
        assert not is_retryable(exc)


class TestRetryPolicy:
    @pytest.mark.asyncio
    async def test_returns_first_success(self):
        operation = AsyncMock(return_value="ok")

        result = await RetryPolicy(base_delay=0).call(operation)

        assert result == "ok"
        assert operation.await_count == 1

    @pytest.mark.asyncio
    async def test_retries_transient_errors_until_success(self):
        operation = AsyncMock(
            side_effect=[ProviderUnavailableError("blip"), ProviderUnavailableError("blip"), 42],
        )

        result = await RetryPolicy(max_attempts=3, base_delay=0).call(operation, "poll")

        assert result == 42
        assert operation.await_count == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts_with_last_error(self):
        operation = AsyncMock(side_effect=ProviderUnavailableError("still down"))

        with pytest.raises(ProviderUnavailableError, match="still down"):
            await RetryPolicy(max_attempts=3, base_delay=0).call(operation)

        assert operation.await_count == 3

    @pytest.mark.asyncio
    async def test_permanent_error_is_not_retried(self):
        operation = AsyncMock(side_effect=ProviderAuthError("bad key"))

        with pytest.raises(ProviderAuthError):
            await RetryPolicy(max_attempts=5, base_delay=0).call(operation)

        assert operation.await_count == 1

    @pytest.mark.asyncio
    async def test_with_attempts_changes_only_the_attempt_count(self):
        base = RetryPolicy(max_attempts=2, base_delay=0)
        operation = AsyncMock(side_effect=ProviderUnavailableError("down"))

        with pytest.raises(ProviderUnavailableError):
            await base.with_attempts(4).call(operation)

        assert operation.await_count == 4
        assert base.max_attempts == 2

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError, match="max_attempts"):
            RetryPolicy(max_attempts=0)
