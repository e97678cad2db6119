"""Central retry policy for provider, store and recovery calls."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Awaitable, Callable, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from payeebatch.domain.batch.exceptions import (
    ProviderAuthError,
    ProviderJobNotFoundError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_retryable(exc: BaseException) -> bool:
    """Default predicate: transient infrastructure failures only."""
    if isinstance(exc, (ProviderAuthError, ProviderJobNotFoundError)):
        return False
    if getattr(exc, "retryable", False):
        return True
    return isinstance(exc, (ConnectionError, TimeoutError, asyncio.TimeoutError))


def _log_retry(state: RetryCallState) -> None:
    exc = state.outcome.exception() if state.outcome else None
    logger.warning(
        "Attempt %d of %s failed (%s: %s), retrying",
        state.attempt_number,
        getattr(state.fn, "__qualname__", "operation"),
        type(exc).__name__ if exc else "?",
        exc,
    )


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential-backoff retry.

    Parameters
    ----------
    max_attempts
        Total attempts including the first call.
    base_delay
        Multiplier for the exponential wait, in seconds. 0 disables waiting.
    max_delay
        Upper bound for a single wait, in seconds.
    retryable
        Predicate deciding whether an exception is worth another attempt.
        Anything else is re-raised immediately.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    retryable: Callable[[BaseException], bool] = field(default=is_retryable)

    def __post_init__(self):
        if self.max_attempts < 1:
            msg = f"max_attempts must be >= 1, got {self.max_attempts}"
            raise ValueError(msg)

    def with_attempts(self, max_attempts: int) -> RetryPolicy:
        return replace(self, max_attempts=max_attempts)

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.base_delay, max=self.max_delay),
            retry=retry_if_exception(self.retryable),
            before_sleep=_log_retry,
            reraise=True,
        )

    async def call(
        self,
        operation: Callable[[], Awaitable[T]],
        description: Optional[str] = None,
    ) -> T:
        """Run ``operation`` until it succeeds or the policy gives up.

        The last exception propagates unchanged once attempts are exhausted
        or when it is not retryable.
        """
        async for attempt in self._retrying():
            with attempt:
                if description and attempt.retry_state.attempt_number > 1:
                    logger.info(
                        "Retrying %s (attempt %d/%d)",
                        description,
                        attempt.retry_state.attempt_number,
                        self.max_attempts,
                    )
                return await operation()
        msg = "retry loop exited without result"  # pragma: no cover
        raise RuntimeError(msg)
