"""Retry policy with exponential backoff for upstream calls."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from utils.errors import classify_error, is_retryable_error

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy:
    """Runs an async operation up to ``max_retries + 1`` times.

    Validation and rate-limit failures are rethrown on the first attempt;
    throttling is handled by waiting before a call, never by retrying after
    it. Retryable and unclassified failures back off by
    ``base_delay * 2 ** (k - 1)`` before retry k, without jitter.
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self._sleep = sleep or asyncio.sleep

    def _log_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            f"Upstream call failed ({classify_error(error).value}: {error}), "
            f"retrying in {retry_state.next_action.sleep:.1f}s "
            f"(attempt {retry_state.attempt_number}/{self.max_retries + 1})"
        )

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.base_delay, exp_base=2, min=0),
            retry=retry_if_exception(is_retryable_error),
            before_sleep=self._log_retry,
            sleep=self._sleep,
            reraise=True,
        )

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run ``operation``, retrying per policy.

        Raises:
            The last error, unchanged, once attempts are exhausted or the
            failure is not retryable.
        """
        # tenacity only awaits callables it recognizes as coroutine functions
        async def _attempt() -> T:
            return await operation()

        return await self._retrying()(_attempt)
