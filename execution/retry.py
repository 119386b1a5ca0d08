"""Bounded retries with exponential backoff for submission-time calls."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from utils.exceptions import ClientDestroyedError, RequestCancelledError, ValidationError

from .lifecycle import ClientLifecycle


logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]

# never retried: caller intent or structural problems
NON_RETRYABLE = (RequestCancelledError, ClientDestroyedError, ValidationError, asyncio.CancelledError)


def exponential_backoff(base: float, cap: float, exponent: int) -> float:
    """``base * 2**exponent`` clamped to ``[0, cap]``."""
    if exponent < 0:
        exponent = 0
    return max(0.0, min(base * (2 ** exponent), cap))


class RetryingInvoker:
    """
    Wraps a request factory with bounded retries

    Delay after the n-th failed attempt is ``base * 2**(n-1)``, capped.
    On exhaustion the last error is re-raised unchanged.
    """

    def __init__(
        self,
        lifecycle: ClientLifecycle,
        *,
        max_retries: int = 3,
        base_delay_s: float = 1.0,
        max_delay_s: float = 5.0,
        sleep: Optional[Sleep] = None,
    ) -> None:
        self.lifecycle = lifecycle
        self.max_retries = max(0, int(max_retries))
        self.base_delay_s = float(base_delay_s)
        self.max_delay_s = float(max_delay_s)
        self._sleep = sleep or lifecycle.pause

    def _log_retry(self, retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        error = outcome.exception() if outcome is not None else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            f"Request attempt {retry_state.attempt_number} failed, retrying in {delay:.2f}s: {error}"
        )

    async def invoke(self, fn: Callable[[], Awaitable[T]], retries: Optional[int] = None) -> T:
        """
        Run ``fn`` with up to ``retries`` additional attempts

        Raises:
            ClientDestroyedError: client torn down before the first attempt
            RequestCancelledError: cancellation observed before an attempt
            Exception: last error once attempts are exhausted
        """
        self.lifecycle.ensure_alive()
        retries = self.max_retries if retries is None else max(0, int(retries))

        retrying = AsyncRetrying(
            stop=stop_after_attempt(retries + 1),
            wait=wait_exponential(multiplier=self.base_delay_s, max=self.max_delay_s),
            retry=retry_if_not_exception_type(NON_RETRYABLE),
            before_sleep=self._log_retry,
            sleep=self._sleep,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                self.lifecycle.ensure_not_cancelled()
                return await fn()
        raise RuntimeError("retry loop exited without a result")
