"""
Bounded retry policy shared by the clock reconciler, the results resolver
and the ledger client.
"""
import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    retry_if_result,
    stop_after_attempt,
)

from ledgervote.core.errors import is_transient


logger = structlog.get_logger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class RetryPolicy:
    """
    Fixed-interval retry with an optional backoff factor.

    The wait before attempt ``n + 1`` is ``interval * backoff ** (n - 1)``,
    capped at ``max_interval`` when set. ``backoff=1.0`` gives a fixed
    interval.
    """

    max_attempts: int = 3
    interval: float = 0.5
    backoff: float = 1.0
    max_interval: Optional[float] = None

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.interval < 0:
            raise ValueError("interval must not be negative")
        if self.backoff < 1.0:
            raise ValueError("backoff must be >= 1.0")

    def delay_for(self, attempt_number: int) -> float:
        """Seconds to wait after the given (1-based) failed attempt."""
        delay = self.interval * (self.backoff ** (attempt_number - 1))
        if self.max_interval is not None:
            delay = min(delay, self.max_interval)
        return delay

    def _wait(self, retry_state: RetryCallState) -> float:
        return self.delay_for(retry_state.attempt_number)

    @staticmethod
    def _log_retry(retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        reason = (
            type(outcome.exception()).__name__
            if outcome is not None and outcome.failed
            else "unsettled_result"
        )
        logger.info(
            "retrying",
            call=getattr(retry_state.fn, "__qualname__", repr(retry_state.fn)),
            attempt=retry_state.attempt_number,
            reason=reason,
        )

    async def call(
        self,
        fn: Callable[..., Awaitable[T]],
        *args: Any,
        sleep: Optional[Sleep] = None,
        **kwargs: Any,
    ) -> T:
        """
        Await ``fn`` retrying transient ledger errors only.
        Terminal errors propagate on the first attempt; the last transient
        error propagates once attempts are exhausted.
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self._wait,
            retry=retry_if_exception(is_transient),
            before_sleep=self._log_retry,
            sleep=sleep or asyncio.sleep,
            reraise=True,
        )
        return await retrying(fn, *args, **kwargs)

    async def until(
        self,
        fn: Callable[..., Awaitable[T]],
        accept: Callable[[T], bool],
        *args: Any,
        sleep: Optional[Sleep] = None,
        **kwargs: Any,
    ) -> T:
        """
        Await ``fn`` until ``accept(result)`` holds, or attempts run out.

        After the last attempt the last observed result is returned as
        final, even if not accepted. Transient errors are retried too;
        if the last attempt raised, that error propagates.
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self._wait,
            retry=retry_if_result(lambda result: not accept(result))
            | retry_if_exception(is_transient),
            before_sleep=self._log_retry,
            sleep=sleep or asyncio.sleep,
            retry_error_callback=lambda state: state.outcome.result(),
        )
        return await retrying(fn, *args, **kwargs)
