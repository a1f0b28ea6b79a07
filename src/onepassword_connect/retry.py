from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from contextlib import suppress
from dataclasses import dataclass
from typing import Any

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_result,
    stop_after_attempt,
)

Backoff = Callable[[int], float]


@dataclass(frozen=True)
class RetryBackoffPolicy:
    """Configuration for retry count and exponential backoff.

    ``max_retries`` counts retries after the first attempt, so a call runs at
    most ``max_retries + 1`` times. The delay after failed attempt ``n`` is
    ``base_seconds ** n``, capped at ``max_seconds`` when set.
    """

    max_retries: int = 3
    base_seconds: float = 2.0
    max_seconds: float | None = None

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.base_seconds < 0:
            raise ValueError("base_seconds must be >= 0")
        if self.max_seconds is not None and self.max_seconds < 0:
            raise ValueError("max_seconds must be >= 0")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, attempt_number: int) -> float:
        """Return the backoff delay after failed attempt ``attempt_number``."""
        delay = float(self.base_seconds**attempt_number)
        if self.max_seconds is not None:
            return min(delay, self.max_seconds)
        return delay


def build_interruptible_sleep(
    stop_event: asyncio.Event,
) -> Callable[[float], Awaitable[None]]:
    """Build an async sleep that exits early when a stop is requested."""

    async def _interruptible_sleep(delay: float) -> None:
        if stop_event.is_set():
            return

        bounded_delay = max(delay, 0.0)
        with suppress(TimeoutError):
            await asyncio.wait_for(stop_event.wait(), timeout=bounded_delay)

    return _interruptible_sleep


def _wait_from(backoff: Backoff) -> Callable[[RetryCallState], float]:
    def _wait(retry_state: RetryCallState) -> float:
        return max(float(backoff(retry_state.attempt_number)), 0.0)

    return _wait


def _return_last_outcome(retry_state: RetryCallState) -> Any:
    outcome = retry_state.outcome
    if outcome is None:
        raise RuntimeError("retry loop stopped before any attempt ran")
    return outcome.result()


def build_outcome_retrying(
    *,
    is_retryable: Callable[[Any], bool],
    policy: RetryBackoffPolicy,
    backoff: Backoff | None = None,
    sleep: Callable[[float], Awaitable[None]] | None = None,
    before_sleep: Callable[[RetryCallState], None] | None = None,
) -> AsyncRetrying:
    """Build an ``AsyncRetrying`` that retries on returned outcomes.

    Attempts return tagged outcome values rather than raising. Outcomes for
    which ``is_retryable`` is true are retried after the backoff delay; once
    attempts run out, the last outcome is returned as-is. Exceptions raised by
    an attempt (cancellation included) are never retried and propagate.
    """
    options: dict[str, Any] = {
        "retry": retry_if_result(is_retryable),
        "stop": stop_after_attempt(policy.max_attempts),
        "wait": _wait_from(policy.delay_for if backoff is None else backoff),
        "retry_error_callback": _return_last_outcome,
    }
    if sleep is not None:
        options["sleep"] = sleep
    if before_sleep is not None:
        options["before_sleep"] = before_sleep
    return AsyncRetrying(**options)
