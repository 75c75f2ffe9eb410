"""Bounded exponential backoff shared by LLM dispatch and job kickoff."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from agent_taskflow.cancellation import CancellationToken, sleep_cancellable
from agent_taskflow.errors import TransientError

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float, CancellationToken | None], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Attempt budget plus ``min(base * 2**n, cap)`` delay schedule."""

    max_attempts: int = 3
    base_seconds: float = 1.0
    max_seconds: float = 15.0

    def delay_for(self, retry_index: int) -> float:
        """Return the sleep before retry ``retry_index`` (0-based)."""

        return min(self.base_seconds * (2 ** max(retry_index, 0)), self.max_seconds)


async def call_with_retry(
    operation: Callable[[int], Awaitable[T]],
    *,
    policy: RetryPolicy,
    cancel: CancellationToken | None = None,
    sleep: SleepFn = sleep_cancellable,
    label: str = "operation",
) -> T:
    """Run ``operation(attempt)`` until it succeeds or the budget is spent.

    Only ``TransientError`` is retried; every other exception propagates at
    once. On exhaustion the last ``TransientError`` is re-raised with
    ``attempts`` set to the number of attempts made.
    """

    attempt = 1
    while True:
        if cancel is not None:
            cancel.raise_if_cancelled()
        try:
            return await operation(attempt)
        except TransientError as error:
            error.attempts = attempt
            if attempt >= policy.max_attempts:
                logger.warning(
                    "%s failed after %d attempt(s): %s",
                    label,
                    attempt,
                    error,
                )
                raise
            delay = policy.delay_for(attempt - 1)
            logger.warning(
                "%s attempt %d/%d failed (%s); retrying in %.1fs",
                label,
                attempt,
                policy.max_attempts,
                error.reason_code or error.failure_class,
                delay,
            )
        await sleep(delay, cancel)
        attempt += 1
