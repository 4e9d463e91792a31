"""
gateway_bootstrap.polling — Bounded "await predicate" primitive.

Fixed-interval polling by default; an optional backoff multiplier grows the
interval up to `max_interval`.  The attempt count is always bounded by
`RetryPolicy.max_attempts`, so a predicate that never succeeds returns
TIMED_OUT after exactly that many calls.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from gateway_bootstrap.models import WaitOutcome, WaitStatus

logger = logging.getLogger("gateway_bootstrap.polling")

Predicate = Callable[[], bool]
Sleeper = Callable[[float], None]


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int
    interval_seconds: float
    backoff: float = 1.0
    max_interval_seconds: float | None = None

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.interval_seconds < 0:
            raise ValueError("interval_seconds must be >= 0")
        if self.backoff < 1.0:
            raise ValueError("backoff must be >= 1.0")

    def delay_before(self, attempt: int) -> float:
        """Delay slept before `attempt` (2-based; attempt 1 is never delayed)."""
        delay = self.interval_seconds * (self.backoff ** max(attempt - 2, 0))
        if self.max_interval_seconds is not None:
            delay = min(delay, self.max_interval_seconds)
        return delay

    @property
    def total_wait_seconds(self) -> float:
        """Upper bound on time spent sleeping, excluding predicate latency."""
        return sum(self.delay_before(n) for n in range(2, self.max_attempts + 1))


def await_predicate(
    predicate: Predicate,
    policy: RetryPolicy,
    *,
    label: str = "condition",
    sleep: Sleeper = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> WaitOutcome:
    """Poll `predicate` until it returns True or the policy is exhausted.

    The first success returns immediately.  The delay is only slept between
    attempts, never after the last one.
    """
    started = clock()
    for attempt in range(1, policy.max_attempts + 1):
        if attempt > 1:
            sleep(policy.delay_before(attempt))
        if predicate():
            logger.debug("%s ready after %d attempt(s)", label, attempt)
            return WaitOutcome(
                status=WaitStatus.READY,
                attempts=attempt,
                elapsed_seconds=clock() - started,
            )
        logger.debug("%s not ready (attempt %d/%d)", label, attempt, policy.max_attempts)

    return WaitOutcome(
        status=WaitStatus.TIMED_OUT,
        attempts=policy.max_attempts,
        elapsed_seconds=clock() - started,
    )
