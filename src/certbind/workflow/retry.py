"""Retry policies for scheduled steps."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff budget for one step.

    Attributes
    ----------
    max_attempts:
        Total executions allowed, including the first (``1`` = no retry).
    first_interval_seconds:
        Delay before the second attempt.
    backoff_coefficient:
        Multiplier applied to the delay after each further failure.
    max_interval_seconds:
        Upper bound for a single delay, or ``None`` for unbounded.

    """

    max_attempts: int = 1
    first_interval_seconds: float = 0.0
    backoff_coefficient: float = 2.0
    max_interval_seconds: float | None = None

    def delay(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number *attempt* (1-based)."""
        delay = self.first_interval_seconds * (self.backoff_coefficient ** (attempt - 1))
        if self.max_interval_seconds is not None:
            delay = min(delay, self.max_interval_seconds)
        return delay

    def allows_retry(self, attempt: int) -> bool:
        return attempt < self.max_attempts


NO_RETRY = RetryPolicy()
