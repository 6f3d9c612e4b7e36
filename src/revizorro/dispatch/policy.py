"""Consecutive-failure retry policy for the sequential loop."""

from __future__ import annotations

from dataclasses import dataclass

from revizorro.dispatch.models import PolicyDecision

DEFAULT_FAILURE_CEILING = 3


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Retry an item until ``ceiling`` consecutive failures, then dead-letter it."""

    ceiling: int = DEFAULT_FAILURE_CEILING

    def __post_init__(self) -> None:
        if self.ceiling < 1:
            raise ValueError("failure ceiling must be >= 1")

    def decide(self, failure_count: int) -> PolicyDecision:
        """Decide what follows a failure, given failures recorded before it."""

        if failure_count + 1 >= self.ceiling:
            return PolicyDecision.DEAD_LETTER
        return PolicyDecision.RETRY

    def remaining(self, failure_count: int) -> int:
        """Attempts left for an item that already failed ``failure_count`` times."""

        return max(0, self.ceiling - failure_count)
