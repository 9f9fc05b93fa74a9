"""Per-invocation time budget.

Every trigger (an ingested payload, a reconciliation pass, a retry sweep)
gets one Deadline. Long loops call check() before each remote call, so an
expired budget stops the unit of work between calls. Effects that already
happened (a folder created, an entry deleted) are not rolled back.
"""

import time
from typing import Callable, Optional

from resultsink.errors import DeadlineExceeded


class Deadline:
    """A point in time after which no new remote call is started."""

    def __init__(self, seconds: Optional[float],
                 clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self.seconds = seconds
        self._expires_at = None if seconds is None else clock() + seconds

    @classmethod
    def unbounded(cls) -> "Deadline":
        return cls(None)

    def remaining(self) -> float:
        """Seconds left, or infinity for an unbounded deadline."""
        if self._expires_at is None:
            return float("inf")
        return max(0.0, self._expires_at - self._clock())

    def expired(self) -> bool:
        return self.remaining() <= 0.0

    def check(self, what: str = "operation") -> None:
        """Raise DeadlineExceeded if the budget is used up."""
        if self.expired():
            raise DeadlineExceeded(f"deadline of {self.seconds}s exceeded before {what}")
