"""Caller-supplied overall deadline for one sync workflow."""

import time
from typing import Callable


class Deadline:
    """
    Wall-clock budget measured on a monotonic clock.

    Checked before each HTTP call is issued and used to clip per-call
    timeouts. A deadline never interrupts a call already on the wire;
    it only bounds how long that call may take.
    """

    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic):
        if seconds < 0:
            raise ValueError("deadline seconds must be >= 0")
        self._clock = clock
        self._expires_at = clock() + seconds

    @classmethod
    def optional(cls, seconds: float | None) -> "Deadline | None":
        """Build a deadline, or None when no budget was given."""
        return None if seconds is None else cls(seconds)

    def remaining(self) -> float:
        return max(0.0, self._expires_at - self._clock())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0.0

    def clip(self, timeout_s: float) -> float:
        """Return the smaller of timeout_s and the remaining budget."""
        return min(timeout_s, self.remaining())
