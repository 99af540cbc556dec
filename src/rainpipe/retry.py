"""Retry policy for per-date downloads."""

from __future__ import annotations

from dataclasses import dataclass, field
import time
from typing import Callable


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded attempts with a growing pause between them.

    The pause after attempt ``n`` (1-based) is ``n * backoff_unit`` seconds,
    so delays never decrease. ``sleep`` is injectable so tests can run
    without waiting.
    """

    max_attempts: int = 3
    backoff_unit: float = 5.0
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False, repr=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.backoff_unit < 0:
            raise ValueError("backoff_unit cannot be negative")

    def delay(self, attempt: int) -> float:
        """Seconds to wait after the given failed attempt."""

        return max(0, attempt) * self.backoff_unit

    def pause(self, attempt: int) -> None:
        """Sleep after a failed attempt unless it was the last one."""

        if attempt >= self.max_attempts:
            return
        seconds = self.delay(attempt)
        if seconds > 0:
            self.sleep(seconds)
