# src/pipewright/engine/clock.py
"""Clock abstraction for the scheduler's timeout and idle handling.

Production code uses SystemClock (the default). Tests inject MockClock to
control time advancement, e.g. to trip a scheduler timeout without waiting.
"""

from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    """Abstract clock for timeout-based operations.

    Implementations:
    - SystemClock: Uses time.monotonic() and time.sleep() (production)
    - MockClock: Returns controllable times, sleeping advances it (testing)
    """

    def monotonic(self) -> float:
        """Return monotonic time in seconds."""
        ...

    def sleep(self, seconds: float) -> None:
        """Wait for ``seconds`` between idle scheduler ticks."""
        ...


class SystemClock:
    """Production clock using time.monotonic()."""

    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)


class MockClock:
    """Controllable clock for deterministic testing.

    ``sleep()`` advances the mock time instead of blocking, so a scheduler
    loop waiting on a hung child reaches its timeout immediately in wall
    time.

    Example:
        clock = MockClock(start=0.0)
        scheduler = Scheduler(SchedulerSettings(timeout_seconds=1.0), clock=clock)
    """

    def __init__(self, start: float = 0.0) -> None:
        self._current = start

    def monotonic(self) -> float:
        return self._current

    def sleep(self, seconds: float) -> None:
        self.advance(seconds)

    def advance(self, seconds: float) -> None:
        """Advance the clock by the given number of seconds.

        Raises:
            ValueError: If seconds is negative (time cannot go backwards)
        """
        if seconds < 0:
            raise ValueError(f"Cannot advance clock by negative amount: {seconds}")
        self._current += seconds

    def set(self, value: float) -> None:
        """Set the clock to a specific time."""
        self._current = value


DEFAULT_CLOCK: Clock = SystemClock()
