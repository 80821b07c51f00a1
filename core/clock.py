"""
Core Module - Clock.

============================================================
RESPONSIBILITY
============================================================
Provides a testable clock for the cycle driver.

- Wall-clock time used for run headers and sleep alignment
- Aligned-boundary arithmetic so cycle starts do not drift
- Mockable for testing

============================================================
DESIGN PRINCIPLES
============================================================
- UTC only
- Injected into components, never looked up globally

============================================================
"""

import math
import threading
import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional


# ============================================================
# ALIGNMENT
# ============================================================

def seconds_until_next_boundary(timestamp: float, interval_seconds: float) -> float:
    """
    Seconds from `timestamp` to the next multiple of `interval_seconds`.

    Boundaries are measured from the Unix epoch, so with a 300s interval
    cycles start at :00, :05, :10 ... regardless of how long the previous
    cycle took. A timestamp sitting exactly on a boundary waits a full
    interval.

    Args:
        timestamp: Current Unix timestamp
        interval_seconds: Cycle interval (> 0)

    Returns:
        Delay in seconds, in (0, interval_seconds]
    """
    if interval_seconds <= 0:
        raise ValueError("interval_seconds must be positive")

    next_boundary = math.ceil(timestamp / interval_seconds) * interval_seconds
    delay = next_boundary - timestamp
    if delay <= 0:
        delay = interval_seconds
    return delay


# ============================================================
# CLOCK PROTOCOL
# ============================================================

class ClockProtocol(ABC):
    """Abstract interface for the clock."""

    @abstractmethod
    def now(self) -> datetime:
        """Get current UTC datetime."""
        pass

    @abstractmethod
    def timestamp(self) -> float:
        """Get current Unix timestamp."""
        pass

    def time_until_next_boundary(self, interval_seconds: float) -> timedelta:
        """Get time until the next aligned interval boundary."""
        return timedelta(
            seconds=seconds_until_next_boundary(self.timestamp(), interval_seconds)
        )


# ============================================================
# SYSTEM CLOCK (PRODUCTION)
# ============================================================

class SystemClock(ClockProtocol):
    """Production clock using actual system time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def timestamp(self) -> float:
        return time.time()


# ============================================================
# MOCK CLOCK (TESTING)
# ============================================================

class MockClock(ClockProtocol):
    """
    Mock clock for testing.

    Allows time manipulation for deterministic tests.
    """

    def __init__(self, initial_time: Optional[datetime] = None):
        """
        Initialize mock clock.

        Args:
            initial_time: Starting time (defaults to current UTC)
        """
        initial_time = initial_time or datetime.now(timezone.utc)
        if initial_time.tzinfo is None:
            initial_time = initial_time.replace(tzinfo=timezone.utc)
        self._time = initial_time
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._time

    def timestamp(self) -> float:
        with self._lock:
            return self._time.timestamp()

    def set_time(self, new_time: datetime) -> None:
        """Set the current time."""
        with self._lock:
            if new_time.tzinfo is None:
                new_time = new_time.replace(tzinfo=timezone.utc)
            self._time = new_time

    def advance(self, seconds: float = 0, **kwargs) -> None:
        """
        Advance time by the specified amount.

        Args:
            seconds: Number of seconds to advance
            **kwargs: Passed to timedelta (hours, minutes, days, etc.)
        """
        with self._lock:
            self._time = self._time + timedelta(seconds=seconds, **kwargs)
