"""Injectable clock for TTL and deadline math.

Every component that computes an expiry or a legal deadline receives a
``Clock`` instead of calling ``datetime.now`` directly, so tests can move
time forward without sleeping or patching globals.

Usage:
    from src.security.clock import FixedClock

    clock = FixedClock(datetime(2025, 1, 1, tzinfo=UTC))
    clock.advance(hours=72)
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class FixedClock:
    """Manually driven clock for tests and replayed jobs."""

    def __init__(self, start: datetime) -> None:
        if start.tzinfo is None:
            msg = "FixedClock requires a timezone-aware datetime"
            raise ValueError(msg)
        self._now = start

    def now(self) -> datetime:
        return self._now

    def set(self, value: datetime) -> None:
        self._now = value

    def advance(self, **delta: float) -> datetime:
        """Move forward by ``timedelta(**delta)`` and return the new time."""
        self._now = self._now + timedelta(**delta)
        return self._now


system_clock = SystemClock()
