"""
Clock abstraction.

Every time-dependent part of the cache (bucketed keys, entry expiry,
alert timestamps, report windows) reads time through a ``Clock`` so it
can be driven deterministically.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Source of the current time."""

    def now(self) -> datetime:
        """Current time as a timezone-aware UTC datetime."""
        ...


class SystemClock:
    """Wall clock."""

    __slots__ = ()

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def timestamp(self) -> float:
        return self.now().timestamp()


class ManualClock:
    """
    Clock that only moves when told to.

    Usage::

        clock = ManualClock(datetime(2025, 1, 1, 10, 30, tzinfo=timezone.utc))
        clock.advance(minutes=45)
    """

    __slots__ = ("_now",)

    def __init__(self, start: Optional[datetime] = None):
        start = start or datetime(2025, 1, 1, tzinfo=timezone.utc)
        if start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        self._now = start

    def now(self) -> datetime:
        return self._now

    def timestamp(self) -> float:
        return self._now.timestamp()

    def advance(self, seconds: float = 0, **delta) -> datetime:
        """Move forward by ``seconds`` plus any ``timedelta`` keywords."""
        self._now = self._now + timedelta(seconds=seconds, **delta)
        return self._now

    def set(self, when: datetime) -> None:
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        self._now = when


def now_ts(clock: Clock) -> float:
    """POSIX timestamp of ``clock.now()``."""
    return clock.now().timestamp()


__all__ = ["Clock", "SystemClock", "ManualClock", "now_ts"]
