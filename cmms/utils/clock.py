"""
Clock abstraction so time-driven passes can run against a fixed instant.

Every timestamp the core compares is aware UTC. Naive values coming from
the store or from callers are taken to be UTC.
"""

from datetime import datetime, timedelta, timezone


def as_utc(value: datetime) -> datetime:
    """Attach UTC to a naive datetime, or convert an aware one to UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Clock:
    """Supplies the current time."""

    def now(self) -> datetime:
        raise NotImplementedError


class SystemClock(Clock):
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """A clock that only moves when told to."""

    def __init__(self, current: datetime):
        self._current = as_utc(current)

    def now(self) -> datetime:
        return self._current

    def set(self, current: datetime) -> None:
        self._current = as_utc(current)

    def advance(self, **kwargs) -> datetime:
        """Move forward by a timedelta built from kwargs (days=1, hours=2, ...)"""
        self._current = self._current + timedelta(**kwargs)
        return self._current


_system_clock = SystemClock()


def get_clock() -> Clock:
    """Get the process-wide system clock"""
    return _system_clock
