"""
Injectable time source.

Timestamps are naive UTC so they compare cleanly with values read back
from SQLite.
"""
from datetime import datetime, timedelta, timezone


class Clock:
    """Abstract clock interface"""

    def now(self) -> datetime:
        raise NotImplementedError


class SystemClock(Clock):
    """Wall-clock time"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc).replace(tzinfo=None)


class FixedClock(Clock):
    """Clock pinned to a given instant; advance() moves it forward"""

    def __init__(self, current: datetime):
        self.current = current

    def now(self) -> datetime:
        return self.current

    def advance(self, **delta) -> datetime:
        self.current = self.current + timedelta(**delta)
        return self.current


system_clock = SystemClock()


def utcnow() -> datetime:
    """Column default for timestamps not set by a service"""
    return system_clock.now()
