"""Clock abstraction so time-based rules can be pinned in tests."""

from datetime import datetime, timedelta, timezone


class Clock:
    def now(self) -> datetime:
        """Current instant as a naive UTC datetime (matches stored columns)."""
        return datetime.now(timezone.utc).replace(tzinfo=None)


class FixedClock(Clock):
    def __init__(self, now: datetime):
        self._now = now

    def now(self) -> datetime:
        return self._now

    def advance(self, **delta) -> None:
        self._now = self._now + timedelta(**delta)


system_clock = Clock()
