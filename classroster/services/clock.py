"""Injectable time source so temporal rules stay deterministic under test"""
from datetime import datetime, timedelta, timezone


class SystemClock:
    """Wall clock in UTC"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """Clock pinned to an instant; advance() moves it forward"""

    def __init__(self, instant: datetime):
        if instant.tzinfo is None:
            raise ValueError("FixedClock requires a timezone-aware datetime")
        self._instant = instant

    def now(self) -> datetime:
        return self._instant

    def set(self, instant: datetime) -> None:
        if instant.tzinfo is None:
            raise ValueError("FixedClock requires a timezone-aware datetime")
        self._instant = instant

    def advance(self, **delta) -> datetime:
        """Move the clock forward by timedelta keyword arguments (days=, hours=, ...)"""
        self._instant = self._instant + timedelta(**delta)
        return self._instant


# Global clock instance
_clock = None


def get_clock():
    """Get or create the process-wide clock (SystemClock unless replaced in tests)."""
    global _clock
    if _clock is None:
        _clock = SystemClock()
    return _clock
