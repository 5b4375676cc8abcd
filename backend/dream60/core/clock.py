"""
Auction wall clock.

Auction dates, time slots and round windows are all expressed in IST
wall-clock time. Stored timestamps are naive datetimes carrying IST
components, so every "now" used by the scheduler must come from here.
"""

from datetime import date, datetime, timedelta, timezone

from dream60.core.config import settings


class Clock:
    """Naive IST wall clock with an optional configured skew."""

    def __init__(self, utc_offset_minutes: int = 330, skew_seconds: int = 0):
        self.utc_offset = timedelta(minutes=utc_offset_minutes)
        self.skew = timedelta(seconds=skew_seconds)

    def now(self) -> datetime:
        utc_now = datetime.now(timezone.utc) + self.skew
        return (utc_now + self.utc_offset).replace(tzinfo=None)

    def today(self) -> date:
        return self.now().date()

    def seconds_until_midnight(self) -> float:
        now = self.now()
        next_midnight = datetime.combine(now.date() + timedelta(days=1), datetime.min.time())
        return (next_midnight - now).total_seconds()


clock = Clock(
    utc_offset_minutes=settings.TIMEZONE_OFFSET_MINUTES,
    skew_seconds=settings.CLOCK_OFFSET_SECONDS,
)


def get_clock() -> Clock:
    """FastAPI Dependency: Provide the auction clock"""
    return clock
