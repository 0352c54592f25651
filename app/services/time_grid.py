"""Pure interval arithmetic for one practitioner-day.

Apart from `practice_now` everything here is side-effect free: intervals are half-open ``[start, end)``
naive datetimes in practice-local time.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterator, Optional
from zoneinfo import ZoneInfo

from app.core.config import settings


@dataclass(frozen=True, order=True)
class Interval:
    start: datetime
    end: datetime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Interval start {self.start} must be before end {self.end}")

    def overlaps(self, other: "Interval") -> bool:
        # Touching intervals ([9:00, 9:30) and [9:30, 10:00)) do not overlap
        return self.start < other.end and other.start < self.end


@dataclass(frozen=True)
class WorkingWindow:
    """Working hours for a day plus the step between candidate start times."""
    start: time
    end: time
    granularity_minutes: int = 30

    def __post_init__(self):
        if self.granularity_minutes <= 0:
            raise ValueError("granularity_minutes must be positive")

    def on(self, day: date) -> Optional[Interval]:
        """The window anchored on a calendar day, or None if it is empty."""
        start = datetime.combine(day, self.start)
        end = datetime.combine(day, self.end)
        if start >= end:
            return None
        return Interval(start, end)


def parse_hhmm(value: str) -> time:
    """'08:30' -> time(8, 30)."""
    hours, minutes = value.split(":")[:2]
    return time(int(hours), int(minutes))


def format_hhmm(moment) -> str:
    return moment.strftime("%H:%M")


def candidate_starts(window: Interval, granularity_minutes: int) -> Iterator[datetime]:
    """Every start time on the grid, from the window start up to (not including) its end."""
    step = timedelta(minutes=granularity_minutes)
    current = window.start
    while current < window.end:
        yield current
        current += step


def minute_marks(interval: Interval) -> Iterator[datetime]:
    """Each whole minute an interval occupies; used for storage-level slot claims."""
    current = interval.start.replace(second=0, microsecond=0)
    while current < interval.end:
        yield current
        current += timedelta(minutes=1)


def practice_now() -> datetime:
    """Current practice-local wall-clock time as a naive datetime."""
    return datetime.now(ZoneInfo(settings.TIMEZONE)).replace(tzinfo=None)
