"""
SLA Value Objects
==================

Immutable value objects for the SLA domain, and the business-hours
calculator that operates on them.

All calendar arithmetic happens in a single normalized frame (UTC).
Weekends (Saturday, Sunday) are never working days.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import FrozenSet, List, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_serializer, model_validator

from src.shared.infrastructure.clock import ensure_utc

MS_PER_MINUTE = 60 * 1000
MS_PER_HOUR = 60 * MS_PER_MINUTE

_ONE_DAY = timedelta(days=1)
_ONE_MS = timedelta(milliseconds=1)


class WorkingHours(BaseModel):
    """Half-open hour interval [start, end) within a day."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    start: int = Field(default=9, ge=0, le=24, description="First working hour")
    end: int = Field(default=17, ge=0, le=24, description="Hour working time stops")

    @model_validator(mode="after")
    def validate_bounds(self) -> "WorkingHours":
        if self.start >= self.end:
            raise ValueError(
                f"working hours start ({self.start}) must be before end ({self.end})"
            )
        return self


class BusinessCalendar(BaseModel):
    """
    Working-hour window plus holiday set.

    Value object - immutable, hashable, and safe to share between configs.
    There is no timezone field: every calendar is evaluated in UTC, and unknown
    keys are rejected rather than silently ignored.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    working_hours: WorkingHours = Field(default_factory=WorkingHours)
    holidays: FrozenSet[date] = Field(
        default_factory=frozenset,
        description="Dates fully excluded regardless of weekday"
    )

    @field_serializer("holidays")
    def serialize_holidays(self, holidays: FrozenSet[date]) -> List[date]:
        return sorted(holidays)

    def is_working_day(self, day: date) -> bool:
        """Not a weekend and not a holiday."""
        if day.weekday() >= 5:
            return False
        return day not in self.holidays

    def working_window(self, day: date) -> Tuple[datetime, datetime]:
        """Working-hour window of `day` as two UTC timestamps."""
        midnight = datetime.combine(day, time.min, tzinfo=timezone.utc)
        return (
            midnight + timedelta(hours=self.working_hours.start),
            midnight + timedelta(hours=self.working_hours.end),
        )


DEFAULT_CALENDAR = BusinessCalendar()


def _next_working_start(day: date, calendar: BusinessCalendar) -> datetime:
    day += _ONE_DAY
    while not calendar.is_working_day(day):
        day += _ONE_DAY
    return calendar.working_window(day)[0]


def _snap_forward(moment: datetime, calendar: BusinessCalendar) -> datetime:
    """Move a moment outside working time to the next working-hour start."""
    day = moment.date()
    if calendar.is_working_day(day):
        day_start, day_end = calendar.working_window(day)
        if moment < day_start:
            return day_start
        if moment < day_end:
            return moment
    # At or past the day's end counts as exhausted
    return _next_working_start(day, calendar)


class BusinessHoursCalculator:
    """
    Pure functions converting between wall-clock time and business time.

    Stateless utility class - no I/O, safe to call from anywhere.
    Neither function raises for valid inputs; both saturate instead.
    """

    @staticmethod
    def calculate_business_ms(
        start: datetime,
        end: datetime,
        calendar: BusinessCalendar = DEFAULT_CALENDAR
    ) -> int:
        """
        Working-hour milliseconds between two timestamps.

        Walks day by day from start's date to end's date, clipping each
        working day's window to [start, end]. Weekends and holidays
        contribute nothing.

        Returns:
            Elapsed business milliseconds, 0 when end <= start
        """
        start = ensure_utc(start)
        end = ensure_utc(end)
        if end <= start:
            return 0

        total = timedelta(0)
        day = start.date()
        last_day = end.date()

        while day <= last_day:
            if calendar.is_working_day(day):
                day_start, day_end = calendar.working_window(day)
                effective_start = max(start, day_start)
                effective_end = min(end, day_end)
                if effective_start < effective_end:
                    total += effective_end - effective_start
            day += _ONE_DAY

        return total // _ONE_MS

    @staticmethod
    def add_business_ms(
        start: datetime,
        ms: int,
        calendar: BusinessCalendar = DEFAULT_CALENDAR
    ) -> datetime:
        """
        Timestamp reached after consuming `ms` of business time from `start`.

        A start outside working time is first moved forward to the next
        working-hour start; time outside business hours never counts.

        Returns:
            The resulting UTC timestamp, `start` itself when ms <= 0
        """
        start = ensure_utc(start)
        if ms <= 0:
            return start

        remaining = timedelta(milliseconds=ms)
        current = _snap_forward(start, calendar)

        while True:
            _, day_end = calendar.working_window(current.date())
            available = day_end - current
            if remaining <= available:
                return current + remaining
            remaining -= available
            current = _next_working_start(current.date(), calendar)

    @staticmethod
    def minutes_to_ms(minutes: int) -> int:
        return minutes * MS_PER_MINUTE
