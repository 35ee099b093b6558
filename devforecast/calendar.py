"""
Working Calendar

Answers which instants count as productive time: a per-weekday window plus
a set of holidays that are never working days.
"""

import logging
import re
from datetime import date, datetime, time, timedelta
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


logger = logging.getLogger(__name__)

# Upper bound on how many days advance_to_next_working will scan.
MAX_SCAN_DAYS = 14

WEEKDAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

_TIME_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})(?::(\d{2}))?\s*([AaPp][Mm])?\s*$")


def parse_time(value: Union[str, time]) -> time:
    """
    Parse a time of day.

    Accepts ``datetime.time``, 12-hour strings ("09:00 AM", "5:30 pm") and
    24-hour strings ("17:00", "08:15:00").
    """
    if isinstance(value, time):
        return value
    if not isinstance(value, str):
        raise ValueError(f"Unsupported time value: {value!r}")

    match = _TIME_RE.match(value)
    if not match:
        raise ValueError(f"Invalid time format: {value!r}")

    hour, minute = int(match.group(1)), int(match.group(2))
    second = int(match.group(3) or 0)
    meridiem = (match.group(4) or "").upper()

    if meridiem:
        if not 1 <= hour <= 12:
            raise ValueError(f"Invalid 12-hour time: {value!r}")
        if meridiem == "PM" and hour != 12:
            hour += 12
        elif meridiem == "AM" and hour == 12:
            hour = 0

    if hour > 23 or minute > 59 or second > 59:
        raise ValueError(f"Time out of range: {value!r}")
    return time(hour, minute, second)


def _hours_between(start: time, end: time) -> float:
    start_s = start.hour * 3600 + start.minute * 60 + start.second
    end_s = end.hour * 3600 + end.minute * 60 + end.second
    return (end_s - start_s) / 3600


class DaySchedule(BaseModel):
    """Working window for one weekday."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    start_time: time = time(9, 0)
    end_time: time = time(17, 0)
    hours_per_day: Optional[float] = Field(default=None, ge=0, le=24)

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def _parse_time(cls, value):
        return parse_time(value)

    @field_validator("end_time")
    @classmethod
    def _end_after_start(cls, value: time, info: ValidationInfo) -> time:
        start = info.data.get("start_time")
        if info.data.get("enabled", True) and start is not None and value <= start:
            raise ValueError("end_time must be after start_time")
        return value

    @field_validator("hours_per_day")
    @classmethod
    def _hours_match_window(cls, value: Optional[float], info: ValidationInfo) -> Optional[float]:
        start, end = info.data.get("start_time"), info.data.get("end_time")
        if value is None or not info.data.get("enabled", True) or start is None or end is None:
            return value
        window = _hours_between(start, end)
        if abs(window - value) > 0.01:
            raise ValueError(
                f"hours_per_day ({value}) does not match the {window:.2f}h start/end window"
            )
        return value

    @property
    def hours(self) -> float:
        """Length of the working window in hours (0 when disabled)."""
        if not self.enabled:
            return 0.0
        return _hours_between(self.start_time, self.end_time)


def _default_days() -> tuple[DaySchedule, ...]:
    weekday = DaySchedule()
    weekend = DaySchedule(enabled=False)
    return (weekday,) * 5 + (weekend,) * 2


class WorkingCalendar(BaseModel):
    """
    Global working calendar shared by every lane.

    ``days`` is indexed Monday=0 .. Sunday=6, matching ``date.weekday()``.

    Usage:
        calendar = WorkingCalendar(holidays={date(2025, 12, 25)})
        calendar.is_working(datetime(2025, 12, 24, 10, 0))
    """

    model_config = ConfigDict(frozen=True)

    days: tuple[DaySchedule, ...] = Field(default_factory=_default_days)
    holidays: frozenset[date] = Field(default_factory=frozenset)

    @field_validator("days")
    @classmethod
    def _seven_days(cls, value: tuple[DaySchedule, ...]) -> tuple[DaySchedule, ...]:
        if len(value) != 7:
            raise ValueError(f"days must have exactly 7 entries (Monday..Sunday), got {len(value)}")
        for name, day in zip(WEEKDAY_NAMES, value):
            if day.hours > 16:
                logger.warning("%s working window of %.1f hours is unusually long", name, day.hours)
        return value

    def day_for(self, day: date) -> DaySchedule:
        return self.days[day.weekday()]

    def is_holiday(self, day: date) -> bool:
        return day in self.holidays

    def is_working_day(self, day: date) -> bool:
        return self.day_for(day).enabled and not self.is_holiday(day)

    def window(self, day: date, tzinfo=None) -> Optional[tuple[datetime, datetime]]:
        """Start and end instants of the working window on ``day``, or None."""
        if not self.is_working_day(day):
            return None
        schedule = self.day_for(day)
        return (
            datetime.combine(day, schedule.start_time, tzinfo=tzinfo),
            datetime.combine(day, schedule.end_time, tzinfo=tzinfo),
        )

    def is_working(self, instant: datetime) -> bool:
        """True when ``instant`` falls inside a working window (start inclusive, end exclusive)."""
        bounds = self.window(instant.date(), instant.tzinfo)
        if bounds is None:
            return False
        return bounds[0] <= instant < bounds[1]

    def advance_to_next_working(self, instant: datetime) -> datetime:
        """
        Move ``instant`` forward to the next working instant.

        Already-working instants are returned as is. The scan is capped at
        MAX_SCAN_DAYS days; when the cap is hit the input is returned
        unchanged and callers must treat that as no progress.
        """
        cursor = instant
        for _ in range(MAX_SCAN_DAYS):
            bounds = self.window(cursor.date(), instant.tzinfo)
            if bounds is not None:
                start, end = bounds
                if cursor < start:
                    return start
                if cursor < end:
                    return cursor
            cursor = datetime.combine(cursor.date() + timedelta(days=1), time.min, tzinfo=instant.tzinfo)
        return instant

    def hours_available(self, day_start: Union[date, datetime]) -> float:
        """
        Working hours left on a day.

        A ``date`` yields the full window; a ``datetime`` yields the hours
        between that instant and the end of its day's window.
        """
        if isinstance(day_start, datetime):
            bounds = self.window(day_start.date(), day_start.tzinfo)
            if bounds is None:
                return 0.0
            start = max(bounds[0], day_start)
            return max(0.0, (bounds[1] - start).total_seconds() / 3600)
        if not self.is_working_day(day_start):
            return 0.0
        return self.day_for(day_start).hours

    def working_hours_between(self, start: datetime, end: datetime) -> float:
        """Working clock hours inside ``[start, end)``."""
        return sum(self.working_hours_by_day(start, end).values())

    def working_hours_by_day(self, start: datetime, end: datetime) -> dict[date, float]:
        """Working clock hours inside ``[start, end)`` keyed by calendar day."""
        hours: dict[date, float] = {}
        day = start.date()
        while day <= end.date():
            bounds = self.window(day, start.tzinfo)
            if bounds is not None:
                lo, hi = max(bounds[0], start), min(bounds[1], end)
                if hi > lo:
                    hours[day] = (hi - lo).total_seconds() / 3600
            day += timedelta(days=1)
        return hours

    @property
    def weekly_hours(self) -> float:
        """Total working hours in a week without holidays."""
        return sum(day.hours for day in self.days)

    @property
    def average_hours_per_day(self) -> float:
        """Average window length over enabled days (0 when none are enabled)."""
        enabled = [day.hours for day in self.days if day.enabled]
        if not enabled:
            return 0.0
        return sum(enabled) / len(enabled)

    @property
    def is_degenerate(self) -> bool:
        """True when no weekday offers any working time."""
        return self.weekly_hours <= 0
