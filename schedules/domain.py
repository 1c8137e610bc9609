"""
Value objects of the scheduling engine.

Everything here is plain Python: no database access. Stored JSON is parsed
into these objects at the model boundary (`WorkingHours.to_calendar`) and
the rest of the engine only ever sees validated values.

Times of day are handled as minutes since midnight; "HH:MM" strings only
appear on the way in and on the way out.
"""

import re
from dataclasses import dataclass, field, replace
from datetime import date, time
from enum import IntEnum

from .exceptions import ScheduleValidationError

TIME_PATTERN = re.compile(r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$")
DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

MINUTES_PER_DAY = 24 * 60

DEFAULT_SESSION_DURATION = 50
DEFAULT_BUFFER_BETWEEN_SESSIONS = 10
MIN_SESSION_DURATION, MAX_SESSION_DURATION = 15, 240
MIN_BUFFER, MAX_BUFFER = 0, 60
MAX_REASON_LENGTH = 200


def time_to_minutes(value):
    """'09:30' or time(9, 30) -> 570"""
    if isinstance(value, time):
        return value.hour * 60 + value.minute
    if not isinstance(value, str) or not TIME_PATTERN.match(value):
        raise ScheduleValidationError(f"Invalid time '{value}'. Use HH:MM (24h).")
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def minutes_to_time(minutes):
    """570 -> '09:30'"""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def parse_date(value):
    """Parse a strict YYYY-MM-DD string into a date."""
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not DATE_PATTERN.match(value):
        raise ScheduleValidationError(f"Invalid date '{value}'. Use YYYY-MM-DD.")
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ScheduleValidationError(f"Invalid date '{value}'. Use YYYY-MM-DD.")


class DayOfWeek(IntEnum):
    SUNDAY = 0
    MONDAY = 1
    TUESDAY = 2
    WEDNESDAY = 3
    THURSDAY = 4
    FRIDAY = 5
    SATURDAY = 6

    @classmethod
    def for_date(cls, target_date):
        # date.weekday() counts from Monday=0
        return cls((target_date.weekday() + 1) % 7)


@dataclass(frozen=True, order=True)
class TimeInterval:
    start: int
    end: int

    def __post_init__(self):
        if not (0 <= self.start < self.end <= MINUTES_PER_DAY):
            raise ScheduleValidationError(
                f"Interval {minutes_to_time(self.start)}-{minutes_to_time(self.end)} "
                "must start before it ends."
            )

    @classmethod
    def from_strings(cls, start_time, end_time):
        return cls(time_to_minutes(start_time), time_to_minutes(end_time))

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict):
            raise ScheduleValidationError("Each interval must be an object with start_time and end_time.")
        return cls.from_strings(data.get("start_time"), data.get("end_time"))

    @property
    def minutes(self):
        return self.end - self.start

    @property
    def start_time(self):
        return minutes_to_time(self.start)

    @property
    def end_time(self):
        return minutes_to_time(self.end)

    def to_dict(self):
        return {"start_time": self.start_time, "end_time": self.end_time}


def _normalize_intervals(intervals):
    ordered = tuple(sorted(intervals))
    for previous, current in zip(ordered, ordered[1:]):
        if current.start < previous.end:
            raise ScheduleValidationError(
                f"Intervals {previous.start_time}-{previous.end_time} and "
                f"{current.start_time}-{current.end_time} overlap."
            )
    return ordered


@dataclass(frozen=True)
class DaySchedule:
    """Opening state of one weekday. Intervals are sorted and disjoint."""

    is_open: bool
    intervals: tuple = ()

    def __post_init__(self):
        object.__setattr__(self, "intervals", _normalize_intervals(self.intervals))
        if self.is_open and not self.intervals:
            raise ScheduleValidationError("An open day needs at least one interval.")

    @classmethod
    def closed(cls):
        return cls(is_open=False)

    @classmethod
    def from_dict(cls, data):
        slots = data.get("slots") or []
        if not isinstance(slots, list):
            raise ScheduleValidationError(
                "Day slots must be a list.",
                errors={"weekly_schedule": "slots must be a list of intervals."},
            )
        intervals = [TimeInterval.from_dict(item) for item in slots]
        return cls(is_open=bool(data.get("is_open", False)), intervals=tuple(intervals))

    def to_dict(self, day):
        return {
            "day_of_week": int(day),
            "is_open": self.is_open,
            "slots": [interval.to_dict() for interval in self.intervals],
        }


class WeeklyPattern:
    """
    Total mapping from DayOfWeek to DaySchedule.

    Construction fails unless every day of the week is present, so any
    WeeklyPattern in hand can be indexed by any weekday.
    """

    __slots__ = ("_days",)

    def __init__(self, days):
        missing = [day.name.title() for day in DayOfWeek if day not in days]
        if missing:
            raise ScheduleValidationError(
                "Weekly schedule must define all 7 days.",
                errors={"weekly_schedule": f"Missing days: {', '.join(missing)}."},
            )
        self._days = tuple(days[day] for day in DayOfWeek)

    def __getitem__(self, day):
        return self._days[DayOfWeek(day)]

    def __iter__(self):
        return iter(zip(DayOfWeek, self._days))

    def __eq__(self, other):
        return isinstance(other, WeeklyPattern) and self._days == other._days

    def __hash__(self):
        return hash(self._days)

    def for_date(self, target_date):
        return self[DayOfWeek.for_date(target_date)]

    @classmethod
    def from_json(cls, entries):
        """Parse the stored list of seven day entries, rejecting anything else."""
        if not isinstance(entries, list) or len(entries) != 7:
            raise ScheduleValidationError(
                "Weekly schedule must contain exactly 7 days.",
                errors={"weekly_schedule": "Exactly 7 day entries are required."},
            )
        days = {}
        for entry in entries:
            if not isinstance(entry, dict):
                raise ScheduleValidationError(
                    "Each day entry must be an object.",
                    errors={"weekly_schedule": "Each day entry must be an object."},
                )
            try:
                day = DayOfWeek(int(entry["day_of_week"]))
            except (KeyError, TypeError, ValueError):
                raise ScheduleValidationError(
                    "Invalid day_of_week.",
                    errors={"weekly_schedule": "day_of_week must be an integer between 0 and 6."},
                )
            if day in days:
                raise ScheduleValidationError(
                    "Weekly schedule must contain each day exactly once.",
                    errors={"weekly_schedule": f"{day.name.title()} appears more than once."},
                )
            days[day] = DaySchedule.from_dict(entry)
        return cls(days)

    def to_json(self):
        return [schedule.to_dict(day) for day, schedule in self]


def default_weekly_pattern():
    """Monday to Friday 08:00-18:00, weekends closed."""
    open_day = DaySchedule(is_open=True, intervals=(TimeInterval(8 * 60, 18 * 60),))
    return WeeklyPattern({
        day: DaySchedule.closed() if day in (DayOfWeek.SATURDAY, DayOfWeek.SUNDAY) else open_day
        for day in DayOfWeek
    })


@dataclass(frozen=True)
class DayOverride:
    is_open: bool
    intervals: tuple = ()
    reason: str = ""

    def __post_init__(self):
        object.__setattr__(self, "intervals", _normalize_intervals(self.intervals))
        if self.is_open and not self.intervals:
            raise ScheduleValidationError("An open override needs at least one interval.")


@dataclass(frozen=True)
class EffectiveSchedule:
    """The final open/closed answer for one entity on one date."""

    is_open: bool
    intervals: tuple = ()
    reason: str | None = None
    is_override: bool = False
    default_session_duration: int = DEFAULT_SESSION_DURATION
    buffer_between_sessions: int = DEFAULT_BUFFER_BETWEEN_SESSIONS

    @property
    def open_minutes(self):
        if not self.is_open:
            return 0
        return sum(interval.minutes for interval in self.intervals)

    def force_closed(self, reason):
        return replace(self, is_open=False, intervals=(), reason=reason)

    def to_dict(self):
        return {
            "is_open": self.is_open,
            "intervals": [interval.to_dict() for interval in self.intervals],
            "reason": self.reason or None,
            "is_override": self.is_override,
            "default_session_duration": self.default_session_duration,
            "buffer_between_sessions": self.buffer_between_sessions,
        }


@dataclass(frozen=True)
class ScheduleCalendar:
    """A parsed working-hours record: weekly pattern plus dated exceptions."""

    weekly: WeeklyPattern
    overrides: dict = field(default_factory=dict)
    default_session_duration: int = DEFAULT_SESSION_DURATION
    buffer_between_sessions: int = DEFAULT_BUFFER_BETWEEN_SESSIONS

    @classmethod
    def default(cls):
        return cls(weekly=default_weekly_pattern())

    def for_date(self, target_date):
        override = self.overrides.get(target_date)
        if override is not None:
            return EffectiveSchedule(
                is_open=override.is_open,
                intervals=override.intervals if override.is_open else (),
                reason=override.reason or None,
                is_override=True,
                default_session_duration=self.default_session_duration,
                buffer_between_sessions=self.buffer_between_sessions,
            )
        day = self.weekly.for_date(target_date)
        return EffectiveSchedule(
            is_open=day.is_open,
            intervals=day.intervals if day.is_open else (),
            reason=None,
            is_override=False,
            default_session_duration=self.default_session_duration,
            buffer_between_sessions=self.buffer_between_sessions,
        )


@dataclass(frozen=True, order=True)
class Slot:
    start: int
    end: int

    @property
    def start_time(self):
        return minutes_to_time(self.start)

    @property
    def end_time(self):
        return minutes_to_time(self.end)

    def to_dict(self):
        return {"start_time": self.start_time, "end_time": self.end_time}
