"""
Recurrence engine

Computes next due dates from an interval and classifies due dates relative
to "today". Everything here is pure: no I/O, no clock reads unless the
caller omits ``today``.
"""

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Iterable, Optional, Union

from ...shared.calendar_math import DateLike, add_days, add_months, add_weeks, to_date, utc_today
from .errors import InvalidInterval, InvalidIntervalUnit


class IntervalUnit(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class InstanceStatus(str, Enum):
    OVERDUE = "overdue"
    DUE_TODAY = "due_today"
    UPCOMING = "upcoming"
    COMPLETED = "completed"


# Upper bounds mirror the schedule form limits
MAX_INTERVAL_VALUE = {
    IntervalUnit.DAY: 365,
    IntervalUnit.WEEK: 52,
    IntervalUnit.MONTH: 24,
}

UPCOMING_WINDOW_DAYS = 7


def parse_unit(unit: Union[IntervalUnit, str]) -> IntervalUnit:
    """Resolve a unit name, never defaulting silently"""
    if isinstance(unit, IntervalUnit):
        return unit
    try:
        return IntervalUnit(str(unit).lower())
    except ValueError:
        raise InvalidIntervalUnit(unit) from None


@dataclass(frozen=True)
class Interval:
    unit: IntervalUnit
    value: int

    @classmethod
    def of(cls, unit: Union[IntervalUnit, str], value: int) -> "Interval":
        """Build a validated interval"""
        resolved = parse_unit(unit)
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidInterval(f"Interval value must be an integer, got {value!r}")
        if value < 1:
            raise InvalidInterval("Interval value must be at least 1")
        limit = MAX_INTERVAL_VALUE[resolved]
        if value > limit:
            raise InvalidInterval(f"Interval value must be at most {limit} {resolved.value}s")
        return cls(resolved, value)

    def approx_days(self) -> int:
        """Rough length in days, used only for pause-length heuristics"""
        if self.unit == IntervalUnit.DAY:
            return self.value
        if self.unit == IntervalUnit.WEEK:
            return self.value * 7
        return self.value * 30


def compute_next_due_date(last_performed: DateLike, interval: Interval) -> date:
    """
    Next due date after ``last_performed``.

    Raises:
        InvalidIntervalUnit: For any unit other than day/week/month
        InvalidInterval: If the interval value is below 1
    """
    unit = parse_unit(interval.unit)
    if interval.value < 1:
        raise InvalidInterval("Interval value must be at least 1")

    if unit == IntervalUnit.DAY:
        return add_days(last_performed, interval.value)
    if unit == IntervalUnit.WEEK:
        return add_weeks(last_performed, interval.value)
    if unit == IntervalUnit.MONTH:
        return add_months(last_performed, interval.value)
    raise InvalidIntervalUnit(interval.unit)


def classify(due_date: DateLike, today: DateLike) -> InstanceStatus:
    """Overdue / DueToday / Upcoming, compared by calendar day"""
    due = to_date(due_date)
    current = to_date(today)
    if due < current:
        return InstanceStatus.OVERDUE
    if due == current:
        return InstanceStatus.DUE_TODAY
    return InstanceStatus.UPCOMING


@dataclass(frozen=True)
class StatusInfo:
    """Display classification of a due date"""

    variant: str  # overdue, today, upcoming, future
    days: int  # days overdue (overdue) or days until due (otherwise)
    priority: int  # lower sorts first


def status_label(due_date: DateLike, today: Optional[DateLike] = None) -> StatusInfo:
    due = to_date(due_date)
    current = to_date(today) if today is not None else utc_today()
    delta = (due - current).days

    if delta < 0:
        return StatusInfo("overdue", -delta, 0)
    if delta == 0:
        return StatusInfo("today", 0, 1)
    if delta == 1:
        return StatusInfo("upcoming", 1, 2)
    if delta <= UPCOMING_WINDOW_DAYS:
        return StatusInfo("upcoming", delta, 3)
    return StatusInfo("future", delta, 4)


def sort_by_priority(due_dates: Iterable[DateLike], today: Optional[DateLike] = None) -> list[date]:
    """Order due dates overdue first, then today, then by proximity"""
    days = [to_date(d) for d in due_dates]
    return sorted(days, key=lambda d: (status_label(d, today).priority, d))
