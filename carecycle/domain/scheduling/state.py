"""Schedule status workflow and pause/resume date strategies"""

import logging
from datetime import date
from enum import Enum
from typing import Optional

from ...shared.calendar_math import DateLike, days_between, to_date, utc_today
from .errors import InvalidDateRange, InvalidStateTransition
from .recurrence import Interval, compute_next_due_date

logger = logging.getLogger(__name__)


class ScheduleStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ResumeStrategy(str, Enum):
    IMMEDIATE = "immediate"  # due today
    NEXT_CYCLE = "next_cycle"  # due one interval from today
    CUSTOM = "custom"  # caller-chosen date


ALLOWED_TRANSITIONS = {
    ScheduleStatus.ACTIVE: {ScheduleStatus.PAUSED, ScheduleStatus.COMPLETED, ScheduleStatus.CANCELLED},
    ScheduleStatus.PAUSED: {ScheduleStatus.ACTIVE, ScheduleStatus.CANCELLED},
    ScheduleStatus.COMPLETED: set(),
    ScheduleStatus.CANCELLED: set(),
}


def validate_transition(current, target) -> bool:
    """
    Check a status change against the workflow.

    Returns False for a same-state no-op, True for an allowed change.

    Raises:
        InvalidStateTransition: If the change is not allowed
    """
    try:
        source = ScheduleStatus(current)
        destination = ScheduleStatus(target)
    except ValueError:
        raise InvalidStateTransition(str(current), str(target), f"Unknown status: {current!r} -> {target!r}") from None

    if source == destination:
        return False

    if destination not in ALLOWED_TRANSITIONS[source]:
        if source in (ScheduleStatus.COMPLETED, ScheduleStatus.CANCELLED):
            reason = f"Schedule is {source.value} and can no longer change"
        elif source == ScheduleStatus.PAUSED and destination == ScheduleStatus.COMPLETED:
            reason = "A paused schedule must be resumed before it can complete"
        else:
            reason = None
        raise InvalidStateTransition(source.value, destination.value, reason)

    return True


def ensure_not_ended(end_date: Optional[date], target: str, today: Optional[DateLike] = None) -> None:
    """Pause/resume is meaningless once a schedule has run past its end date"""
    if end_date is None:
        return
    current = to_date(today) if today is not None else utc_today()
    if to_date(end_date) < current:
        raise InvalidStateTransition(
            "active", target, f"Schedule ended on {end_date} and cannot be {target}"
        )


def resume_due_date(
    strategy,
    interval: Interval,
    today: Optional[DateLike] = None,
    custom_date: Optional[DateLike] = None,
    end_date: Optional[DateLike] = None,
) -> date:
    """
    Next due date for a schedule coming back from pause.

    Raises:
        InvalidDateRange: If a custom date is missing, in the past or after end_date
    """
    current = to_date(today) if today is not None else utc_today()
    strategy = ResumeStrategy(strategy) if strategy else ResumeStrategy.NEXT_CYCLE

    if strategy == ResumeStrategy.IMMEDIATE:
        return current

    if strategy == ResumeStrategy.CUSTOM:
        if custom_date is None:
            raise InvalidDateRange("Custom resume strategy requires a date")
        proposed = to_date(custom_date)
        if proposed < current:
            raise InvalidDateRange("Next due date cannot be in the past")
        if end_date is not None and proposed > to_date(end_date):
            raise InvalidDateRange("Next due date is after the schedule end date")
        return proposed

    return compute_next_due_date(current, interval)


def suggest_resume_strategy(interval: Interval, paused_days: int) -> ResumeStrategy:
    """Short pause resumes immediately, long pause restarts the cycle"""
    cycle = interval.approx_days()
    if paused_days < cycle:
        return ResumeStrategy.IMMEDIATE
    if paused_days > cycle * 4:
        return ResumeStrategy.NEXT_CYCLE
    return ResumeStrategy.CUSTOM


def missed_occurrences(
    next_due: DateLike, interval: Interval, paused_on: DateLike, resumed_on: DateLike
) -> list[date]:
    """Due dates that fell in [paused_on, resumed_on) while the schedule was on hold"""
    current = to_date(next_due)
    start = to_date(paused_on)
    stop = to_date(resumed_on)
    if stop < start:
        raise InvalidDateRange(f"Resume date {stop} precedes pause date {start}")

    missed = []
    while current < stop:
        if current >= start:
            missed.append(current)
        current = compute_next_due_date(current, interval)
    return missed


def pause_length(paused_on: Optional[DateLike], today: Optional[DateLike] = None) -> int:
    if paused_on is None:
        return 0
    current = to_date(today) if today is not None else utc_today()
    return days_between(paused_on, current)


def catch_up_dates(
    interval: Interval,
    missed_count: int,
    today: Optional[DateLike] = None,
    end_date: Optional[DateLike] = None,
) -> list[date]:
    """
    Proposed dates to make up ``missed_count`` occurrences, starting today.

    Make-up visits run at half the usual interval (at least one unit) and
    never go past the schedule's end date.
    """
    if missed_count <= 0:
        return []

    catch_up = Interval(interval.unit, max(1, interval.value // 2))
    current = to_date(today) if today is not None else utc_today()
    limit = to_date(end_date) if end_date is not None else None

    dates = []
    for _ in range(missed_count):
        if limit is not None and current > limit:
            break
        dates.append(current)
        current = compute_next_due_date(current, catch_up)
    return dates


def remaining_occurrences(
    interval: Interval, end_date: Optional[DateLike], from_date: Optional[DateLike] = None
) -> Optional[int]:
    """Occurrences left from ``from_date`` through ``end_date``; None for open-ended schedules"""
    if end_date is None:
        return None

    current = to_date(from_date) if from_date is not None else utc_today()
    limit = to_date(end_date)
    count = 0
    while current <= limit:
        count += 1
        current = compute_next_due_date(current, interval)
    return count
