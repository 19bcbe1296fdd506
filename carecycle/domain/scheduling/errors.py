"""Scheduling domain errors - mapped to HTTP responses in main.py"""

from typing import Optional


class SchedulingError(Exception):
    """Base class for all scheduling engine errors"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidIntervalUnit(SchedulingError):
    """Interval unit is not one of day/week/month"""

    def __init__(self, unit):
        super().__init__(f"Invalid interval unit: {unit!r}")
        self.unit = unit


class InvalidInterval(SchedulingError):
    """Interval value is out of range"""


class InvalidDateRange(SchedulingError):
    """Start/end dates are inverted or otherwise unusable"""


class DuplicateExecution(SchedulingError):
    """An execution already exists for (schedule_id, planned_date)"""

    def __init__(self, schedule_id: int, planned_date):
        super().__init__(f"Schedule {schedule_id} was already completed for {planned_date}")
        self.schedule_id = schedule_id
        self.planned_date = planned_date


class AccessDenied(SchedulingError):
    """Visibility policy rejected the actor for this record"""

    def __init__(self, message: str = "Access denied", reason: Optional[str] = None):
        super().__init__(message)
        self.reason = reason


class RecordNotFound(SchedulingError):
    """Target id does not exist at all"""

    def __init__(self, kind: str, record_id):
        super().__init__(f"{kind} {record_id} not found")
        self.kind = kind
        self.record_id = record_id


class InvalidStateTransition(SchedulingError):
    def __init__(self, current: str, target: str, reason: Optional[str] = None):
        message = reason or f"Transition from '{current}' to '{target}' is not allowed"
        super().__init__(message)
        self.current = current
        self.target = target
