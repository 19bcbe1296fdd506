"""
Schedule projector - calendar instances for a date window

Read-only. Combines live due dates of active schedules with completed
executions, both fetched under the same visibility predicate.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from ...models import Schedule, ScheduleExecution
from ...shared.calendar_math import DateLike, to_date, utc_today
from .errors import InvalidDateRange, SchedulingError
from .recurrence import InstanceStatus, Interval, classify, compute_next_due_date
from .repository import ScheduleRepository
from .visibility import Actor, VisibilityPolicy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProjectionFilters:
    """Caller-supplied narrowing; never widens what the actor may see"""

    department_ids: Optional[tuple] = None
    doctor_ids: Optional[tuple] = None


@dataclass(frozen=True)
class ScheduleInstance:
    schedule_id: int
    patient_id: int
    patient_name: str
    item_id: int
    item_name: Optional[str]
    due_date: date
    status: InstanceStatus
    display_type: str  # scheduled, completed
    completion_ref: Optional[int] = None
    planned_date: Optional[date] = None
    executed_by: Optional[int] = None
    notes: Optional[str] = None
    interval_unit: Optional[str] = None
    interval_value: Optional[int] = None


def due_date_for(
    last_performed: Optional[DateLike],
    start_date: DateLike,
    interval: Interval,
    scheduled: Optional[DateLike] = None,
) -> date:
    """
    Due date of a schedule's next occurrence.

    The stored due date wins when present (resume/skip may have moved it);
    otherwise it follows from the last performed date, or the start date for
    a schedule never performed.
    """
    if scheduled is not None:
        return to_date(scheduled)
    if last_performed is None:
        return to_date(start_date)
    return compute_next_due_date(last_performed, interval)


def _interval_of(schedule: Schedule) -> Interval:
    return Interval.of(schedule.interval_unit, schedule.interval_value)


class ScheduleProjector:
    """Builds the calendar view of schedules an actor may see"""

    def __init__(self, db: Session, policy: Optional[VisibilityPolicy] = None):
        self.db = db
        self.policy = policy or VisibilityPolicy()
        self.repo = ScheduleRepository()

    def project(
        self,
        actor: Actor,
        start: DateLike,
        end: DateLike,
        filters: Optional[ProjectionFilters] = None,
        today: Optional[DateLike] = None,
    ) -> list[ScheduleInstance]:
        window_start = to_date(start)
        window_end = to_date(end)
        if window_start > window_end:
            raise InvalidDateRange(f"Range start {window_start} is after end {window_end}")

        current = to_date(today) if today is not None else utc_today()
        filters = filters or ProjectionFilters()

        predicate = self.policy.predicate(
            actor, department_ids=filters.department_ids, doctor_ids=filters.doctor_ids
        )
        if predicate.deny_all:
            logger.debug(f"Actor {actor.id} ({actor.role.value}) sees no schedules: {predicate.reason}")
            return []

        schedules = self.repo.find_schedules(self.db, predicate, window_start, window_end)
        executions = self.repo.find_executions(self.db, predicate, window_start, window_end)
        recorded = self.repo.get_recorded_occurrences(
            self.db, [s.id for s in schedules], window_start, window_end
        )

        instances = []
        for schedule in schedules:
            instance = self._live_instance(schedule, window_start, window_end, current, recorded)
            if instance is not None:
                instances.append(instance)

        instances.extend(self._completed_instance(execution) for execution in executions)

        # sorted() is stable; ties on (date, patient) keep schedule order
        instances = sorted(instances, key=lambda i: (i.due_date, i.patient_name or ""))
        logger.debug(
            f"Projected {len(instances)} instances for actor {actor.id} "
            f"between {window_start} and {window_end}"
        )
        return instances

    def _live_instance(
        self,
        schedule: Schedule,
        window_start: date,
        window_end: date,
        today: date,
        recorded: set,
    ) -> Optional[ScheduleInstance]:
        if schedule.status != "active":
            return None

        try:
            interval = _interval_of(schedule)
            due = due_date_for(
                schedule.last_executed_date, schedule.start_date, interval, schedule.next_due_date
            )
        except SchedulingError as e:
            logger.error(f"❌ Cannot compute due date for schedule {schedule.id}: {e.message}")
            return None

        if due < window_start or due > window_end:
            return None
        if schedule.end_date is not None and due > schedule.end_date:
            return None
        # An execution for this date takes priority over the live projection
        if (schedule.id, due) in recorded:
            return None

        patient = schedule.patient
        return ScheduleInstance(
            schedule_id=schedule.id,
            patient_id=schedule.patient_id,
            patient_name=patient.name if patient else "",
            item_id=schedule.item_id,
            item_name=schedule.item.name if schedule.item else None,
            due_date=due,
            status=classify(due, today),
            display_type="scheduled",
            notes=schedule.notes,
            interval_unit=interval.unit.value,
            interval_value=interval.value,
        )

    @staticmethod
    def _completed_instance(execution: ScheduleExecution) -> ScheduleInstance:
        schedule = execution.schedule
        patient = schedule.patient
        return ScheduleInstance(
            schedule_id=schedule.id,
            patient_id=schedule.patient_id,
            patient_name=patient.name if patient else "",
            item_id=schedule.item_id,
            item_name=schedule.item.name if schedule.item else None,
            due_date=execution.executed_date,
            status=InstanceStatus.COMPLETED,
            display_type="completed",
            completion_ref=execution.id,
            planned_date=execution.planned_date,
            executed_by=execution.executed_by,
            notes=execution.notes,
            interval_unit=schedule.interval_unit,
            interval_value=schedule.interval_value,
        )


def summarize(instances: Iterable[ScheduleInstance]) -> dict:
    """Badge counts per instance status"""
    counts = {status.value: 0 for status in InstanceStatus}
    total = 0
    for instance in instances:
        counts[InstanceStatus(instance.status).value] += 1
        total += 1
    counts["total"] = total
    return counts
