"""Schedule service - Business logic for schedule write paths"""

import logging
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from ...events import InvalidationBus
from ...events import bus as default_bus
from ...models import Department, Item, Patient, Profile, Schedule, ScheduleExecution
from ...shared.calendar_math import DateLike, to_date, utc_today
from .errors import DuplicateExecution, InvalidDateRange, InvalidStateTransition, RecordNotFound
from .projector import due_date_for
from .recurrence import Interval, compute_next_due_date
from .repository import ScheduleRepository, patient_scope, schedule_scope
from .schemas import ScheduleCreate, ScheduleUpdate
from .state import (
    ScheduleStatus,
    catch_up_dates,
    ensure_not_ended,
    missed_occurrences,
    pause_length,
    remaining_occurrences,
    resume_due_date,
    suggest_resume_strategy,
    validate_transition,
)
from .visibility import Actor, RecordScope, VisibilityPolicy

logger = logging.getLogger(__name__)


class ScheduleService:
    """Service layer for schedule business logic"""

    def __init__(
        self,
        db: Session,
        policy: Optional[VisibilityPolicy] = None,
        bus: Optional[InvalidationBus] = None,
    ):
        self.db = db
        self.policy = policy or VisibilityPolicy()
        self.bus = bus or default_bus
        self.repo = ScheduleRepository()

    def _notify(self, schedule: Schedule, reason: str) -> None:
        """Publish after commit so listeners never see uncommitted state"""
        self.bus.invalidate(schedule.organization_id, reason, schedule.id)

    @staticmethod
    def _today(today: Optional[DateLike]) -> date:
        return to_date(today) if today is not None else utc_today()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_schedule_for(self, actor: Actor, schedule_id: int, action: str = "read") -> Schedule:
        """
        Load a schedule the actor may act on.

        Raises:
            RecordNotFound: If the id does not exist at all
            AccessDenied: If it exists but the actor may not see it
        """
        schedule = self.repo.get_schedule_by_id(self.db, schedule_id)
        if not schedule:
            raise RecordNotFound("Schedule", schedule_id)
        self.policy.check(actor, schedule_scope(schedule), action)
        return schedule

    def get_schedule_detail(self, actor: Actor, schedule_id: int, today: Optional[DateLike] = None) -> dict:
        """Schedule plus remaining occurrences, and resume hints when it is paused"""
        schedule = self.get_schedule_for(actor, schedule_id)
        detail = {
            "schedule": schedule,
            "suggested_resume_strategy": None,
            "missed_dates": [],
            "catch_up_dates": [],
            "remaining_occurrences": None,
        }
        if schedule.status not in (ScheduleStatus.ACTIVE.value, ScheduleStatus.PAUSED.value):
            return detail

        current = self._today(today)
        interval = Interval.of(schedule.interval_unit, schedule.interval_value)
        due = due_date_for(schedule.last_executed_date, schedule.start_date, interval, schedule.next_due_date)
        detail["remaining_occurrences"] = remaining_occurrences(interval, schedule.end_date, max(due, current))

        if schedule.status == ScheduleStatus.PAUSED.value and schedule.paused_at:
            paused_days = pause_length(schedule.paused_at, current)
            detail["suggested_resume_strategy"] = suggest_resume_strategy(interval, paused_days).value
            if schedule.next_due_date and schedule.paused_at <= current:
                detail["missed_dates"] = missed_occurrences(
                    schedule.next_due_date, interval, schedule.paused_at, current
                )
                detail["catch_up_dates"] = catch_up_dates(
                    interval, len(detail["missed_dates"]), current, schedule.end_date
                )
        return detail

    # ------------------------------------------------------------------
    # Create / edit
    # ------------------------------------------------------------------

    def _assignment_scope(
        self, patient: Patient, department_id: Optional[int], doctor_id: Optional[int]
    ) -> RecordScope:
        """Scope the schedule will have once saved, validating assignment targets"""
        if department_id is not None:
            department = (
                self.db.query(Department)
                .filter(Department.id == department_id, Department.organization_id == patient.organization_id)
                .first()
            )
            if not department:
                raise RecordNotFound("Department", department_id)
        if doctor_id is not None:
            doctor = (
                self.db.query(Profile)
                .filter(
                    Profile.id == doctor_id,
                    Profile.organization_id == patient.organization_id,
                    Profile.role == "doctor",
                )
                .first()
            )
            if not doctor:
                raise RecordNotFound("Doctor", doctor_id)

        return RecordScope(
            organization_id=patient.organization_id,
            department_id=department_id if department_id is not None else patient.department_id,
            doctor_id=doctor_id if doctor_id is not None else patient.doctor_id,
            care_type=patient.care_type,
        )

    def create_schedule(self, actor: Actor, data: ScheduleCreate) -> Schedule:
        """Register a recurring procedure; first due date is the start date"""
        logger.info(f"📥 Creating schedule for patient {data.patient_id} by actor {actor.id}")

        patient = self.db.query(Patient).filter(Patient.id == data.patient_id).first()
        if not patient:
            raise RecordNotFound("Patient", data.patient_id)
        self.policy.check(actor, patient_scope(patient), "create")

        item = (
            self.db.query(Item)
            .filter(Item.id == data.item_id, Item.organization_id == patient.organization_id)
            .first()
        )
        if not item:
            raise RecordNotFound("Item", data.item_id)

        interval = Interval.of(data.interval_unit, data.interval_value)
        if data.end_date is not None and data.end_date < data.start_date:
            raise InvalidDateRange("End date cannot be before start date")

        # The actor must still see the schedule after assignment overrides
        scope = self._assignment_scope(patient, data.assigned_department_id, data.assigned_doctor_id)
        self.policy.check(actor, scope, "create")

        schedule = self.repo.create_schedule(
            self.db,
            organization_id=patient.organization_id,
            patient_id=patient.id,
            item_id=item.id,
            interval_unit=interval.unit.value,
            interval_value=interval.value,
            start_date=data.start_date,
            end_date=data.end_date,
            next_due_date=data.start_date,
            status=ScheduleStatus.ACTIVE.value,
            assigned_department_id=data.assigned_department_id,
            assigned_doctor_id=data.assigned_doctor_id,
            priority=data.priority,
            notes=data.notes,
            created_by=actor.id,
        )
        logger.info(f"✅ Schedule {schedule.id} created, first due {schedule.next_due_date}")
        self._notify(schedule, "schedule_created")
        return schedule

    def update_schedule(self, actor: Actor, schedule_id: int, data: ScheduleUpdate) -> Schedule:
        """Edit interval, end date, notes, priority or assignment"""
        schedule = self.get_schedule_for(actor, schedule_id, "update")
        if schedule.status in (ScheduleStatus.COMPLETED.value, ScheduleStatus.CANCELLED.value):
            raise InvalidStateTransition(
                schedule.status, schedule.status, f"A {schedule.status} schedule cannot be edited"
            )

        fields = data.model_dump(exclude_unset=True)
        patch = {}

        if "interval_unit" in fields or "interval_value" in fields:
            interval = Interval.of(
                fields.get("interval_unit") or schedule.interval_unit,
                fields.get("interval_value") if fields.get("interval_value") is not None else schedule.interval_value,
            )
            patch["interval_unit"] = interval.unit.value
            patch["interval_value"] = interval.value
            if schedule.last_executed_date is not None:
                patch["next_due_date"] = compute_next_due_date(schedule.last_executed_date, interval)

        if "end_date" in fields:
            end_date = fields["end_date"]
            if end_date is not None and end_date < schedule.start_date:
                raise InvalidDateRange("End date cannot be before start date")
            patch["end_date"] = end_date

        if "notes" in fields:
            patch["notes"] = fields["notes"]
        if fields.get("priority") is not None:
            patch["priority"] = fields["priority"]

        if "assigned_department_id" in fields or "assigned_doctor_id" in fields:
            department_id = fields.get("assigned_department_id", schedule.assigned_department_id)
            doctor_id = fields.get("assigned_doctor_id", schedule.assigned_doctor_id)
            scope = self._assignment_scope(schedule.patient, department_id, doctor_id)
            self.policy.check(actor, scope, "reassign")
            patch["assigned_department_id"] = department_id
            patch["assigned_doctor_id"] = doctor_id

        # An end date before the next occurrence finishes the course
        end_date = patch.get("end_date", schedule.end_date)
        if end_date is not None and ("end_date" in patch or "next_due_date" in patch):
            interval = Interval.of(
                patch.get("interval_unit", schedule.interval_unit),
                patch.get("interval_value", schedule.interval_value),
            )
            due = due_date_for(
                schedule.last_executed_date,
                schedule.start_date,
                interval,
                patch.get("next_due_date", schedule.next_due_date),
            )
            if due > end_date:
                validate_transition(schedule.status, ScheduleStatus.COMPLETED)
                patch["status"] = ScheduleStatus.COMPLETED.value
                logger.info(f"Schedule {schedule_id} completed: end date {end_date} precedes next due {due}")

        if not patch:
            return schedule

        schedule = self.repo.update_schedule(self.db, schedule, patch)
        self._notify(schedule, "schedule_updated")
        return schedule

    # ------------------------------------------------------------------
    # Executions
    # ------------------------------------------------------------------

    def complete_schedule(
        self,
        actor: Actor,
        schedule_id: int,
        executed_date: DateLike,
        planned_date: Optional[DateLike] = None,
        notes: Optional[str] = None,
        today: Optional[DateLike] = None,
    ) -> ScheduleExecution:
        """
        Record that a due occurrence was performed and advance the schedule.

        Without ``planned_date`` the current due occurrence is completed. An
        executed date before the last recorded one is stored as history only.

        Raises:
            DuplicateExecution: If this (schedule, planned date) was already recorded
            InvalidStateTransition: If the schedule is not active
            InvalidDateRange: If the dates are in the future or not a known occurrence
        """
        schedule = self.get_schedule_for(actor, schedule_id, "complete")
        if schedule.status != ScheduleStatus.ACTIVE.value:
            raise InvalidStateTransition(
                schedule.status, ScheduleStatus.COMPLETED.value, "Only active schedules can be completed"
            )

        executed = to_date(executed_date)
        if executed > self._today(today):
            raise InvalidDateRange("Executed date cannot be in the future")

        interval = Interval.of(schedule.interval_unit, schedule.interval_value)
        current_due = due_date_for(
            schedule.last_executed_date, schedule.start_date, interval, schedule.next_due_date
        )
        last = schedule.last_executed_date

        if planned_date is not None:
            planned = to_date(planned_date)
            if planned < schedule.start_date or planned > current_due:
                raise InvalidDateRange(
                    f"Planned date {planned} is not an occurrence between {schedule.start_date} and {current_due}"
                )
        else:
            # Resubmission of an already recorded completion (e.g. from a stale page)
            if last is not None and executed <= last:
                latest = self.repo.get_latest_completion(self.db, schedule.id)
                logger.info(f"Schedule {schedule_id} already completed on {last}, rejecting resubmission")
                raise DuplicateExecution(schedule.id, latest.planned_date if latest else last)
            planned = current_due

        # Backfilled history never moves the schedule backwards
        patch = {}
        next_due = schedule.next_due_date
        if last is None or executed >= last:
            next_due = compute_next_due_date(executed, interval)
            patch = {"last_executed_date": executed, "next_due_date": next_due}
            if schedule.end_date is not None and next_due > schedule.end_date:
                validate_transition(schedule.status, ScheduleStatus.COMPLETED)
                patch["status"] = ScheduleStatus.COMPLETED.value

        scope = schedule_scope(schedule)
        execution = ScheduleExecution(
            schedule_id=schedule.id,
            organization_id=schedule.organization_id,
            planned_date=planned,
            executed_date=executed,
            status="completed",
            executed_by=actor.id,
            notes=notes,
            doctor_id_at_completion=scope.doctor_id,
            department_id_at_completion=scope.department_id,
        )

        execution = self.repo.record_execution(self.db, execution, schedule, patch)
        logger.info(
            f"✅ Schedule {schedule_id} completed for {planned} on {executed} by {actor.id}, next due {next_due}"
        )
        self._notify(schedule, "execution_completed")
        return execution

    def skip_schedule(
        self,
        actor: Actor,
        schedule_id: int,
        planned_date: Optional[DateLike] = None,
        notes: Optional[str] = None,
    ) -> ScheduleExecution:
        """Record a skipped occurrence; the next one follows the planned date"""
        schedule = self.get_schedule_for(actor, schedule_id, "skip")
        if schedule.status != ScheduleStatus.ACTIVE.value:
            raise InvalidStateTransition(schedule.status, "skipped", "Only active schedules can be skipped")

        interval = Interval.of(schedule.interval_unit, schedule.interval_value)
        planned = (
            to_date(planned_date)
            if planned_date is not None
            else due_date_for(schedule.last_executed_date, schedule.start_date, interval, schedule.next_due_date)
        )
        next_due = compute_next_due_date(planned, interval)

        patch = {"next_due_date": next_due}
        if schedule.end_date is not None and next_due > schedule.end_date:
            patch["status"] = ScheduleStatus.COMPLETED.value

        execution = ScheduleExecution(
            schedule_id=schedule.id,
            organization_id=schedule.organization_id,
            planned_date=planned,
            executed_date=None,
            status="skipped",
            executed_by=actor.id,
            notes=notes,
        )
        execution = self.repo.record_execution(self.db, execution, schedule, patch)
        logger.info(f"⏭️ Schedule {schedule_id} skipped for {planned}, next due {next_due}")
        self._notify(schedule, "execution_skipped")
        return execution

    def update_execution_notes(self, actor: Actor, execution_id: int, notes: Optional[str]) -> ScheduleExecution:
        """Notes are the only mutable part of a recorded execution"""
        execution = self.repo.get_execution_by_id(self.db, execution_id)
        if not execution:
            raise RecordNotFound("Execution", execution_id)
        self.policy.check(actor, schedule_scope(execution.schedule), "update")

        execution = self.repo.update_execution_notes(self.db, execution, notes)
        self._notify(execution.schedule, "execution_updated")
        return execution

    # ------------------------------------------------------------------
    # Status workflow
    # ------------------------------------------------------------------

    def pause_schedule(self, actor: Actor, schedule_id: int, today: Optional[DateLike] = None) -> Schedule:
        schedule = self.get_schedule_for(actor, schedule_id, "pause")
        if not validate_transition(schedule.status, ScheduleStatus.PAUSED):
            return schedule

        current = self._today(today)
        ensure_not_ended(schedule.end_date, "paused", current)

        schedule = self.repo.update_schedule(
            self.db, schedule, {"status": ScheduleStatus.PAUSED.value, "paused_at": current}
        )
        logger.info(f"⏸️ Schedule {schedule_id} paused by {actor.id}")
        self._notify(schedule, "schedule_paused")
        return schedule

    def resume_schedule(
        self,
        actor: Actor,
        schedule_id: int,
        strategy: Optional[str] = None,
        custom_date: Optional[DateLike] = None,
        today: Optional[DateLike] = None,
    ) -> Schedule:
        """Reactivate a paused schedule; next_cycle is the default strategy"""
        schedule = self.get_schedule_for(actor, schedule_id, "resume")
        if not validate_transition(schedule.status, ScheduleStatus.ACTIVE):
            return schedule

        current = self._today(today)
        ensure_not_ended(schedule.end_date, "resumed", current)

        interval = Interval.of(schedule.interval_unit, schedule.interval_value)
        try:
            next_due = resume_due_date(strategy, interval, current, custom_date, schedule.end_date)
        except ValueError:
            raise InvalidDateRange(f"Unknown resume strategy: {strategy!r}") from None
        if schedule.end_date is not None and next_due > schedule.end_date:
            raise InvalidDateRange("Next due date is after the schedule end date")

        if schedule.paused_at and schedule.next_due_date and schedule.paused_at <= current:
            missed = missed_occurrences(schedule.next_due_date, interval, schedule.paused_at, current)
            if missed:
                logger.info(f"Schedule {schedule_id} missed {len(missed)} occurrence(s) while paused")

        schedule = self.repo.update_schedule(
            self.db,
            schedule,
            {"status": ScheduleStatus.ACTIVE.value, "paused_at": None, "next_due_date": next_due},
        )
        logger.info(f"▶️ Schedule {schedule_id} resumed by {actor.id}, next due {next_due}")
        self._notify(schedule, "schedule_resumed")
        return schedule

    def deactivate_schedule(self, actor: Actor, schedule_id: int) -> Schedule:
        """Soft delete; execution history is kept"""
        schedule = self.get_schedule_for(actor, schedule_id, "delete")
        if not validate_transition(schedule.status, ScheduleStatus.CANCELLED):
            return schedule

        schedule = self.repo.update_schedule(self.db, schedule, {"status": ScheduleStatus.CANCELLED.value})
        logger.info(f"🗑️ Schedule {schedule_id} cancelled by {actor.id}")
        self._notify(schedule, "schedule_cancelled")
        return schedule
