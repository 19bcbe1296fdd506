"""Schedule repository - Database operations for schedules and executions"""

import logging
from datetime import date
from typing import Optional

from sqlalchemy import and_, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query, Session, contains_eager, joinedload

from ...models import OrganizationPolicy, Patient, Schedule, ScheduleExecution
from .errors import DuplicateExecution
from .visibility import RecordScope, VisibilityPredicate

logger = logging.getLogger(__name__)


def schedule_scope_columns() -> dict:
    """
    Column expressions for a schedule's ownership fields.

    A schedule's own assignment overrides the patient's.
    """
    return {
        "organization_id": Schedule.organization_id,
        "department_id": func.coalesce(Schedule.assigned_department_id, Patient.department_id),
        "doctor_id": func.coalesce(Schedule.assigned_doctor_id, Patient.doctor_id),
        "care_type": Patient.care_type,
    }


def patient_scope_columns() -> dict:
    return {
        "organization_id": Patient.organization_id,
        "department_id": Patient.department_id,
        "doctor_id": Patient.doctor_id,
        "care_type": Patient.care_type,
    }


def schedule_scope(schedule: Schedule) -> RecordScope:
    """Python-side twin of schedule_scope_columns()"""
    patient = schedule.patient
    department_id = schedule.assigned_department_id
    doctor_id = schedule.assigned_doctor_id
    if department_id is None and patient is not None:
        department_id = patient.department_id
    if doctor_id is None and patient is not None:
        doctor_id = patient.doctor_id

    return RecordScope(
        organization_id=schedule.organization_id,
        department_id=department_id,
        doctor_id=doctor_id,
        nurse_owner_id=schedule.created_by,
        care_type=patient.care_type if patient is not None else None,
    )


def patient_scope(patient: Patient) -> RecordScope:
    return RecordScope(
        organization_id=patient.organization_id,
        department_id=patient.department_id,
        doctor_id=patient.doctor_id,
        care_type=patient.care_type,
    )


def apply_predicate(query: Query, predicate: VisibilityPredicate, columns: dict) -> Query:
    """Translate a visibility predicate into WHERE clauses, one per clause"""
    for name, value in predicate.equality_clauses().items():
        query = query.filter(columns[name] == value)
    for name, values in predicate.membership_clauses().items():
        query = query.filter(columns[name].in_(values))
    return query


class ScheduleRepository:
    """Repository for schedule database operations"""

    @staticmethod
    def find_schedules(
        db: Session,
        predicate: VisibilityPredicate,
        start: Optional[date] = None,
        end: Optional[date] = None,
        statuses: tuple = ("active",),
    ) -> list[Schedule]:
        """Schedules visible under ``predicate`` whose due date may fall in [start, end]"""
        if predicate.deny_all:
            logger.debug(f"Predicate denies all rows ({predicate.reason})")
            return []

        query = (
            db.query(Schedule)
            .join(
                Patient,
                and_(
                    Patient.id == Schedule.patient_id,
                    Patient.organization_id == Schedule.organization_id,
                ),
            )
            .options(contains_eager(Schedule.patient), joinedload(Schedule.item))
        )
        query = apply_predicate(query, predicate, schedule_scope_columns())

        if statuses:
            query = query.filter(Schedule.status.in_(statuses))

        # Rows without a stored due date are resolved by the recurrence engine
        if start is not None:
            query = query.filter(or_(Schedule.next_due_date.is_(None), Schedule.next_due_date >= start))
        if end is not None:
            query = query.filter(or_(Schedule.next_due_date.is_(None), Schedule.next_due_date <= end))

        return query.order_by(Schedule.next_due_date, Schedule.id).all()

    @staticmethod
    def find_executions(
        db: Session,
        predicate: VisibilityPredicate,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> list[ScheduleExecution]:
        """Completed executions visible under ``predicate`` executed within [start, end]"""
        if predicate.deny_all:
            return []

        query = (
            db.query(ScheduleExecution)
            .join(Schedule, Schedule.id == ScheduleExecution.schedule_id)
            .join(
                Patient,
                and_(
                    Patient.id == Schedule.patient_id,
                    Patient.organization_id == Schedule.organization_id,
                ),
            )
            .options(
                contains_eager(ScheduleExecution.schedule).contains_eager(Schedule.patient),
                contains_eager(ScheduleExecution.schedule).joinedload(Schedule.item),
            )
            .filter(
                ScheduleExecution.status == "completed",
                ScheduleExecution.executed_date.isnot(None),
                ScheduleExecution.organization_id == Schedule.organization_id,
            )
        )
        query = apply_predicate(query, predicate, schedule_scope_columns())

        if start is not None:
            query = query.filter(ScheduleExecution.executed_date >= start)
        if end is not None:
            query = query.filter(ScheduleExecution.executed_date <= end)

        return query.order_by(ScheduleExecution.executed_date, ScheduleExecution.id).all()

    @staticmethod
    def get_recorded_occurrences(
        db: Session, schedule_ids: list[int], start: Optional[date] = None, end: Optional[date] = None
    ) -> set[tuple[int, date]]:
        """(schedule_id, planned_date) pairs already completed or skipped"""
        if not schedule_ids:
            return set()
        query = db.query(ScheduleExecution.schedule_id, ScheduleExecution.planned_date).filter(
            ScheduleExecution.schedule_id.in_(schedule_ids)
        )
        if start is not None:
            query = query.filter(ScheduleExecution.planned_date >= start)
        if end is not None:
            query = query.filter(ScheduleExecution.planned_date <= end)
        return {(row[0], row[1]) for row in query.all()}

    @staticmethod
    def get_schedule_by_id(db: Session, schedule_id: int) -> Optional[Schedule]:
        """Unscoped lookup - callers must run the visibility check"""
        return (
            db.query(Schedule)
            .options(joinedload(Schedule.patient), joinedload(Schedule.item))
            .filter(Schedule.id == schedule_id)
            .first()
        )

    @staticmethod
    def get_execution_by_id(db: Session, execution_id: int) -> Optional[ScheduleExecution]:
        return (
            db.query(ScheduleExecution)
            .options(joinedload(ScheduleExecution.schedule).joinedload(Schedule.patient))
            .filter(ScheduleExecution.id == execution_id)
            .first()
        )

    @staticmethod
    def get_latest_completion(db: Session, schedule_id: int) -> Optional[ScheduleExecution]:
        return (
            db.query(ScheduleExecution)
            .filter(ScheduleExecution.schedule_id == schedule_id, ScheduleExecution.status == "completed")
            .order_by(ScheduleExecution.executed_date.desc(), ScheduleExecution.id.desc())
            .first()
        )

    @staticmethod
    def create_schedule(db: Session, **schedule_data) -> Schedule:
        schedule = Schedule(**schedule_data)
        db.add(schedule)
        db.commit()
        db.refresh(schedule)
        return schedule

    @staticmethod
    def update_schedule(db: Session, schedule: Schedule, patch: dict) -> Schedule:
        """Apply ``patch``; unlike sparse updates, None values are written"""
        for key, value in patch.items():
            if hasattr(schedule, key):
                setattr(schedule, key, value)

        db.commit()
        db.refresh(schedule)
        return schedule

    @staticmethod
    def record_execution(
        db: Session,
        execution: ScheduleExecution,
        schedule: Optional[Schedule] = None,
        schedule_patch: Optional[dict] = None,
    ) -> ScheduleExecution:
        """
        Insert an execution and advance its schedule in one transaction.

        Raises:
            DuplicateExecution: If (schedule_id, planned_date) already exists;
                nothing is written in that case
        """
        db.add(execution)
        try:
            db.flush()
        except IntegrityError as e:
            db.rollback()
            logger.info(
                f"Duplicate execution for schedule {execution.schedule_id} on {execution.planned_date}"
            )
            raise DuplicateExecution(execution.schedule_id, execution.planned_date) from e

        if schedule is not None and schedule_patch:
            for key, value in schedule_patch.items():
                setattr(schedule, key, value)

        try:
            db.commit()
        except IntegrityError as e:
            db.rollback()
            raise DuplicateExecution(execution.schedule_id, execution.planned_date) from e

        db.refresh(execution)
        return execution

    @staticmethod
    def insert_execution(db: Session, execution: ScheduleExecution) -> ScheduleExecution:
        return ScheduleRepository.record_execution(db, execution)

    @staticmethod
    def update_execution_notes(db: Session, execution: ScheduleExecution, notes: Optional[str]) -> ScheduleExecution:
        execution.notes = notes
        db.commit()
        db.refresh(execution)
        return execution

    # Auto-hold
    @staticmethod
    def get_auto_hold_policies(db: Session) -> list[OrganizationPolicy]:
        return (
            db.query(OrganizationPolicy)
            .filter(
                OrganizationPolicy.auto_hold_overdue_days.isnot(None),
                OrganizationPolicy.auto_hold_overdue_days > 0,
            )
            .order_by(OrganizationPolicy.organization_id)
            .all()
        )

    @staticmethod
    def get_overdue_schedule_ids(
        db: Session, organization_id: int, cutoff: date, limit: int
    ) -> list[int]:
        rows = (
            db.query(Schedule.id)
            .filter(
                Schedule.organization_id == organization_id,
                Schedule.status == "active",
                Schedule.next_due_date < cutoff,
            )
            .order_by(Schedule.id)
            .limit(limit)
            .all()
        )
        return [row[0] for row in rows]

    @staticmethod
    def pause_schedules(db: Session, schedule_ids: list[int], paused_on: date) -> int:
        if not schedule_ids:
            return 0
        updated = (
            db.query(Schedule)
            .filter(Schedule.id.in_(schedule_ids), Schedule.status == "active")
            .update({"status": "paused", "paused_at": paused_on}, synchronize_session=False)
        )
        db.commit()
        return updated
