"""Schedule router - FastAPI endpoints for schedules and the calendar view"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_actor
from ...database import get_db
from ...shared.calendar_math import utc_today
from .projector import ProjectionFilters, ScheduleInstance, ScheduleProjector, summarize
from .recurrence import InstanceStatus, status_label
from .schemas import (
    CompleteRequest,
    ExecutionNotesUpdate,
    ExecutionResponse,
    ResumeRequest,
    ScheduleCreate,
    ScheduleDetailResponse,
    ScheduleInstanceResponse,
    ScheduleResponse,
    ScheduleSummaryResponse,
    ScheduleUpdate,
    SkipRequest,
)
from .service import ScheduleService
from .visibility import Actor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/schedules", tags=["Schedules"])


def get_schedule_service(db: Session = Depends(get_db)) -> ScheduleService:
    """Dependency injection for ScheduleService"""
    return ScheduleService(db)


def get_schedule_projector(db: Session = Depends(get_db)) -> ScheduleProjector:
    """Dependency injection for ScheduleProjector"""
    return ScheduleProjector(db)


def get_today() -> date:
    """Reference day for classification; overridden in tests"""
    return utc_today()


def _instance_response(instance: ScheduleInstance, today: date) -> ScheduleInstanceResponse:
    label = None
    label_days = None
    if instance.status != InstanceStatus.COMPLETED:
        info = status_label(instance.due_date, today)
        label, label_days = info.variant, info.days

    return ScheduleInstanceResponse(
        schedule_id=instance.schedule_id,
        patient_id=instance.patient_id,
        patient_name=instance.patient_name,
        item_id=instance.item_id,
        item_name=instance.item_name,
        due_date=instance.due_date,
        status=instance.status.value,
        display_type=instance.display_type,
        completion_ref=instance.completion_ref,
        planned_date=instance.planned_date,
        executed_by=instance.executed_by,
        notes=instance.notes,
        interval_unit=instance.interval_unit,
        interval_value=instance.interval_value,
        label=label,
        label_days=label_days,
    )


# ============================================================================
# CALENDAR VIEW
# ============================================================================


@router.get("", response_model=list[ScheduleInstanceResponse])
async def list_schedule_instances(
    start: date = Query(...),
    end: date = Query(...),
    department_id: Optional[list[int]] = Query(None),
    doctor_id: Optional[list[int]] = Query(None),
    actor: Actor = Depends(get_current_actor),
    projector: ScheduleProjector = Depends(get_schedule_projector),
    today: date = Depends(get_today),
):
    """Due and completed instances in [start, end] visible to the current user"""
    filters = ProjectionFilters(
        department_ids=tuple(department_id) if department_id else None,
        doctor_ids=tuple(doctor_id) if doctor_id else None,
    )
    instances = projector.project(actor, start, end, filters=filters, today=today)
    return [_instance_response(i, today) for i in instances]


@router.get("/summary", response_model=ScheduleSummaryResponse)
async def get_schedule_summary(
    start: date = Query(...),
    end: date = Query(...),
    actor: Actor = Depends(get_current_actor),
    projector: ScheduleProjector = Depends(get_schedule_projector),
    today: date = Depends(get_today),
):
    """Badge counts for the dashboard"""
    return ScheduleSummaryResponse(**summarize(projector.project(actor, start, end, today=today)))


# ============================================================================
# CORE CRUD OPERATIONS
# ============================================================================


@router.post("", response_model=ScheduleResponse, status_code=201)
async def create_schedule(
    data: ScheduleCreate,
    actor: Actor = Depends(get_current_actor),
    service: ScheduleService = Depends(get_schedule_service),
):
    return service.create_schedule(actor, data)


@router.get("/{schedule_id}", response_model=ScheduleDetailResponse)
async def get_schedule(
    schedule_id: int,
    actor: Actor = Depends(get_current_actor),
    service: ScheduleService = Depends(get_schedule_service),
    today: date = Depends(get_today),
):
    detail = service.get_schedule_detail(actor, schedule_id, today=today)
    response = ScheduleDetailResponse.model_validate(detail["schedule"])
    response.suggested_resume_strategy = detail["suggested_resume_strategy"]
    response.missed_dates = detail["missed_dates"]
    response.catch_up_dates = detail["catch_up_dates"]
    response.remaining_occurrences = detail["remaining_occurrences"]
    return response


@router.patch("/{schedule_id}", response_model=ScheduleResponse)
async def update_schedule(
    schedule_id: int,
    data: ScheduleUpdate,
    actor: Actor = Depends(get_current_actor),
    service: ScheduleService = Depends(get_schedule_service),
):
    return service.update_schedule(actor, schedule_id, data)


@router.delete("/{schedule_id}", response_model=ScheduleResponse)
async def deactivate_schedule(
    schedule_id: int,
    actor: Actor = Depends(get_current_actor),
    service: ScheduleService = Depends(get_schedule_service),
):
    """Soft delete: the schedule is cancelled, its history kept"""
    return service.deactivate_schedule(actor, schedule_id)


# ============================================================================
# EXECUTIONS
# ============================================================================


@router.post("/{schedule_id}/complete", response_model=ExecutionResponse, status_code=201)
async def complete_schedule(
    schedule_id: int,
    data: CompleteRequest,
    actor: Actor = Depends(get_current_actor),
    service: ScheduleService = Depends(get_schedule_service),
    today: date = Depends(get_today),
):
    """Record a completion; 409 if this occurrence was already recorded"""
    return service.complete_schedule(
        actor,
        schedule_id,
        executed_date=data.executed_date,
        planned_date=data.planned_date,
        notes=data.notes,
        today=today,
    )


@router.post("/{schedule_id}/skip", response_model=ExecutionResponse, status_code=201)
async def skip_schedule(
    schedule_id: int,
    data: SkipRequest,
    actor: Actor = Depends(get_current_actor),
    service: ScheduleService = Depends(get_schedule_service),
):
    return service.skip_schedule(actor, schedule_id, planned_date=data.planned_date, notes=data.notes)


@router.patch("/executions/{execution_id}", response_model=ExecutionResponse)
async def update_execution_notes(
    execution_id: int,
    data: ExecutionNotesUpdate,
    actor: Actor = Depends(get_current_actor),
    service: ScheduleService = Depends(get_schedule_service),
):
    return service.update_execution_notes(actor, execution_id, data.notes)


# ============================================================================
# STATUS WORKFLOW
# ============================================================================


@router.post("/{schedule_id}/pause", response_model=ScheduleResponse)
async def pause_schedule(
    schedule_id: int,
    actor: Actor = Depends(get_current_actor),
    service: ScheduleService = Depends(get_schedule_service),
    today: date = Depends(get_today),
):
    return service.pause_schedule(actor, schedule_id, today=today)


@router.post("/{schedule_id}/resume", response_model=ScheduleResponse)
async def resume_schedule(
    schedule_id: int,
    data: Optional[ResumeRequest] = None,
    actor: Actor = Depends(get_current_actor),
    service: ScheduleService = Depends(get_schedule_service),
    today: date = Depends(get_today),
):
    data = data or ResumeRequest()
    return service.resume_schedule(
        actor, schedule_id, strategy=data.strategy, custom_date=data.custom_date, today=today
    )
