"""Scheduling domain schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel

from .recurrence import IntervalUnit


class ScheduleCreate(BaseModel):
    """Schema for registering a recurring procedure for a patient"""

    patient_id: int
    item_id: int
    interval_unit: str = IntervalUnit.WEEK.value
    interval_value: int = 1
    start_date: date
    end_date: Optional[date] = None
    notes: Optional[str] = None
    priority: int = 0
    assigned_department_id: Optional[int] = None
    assigned_doctor_id: Optional[int] = None


class ScheduleUpdate(BaseModel):
    """Sparse edit; only fields present in the request body are applied"""

    interval_unit: Optional[str] = None
    interval_value: Optional[int] = None
    end_date: Optional[date] = None
    notes: Optional[str] = None
    priority: Optional[int] = None
    assigned_department_id: Optional[int] = None
    assigned_doctor_id: Optional[int] = None


class CompleteRequest(BaseModel):
    executed_date: date
    planned_date: Optional[date] = None
    notes: Optional[str] = None


class SkipRequest(BaseModel):
    planned_date: Optional[date] = None
    notes: Optional[str] = None


class ResumeRequest(BaseModel):
    strategy: Optional[str] = None  # immediate, next_cycle (default), custom
    custom_date: Optional[date] = None


class ExecutionNotesUpdate(BaseModel):
    notes: Optional[str] = None


class ScheduleResponse(BaseModel):
    id: int
    organization_id: int
    patient_id: int
    item_id: int
    interval_unit: str
    interval_value: int
    start_date: date
    end_date: Optional[date] = None
    last_executed_date: Optional[date] = None
    next_due_date: Optional[date] = None
    status: str
    paused_at: Optional[date] = None
    assigned_department_id: Optional[int] = None
    assigned_doctor_id: Optional[int] = None
    priority: int = 0
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ScheduleDetailResponse(ScheduleResponse):
    """Single schedule plus the resume hint shown while it is paused"""

    suggested_resume_strategy: Optional[str] = None
    missed_dates: list[date] = []
    catch_up_dates: list[date] = []
    remaining_occurrences: Optional[int] = None


class ExecutionResponse(BaseModel):
    id: int
    schedule_id: int
    planned_date: date
    executed_date: Optional[date] = None
    status: str
    executed_by: Optional[int] = None
    notes: Optional[str] = None
    doctor_id_at_completion: Optional[int] = None
    department_id_at_completion: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ScheduleInstanceResponse(BaseModel):
    schedule_id: int
    patient_id: int
    patient_name: str
    item_id: int
    item_name: Optional[str] = None
    due_date: date
    status: str
    display_type: str
    completion_ref: Optional[int] = None
    planned_date: Optional[date] = None
    executed_by: Optional[int] = None
    notes: Optional[str] = None
    interval_unit: Optional[str] = None
    interval_value: Optional[int] = None
    # Display label: overdue, today, upcoming, future (completed has none)
    label: Optional[str] = None
    label_days: Optional[int] = None

    class Config:
        from_attributes = True


class ScheduleSummaryResponse(BaseModel):
    overdue: int = 0
    due_today: int = 0
    upcoming: int = 0
    completed: int = 0
    total: int = 0
