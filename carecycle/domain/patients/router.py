"""Patient router - FastAPI endpoints for patient lookups"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_actor
from ...database import get_db
from ..scheduling.visibility import Actor
from .schemas import PatientResponse
from .service import PatientService

router = APIRouter(prefix="/patients", tags=["Patients"])


def get_patient_service(db: Session = Depends(get_db)) -> PatientService:
    """Dependency injection for PatientService"""
    return PatientService(db)


@router.get("", response_model=list[PatientResponse])
async def get_patients(
    department_id: Optional[list[int]] = Query(None),
    doctor_id: Optional[list[int]] = Query(None),
    include_inactive: bool = Query(False),
    actor: Actor = Depends(get_current_actor),
    service: PatientService = Depends(get_patient_service),
):
    """Patients visible to the current user"""
    return service.get_patients(
        actor, department_ids=department_id, doctor_ids=doctor_id, include_inactive=include_inactive
    )


@router.get("/{patient_id}", response_model=PatientResponse)
async def get_patient(
    patient_id: int,
    actor: Actor = Depends(get_current_actor),
    service: PatientService = Depends(get_patient_service),
):
    return service.get_patient(actor, patient_id)
