"""Patient service - visibility-checked patient reads"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Patient
from ..scheduling.errors import RecordNotFound
from ..scheduling.repository import patient_scope
from ..scheduling.visibility import Actor, VisibilityPolicy
from .repository import PatientRepository

logger = logging.getLogger(__name__)


class PatientService:
    """Service layer for patient lookups"""

    def __init__(self, db: Session, policy: Optional[VisibilityPolicy] = None):
        self.db = db
        self.policy = policy or VisibilityPolicy()
        self.repo = PatientRepository()

    def get_patients(
        self,
        actor: Actor,
        department_ids: Optional[list[int]] = None,
        doctor_ids: Optional[list[int]] = None,
        include_inactive: bool = False,
    ) -> list[Patient]:
        """Patients the actor may see; out-of-scope rows are never fetched"""
        predicate = self.policy.predicate(actor, department_ids=department_ids, doctor_ids=doctor_ids)
        return self.repo.find_patients(self.db, predicate, include_inactive=include_inactive)

    def get_patient(self, actor: Actor, patient_id: int) -> Patient:
        patient = self.repo.get_patient_by_id(self.db, patient_id)
        if not patient:
            raise RecordNotFound("Patient", patient_id)
        self.policy.check(actor, patient_scope(patient), "read")
        return patient
