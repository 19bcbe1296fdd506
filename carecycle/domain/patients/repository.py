"""Patient repository - Database operations for patients"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Patient
from ..scheduling.repository import apply_predicate, patient_scope_columns
from ..scheduling.visibility import VisibilityPredicate


class PatientRepository:
    """Repository for patient database operations"""

    @staticmethod
    def find_patients(db: Session, predicate: VisibilityPredicate, include_inactive: bool = False) -> list[Patient]:
        """Patients visible under ``predicate``"""
        if predicate.deny_all:
            return []

        query = apply_predicate(db.query(Patient), predicate, patient_scope_columns())
        if not include_inactive:
            query = query.filter(Patient.is_active.is_(True))
        return query.order_by(Patient.name, Patient.id).all()

    @staticmethod
    def get_patient_by_id(db: Session, patient_id: int) -> Optional[Patient]:
        """Unscoped lookup - callers must run the visibility check"""
        return db.query(Patient).filter(Patient.id == patient_id).first()
