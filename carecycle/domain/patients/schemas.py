"""Patient domain schemas"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class PatientResponse(BaseModel):
    """Schema for patient response"""

    id: int
    organization_id: int
    name: str
    patient_number: Optional[str] = None
    department_id: Optional[int] = None
    doctor_id: Optional[int] = None
    care_type: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
