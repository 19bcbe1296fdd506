"""
Visibility policy for patient- and schedule-scoped records

One rule set, two outputs:
- ``decide``/``check`` answer whether an actor may read or mutate a single record
- ``predicate`` produces the equivalent filter the store applies to bulk queries

Rules, first match wins:
1. super_admin -> deny (never authorized against clinical data)
2. record organization differs from actor organization -> deny
3. admin -> allow
4. doctor -> allow only for records assigned to that doctor
5. nurse -> allow only for records in the nurse's department
   (legacy care-type matching when enabled and the nurse has no department)
6. deny
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional

from ...config import LEGACY_CARE_TYPE_MATCHING
from ...security_utils import log_security_event
from .errors import AccessDenied

logger = logging.getLogger(__name__)


class Role(str, Enum):
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    DOCTOR = "doctor"
    NURSE = "nurse"


@dataclass(frozen=True)
class Actor:
    """Authenticated principal plus its tenant/department context"""

    id: int
    role: Role
    organization_id: Optional[int] = None
    department_id: Optional[int] = None
    care_type: Optional[str] = None

    def __post_init__(self):
        # Frozen dataclass: coerce through object.__setattr__
        object.__setattr__(self, "role", Role(self.role))
        if self.role == Role.SUPER_ADMIN and self.organization_id is not None:
            logger.warning(f"Super admin actor {self.id} carries organization {self.organization_id}")

    @classmethod
    def from_profile(cls, profile) -> "Actor":
        return cls(
            id=profile.id,
            role=Role(profile.role),
            organization_id=profile.organization_id,
            department_id=profile.department_id,
            care_type=profile.care_type,
        )


@dataclass(frozen=True)
class RecordScope:
    """The ownership fields of a patient or schedule record"""

    organization_id: Optional[int]
    department_id: Optional[int] = None
    doctor_id: Optional[int] = None
    nurse_owner_id: Optional[int] = None
    care_type: Optional[str] = None


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: str


@dataclass(frozen=True)
class VisibilityPredicate:
    """
    Conjunction of equality and membership filters.

    ``None`` means the clause is absent. ``deny_all`` short-circuits to an
    empty result without touching the store.
    """

    deny_all: bool = False
    organization_id: Optional[int] = None
    doctor_id: Optional[int] = None
    department_id: Optional[int] = None
    care_type: Optional[str] = None
    department_ids: Optional[tuple] = None
    doctor_ids: Optional[tuple] = None
    reason: str = field(default="", compare=False)

    @classmethod
    def nothing(cls, reason: str) -> "VisibilityPredicate":
        return cls(deny_all=True, reason=reason)

    def equality_clauses(self) -> dict:
        clauses = {
            "organization_id": self.organization_id,
            "doctor_id": self.doctor_id,
            "department_id": self.department_id,
            "care_type": self.care_type,
        }
        return {name: value for name, value in clauses.items() if value is not None}

    def membership_clauses(self) -> dict:
        clauses = {"department_id": self.department_ids, "doctor_id": self.doctor_ids}
        return {name: values for name, values in clauses.items() if values is not None}

    def matches(self, record: RecordScope) -> bool:
        """Evaluate the predicate against one record, exactly as the store does"""
        if self.deny_all:
            return False
        for name, value in self.equality_clauses().items():
            if getattr(record, name) != value:
                return False
        for name, values in self.membership_clauses().items():
            if getattr(record, name) not in values:
                return False
        return True


class VisibilityPolicy:
    """Role/tenant scoped access rules for clinical records"""

    def __init__(self, legacy_care_type_matching: bool = LEGACY_CARE_TYPE_MATCHING):
        self.legacy_care_type_matching = legacy_care_type_matching

    @staticmethod
    def is_clinical_access_forbidden(actor: Actor) -> bool:
        """
        Super admins manage organizations and users only.

        Checked before anything else and independent of organization
        matching, so a super admin carrying an organization id is still denied.
        """
        return actor.role == Role.SUPER_ADMIN

    def _uses_care_type(self, actor: Actor) -> bool:
        return (
            self.legacy_care_type_matching
            and actor.role == Role.NURSE
            and actor.department_id is None
            and bool(actor.care_type)
        )

    def decide(self, actor: Actor, record: RecordScope) -> AccessDecision:
        if self.is_clinical_access_forbidden(actor):
            return AccessDecision(False, "super_admin_clinical_access")

        if actor.organization_id is None or record.organization_id != actor.organization_id:
            return AccessDecision(False, "tenant_mismatch")

        if actor.role == Role.ADMIN:
            return AccessDecision(True, "organization_admin")

        if actor.role == Role.DOCTOR:
            if record.doctor_id is not None and record.doctor_id == actor.id:
                return AccessDecision(True, "assigned_doctor")
            return AccessDecision(False, "not_assigned_doctor")

        if actor.role == Role.NURSE:
            if actor.department_id is not None:
                if record.department_id == actor.department_id:
                    return AccessDecision(True, "department_match")
                return AccessDecision(False, "department_mismatch")
            if self._uses_care_type(actor) and record.care_type == actor.care_type:
                return AccessDecision(True, "care_type_match")
            return AccessDecision(False, "department_mismatch")

        return AccessDecision(False, "unknown_role")

    def can_read(self, actor: Actor, record: RecordScope) -> bool:
        return self.decide(actor, record).allowed

    def can_write(self, actor: Actor, record: RecordScope) -> bool:
        # Read and write share one rule set
        return self.decide(actor, record).allowed

    def check(self, actor: Actor, record: RecordScope, action: str = "read") -> None:
        """
        Raise AccessDenied unless the actor may act on the record.

        Raises:
            AccessDenied: With the rule that rejected the actor as ``reason``
        """
        decision = self.decide(actor, record)
        if decision.allowed:
            return

        log_security_event(
            "access_denied",
            user_id=str(actor.id),
            details={
                "role": actor.role.value,
                "action": action,
                "reason": decision.reason,
                "organization_id": record.organization_id,
            },
        )
        if decision.reason == "super_admin_clinical_access":
            logger.warning(f"🚫 Super admin {actor.id} attempted clinical {action}")
            raise AccessDenied("Super admins cannot access patient data", reason=decision.reason)
        raise AccessDenied(f"Not permitted to {action} this record", reason=decision.reason)

    def predicate(
        self,
        actor: Actor,
        department_ids: Optional[Iterable[int]] = None,
        doctor_ids: Optional[Iterable[int]] = None,
    ) -> VisibilityPredicate:
        """
        Bulk-query equivalent of ``decide``.

        Caller filters (department_ids, doctor_ids) only ever narrow the result.
        """
        if self.is_clinical_access_forbidden(actor):
            return VisibilityPredicate.nothing("super_admin_clinical_access")
        if actor.organization_id is None:
            return VisibilityPredicate.nothing("tenant_mismatch")

        narrowing = {
            "department_ids": tuple(department_ids) if department_ids else None,
            "doctor_ids": tuple(doctor_ids) if doctor_ids else None,
        }

        if actor.role == Role.ADMIN:
            return VisibilityPredicate(organization_id=actor.organization_id, **narrowing)

        if actor.role == Role.DOCTOR:
            return VisibilityPredicate(
                organization_id=actor.organization_id, doctor_id=actor.id, **narrowing
            )

        if actor.role == Role.NURSE:
            if actor.department_id is not None:
                return VisibilityPredicate(
                    organization_id=actor.organization_id,
                    department_id=actor.department_id,
                    **narrowing,
                )
            if self._uses_care_type(actor):
                return VisibilityPredicate(
                    organization_id=actor.organization_id,
                    care_type=actor.care_type,
                    **narrowing,
                )
            return VisibilityPredicate.nothing("department_mismatch")

        return VisibilityPredicate.nothing("unknown_role")
