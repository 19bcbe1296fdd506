from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class Organization(Base):
    """Tenant - no clinical data crosses organizations"""

    __tablename__ = "organizations"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    departments = relationship("Department", back_populates="organization")
    policy = relationship("OrganizationPolicy", back_populates="organization", uselist=False)


class OrganizationPolicy(Base):
    __tablename__ = "organization_policies"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), unique=True, nullable=False)
    # Pause active schedules overdue by more than this many days (null/0 = disabled)
    auto_hold_overdue_days = Column(Integer, nullable=True)

    organization = relationship("Organization", back_populates="policy")


class Department(Base):
    __tablename__ = "departments"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)

    organization = relationship("Organization", back_populates="departments")


class Profile(Base):
    """Staff member; role is one of super_admin, admin, doctor, nurse"""

    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=True)
    role = Column(String(20), nullable=False, default="nurse")
    # Always null for super_admin
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=True, index=True)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=True)
    care_type = Column(String(50), nullable=True)  # Legacy text tag, superseded by department_id
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())


class Patient(Base):
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    patient_number = Column(String(50), nullable=True)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=True, index=True)
    doctor_id = Column(Integer, ForeignKey("profiles.id"), nullable=True, index=True)
    care_type = Column(String(50), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    schedules = relationship("Schedule", back_populates="patient")


class Item(Base):
    """A recurring procedure (injection, test, ...)"""

    __tablename__ = "items"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    category = Column(String(50), nullable=True)  # injection, test, other


class Schedule(Base):
    __tablename__ = "schedules"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False)

    # Recurrence: unit is day, week or month; value >= 1
    interval_unit = Column(String(10), nullable=False, default="week")
    interval_value = Column(Integer, nullable=False, default=1)

    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    last_executed_date = Column(Date, nullable=True)
    # Maintained by every write path; null only for rows imported without one
    next_due_date = Column(Date, nullable=True, index=True)

    # Status workflow: active <-> paused, active/paused -> cancelled, active -> completed
    status = Column(String(20), default="active", nullable=False, index=True)
    paused_at = Column(Date, nullable=True)

    # Override the patient's department/doctor when set
    assigned_department_id = Column(Integer, ForeignKey("departments.id"), nullable=True)
    assigned_doctor_id = Column(Integer, ForeignKey("profiles.id"), nullable=True)

    priority = Column(Integer, default=0, nullable=False)
    notes = Column(Text, nullable=True)
    created_by = Column(Integer, ForeignKey("profiles.id"), nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    patient = relationship("Patient", back_populates="schedules")
    item = relationship("Item")
    executions = relationship("ScheduleExecution", back_populates="schedule")


class ScheduleExecution(Base):
    """One completed or skipped occurrence; unique per (schedule_id, planned_date)"""

    __tablename__ = "schedule_executions"
    __table_args__ = (
        UniqueConstraint("schedule_id", "planned_date", name="uq_schedule_executions_schedule_planned"),
    )

    id = Column(Integer, primary_key=True, index=True)
    schedule_id = Column(Integer, ForeignKey("schedules.id"), nullable=False, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)

    planned_date = Column(Date, nullable=False)
    executed_date = Column(Date, nullable=True, index=True)  # null for skipped
    status = Column(String(20), nullable=False, default="completed")  # completed, skipped
    executed_by = Column(Integer, ForeignKey("profiles.id"), nullable=True)
    notes = Column(Text, nullable=True)

    # Assignment snapshot at completion time
    doctor_id_at_completion = Column(Integer, nullable=True)
    department_id_at_completion = Column(Integer, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    schedule = relationship("Schedule", back_populates="executions")
