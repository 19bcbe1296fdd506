"""
Global test fixtures for pytest.

Provides:
- An in-memory SQLite database per test
- Two organizations with departments, staff of every role, patients and items
- Actors for each role and a FastAPI TestClient authenticated by real JWTs
"""
import os

# Must be set before carecycle.config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["REDIS_URL"] = ""
os.environ["DB_LOG_SLOW_QUERIES"] = "false"
os.environ["LEGACY_CARE_TYPE_MATCHING"] = "false"

from datetime import date  # noqa: E402
from types import SimpleNamespace  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from carecycle.database import Base, get_db  # noqa: E402
from carecycle.domain.scheduling.router import get_today  # noqa: E402
from carecycle.domain.scheduling.visibility import Actor  # noqa: E402
from carecycle.events import InvalidationBus  # noqa: E402
from carecycle.main import app  # noqa: E402
from carecycle.models import (  # noqa: E402
    Department,
    Item,
    Organization,
    OrganizationPolicy,
    Patient,
    Profile,
    Schedule,
)
from carecycle.security_utils import create_jwt_token  # noqa: E402

TODAY = date(2025, 1, 29)


# ============================================================================
# Database
# ============================================================================


@pytest.fixture
def engine():
    test_engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


# ============================================================================
# Seed data
# ============================================================================


@pytest.fixture
def seed(db):
    """
    Org A: wards "General" and "ICU", one of each role, patients Alice (General,
    Dr. House) and Bob (ICU, Dr. Grey). Org B: one doctor and patient Carol.
    """
    org_a = Organization(name="St. Mary")
    org_b = Organization(name="Riverside")
    db.add_all([org_a, org_b])
    db.flush()

    general = Department(organization_id=org_a.id, name="General")
    icu = Department(organization_id=org_a.id, name="ICU")
    ward_b = Department(organization_id=org_b.id, name="Ward B")
    db.add_all([general, icu, ward_b])
    db.flush()

    super_admin = Profile(email="root@carecycle.test", name="Root", role="super_admin")
    admin = Profile(email="admin@a.test", name="Admin A", role="admin", organization_id=org_a.id)
    doctor = Profile(email="house@a.test", name="Dr. House", role="doctor", organization_id=org_a.id)
    other_doctor = Profile(email="grey@a.test", name="Dr. Grey", role="doctor", organization_id=org_a.id)
    nurse = Profile(
        email="nurse@a.test",
        name="Nurse Joy",
        role="nurse",
        organization_id=org_a.id,
        department_id=general.id,
        care_type="outpatient",
    )
    icu_nurse = Profile(
        email="icu@a.test", name="Nurse Ratched", role="nurse", organization_id=org_a.id, department_id=icu.id
    )
    doctor_b = Profile(email="doc@b.test", name="Dr. Strange", role="doctor", organization_id=org_b.id)
    db.add_all([super_admin, admin, doctor, other_doctor, nurse, icu_nurse, doctor_b])
    db.flush()

    alice = Patient(
        organization_id=org_a.id,
        name="Alice",
        patient_number="A-001",
        department_id=general.id,
        doctor_id=doctor.id,
        care_type="outpatient",
    )
    bob = Patient(
        organization_id=org_a.id,
        name="Bob",
        patient_number="A-002",
        department_id=icu.id,
        doctor_id=other_doctor.id,
        care_type="inpatient",
    )
    carol = Patient(
        organization_id=org_b.id, name="Carol", department_id=ward_b.id, doctor_id=doctor_b.id
    )
    db.add_all([alice, bob, carol])
    db.flush()

    injection = Item(organization_id=org_a.id, name="B12 injection", category="injection")
    blood_test = Item(organization_id=org_a.id, name="Blood test", category="test")
    item_b = Item(organization_id=org_b.id, name="Flu shot", category="injection")
    db.add_all([injection, blood_test, item_b])
    db.commit()

    return SimpleNamespace(
        org_a=org_a,
        org_b=org_b,
        general=general,
        icu=icu,
        ward_b=ward_b,
        super_admin=super_admin,
        admin=admin,
        doctor=doctor,
        other_doctor=other_doctor,
        nurse=nurse,
        icu_nurse=icu_nurse,
        doctor_b=doctor_b,
        alice=alice,
        bob=bob,
        carol=carol,
        injection=injection,
        blood_test=blood_test,
        item_b=item_b,
    )


@pytest.fixture
def actors(seed):
    return SimpleNamespace(
        super_admin=Actor.from_profile(seed.super_admin),
        admin=Actor.from_profile(seed.admin),
        doctor=Actor.from_profile(seed.doctor),
        other_doctor=Actor.from_profile(seed.other_doctor),
        nurse=Actor.from_profile(seed.nurse),
        icu_nurse=Actor.from_profile(seed.icu_nurse),
        doctor_b=Actor.from_profile(seed.doctor_b),
    )


@pytest.fixture
def make_schedule(db, seed):
    """Factory for schedules; defaults to a 4-week injection for Alice"""

    def _make(**overrides):
        patient = overrides.pop("patient", seed.alice)
        values = {
            "organization_id": patient.organization_id,
            "patient_id": patient.id,
            "item_id": seed.injection.id if patient.organization_id == seed.org_a.id else seed.item_b.id,
            "interval_unit": "week",
            "interval_value": 4,
            "start_date": date(2024, 12, 4),
            "status": "active",
        }
        values.update(overrides)
        schedule = Schedule(**values)
        db.add(schedule)
        db.commit()
        db.refresh(schedule)
        return schedule

    return _make


@pytest.fixture
def auto_hold_policy(db, seed):
    policy = OrganizationPolicy(organization_id=seed.org_a.id, auto_hold_overdue_days=14)
    db.add(policy)
    db.commit()
    return policy


# ============================================================================
# Events
# ============================================================================


@pytest.fixture
def bus():
    """In-process bus that records every invalidation"""
    test_bus = InvalidationBus()
    test_bus.received = []
    test_bus.subscribe(test_bus.received.append)
    return test_bus


# ============================================================================
# API client
# ============================================================================


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_today] = lambda: TODAY
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _headers(profile):
        token = create_jwt_token({"sub": str(profile.id)})
        return {"Authorization": f"Bearer {token}"}

    return _headers
