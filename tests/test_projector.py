"""Calendar projection: live due instances plus completed executions"""
from datetime import date

import pytest

from carecycle.domain.scheduling.errors import InvalidDateRange
from carecycle.domain.scheduling.projector import (
    ProjectionFilters,
    ScheduleProjector,
    due_date_for,
    summarize,
)
from carecycle.domain.scheduling.recurrence import InstanceStatus, Interval
from carecycle.domain.scheduling.repository import ScheduleRepository
from carecycle.domain.scheduling.service import ScheduleService
from carecycle.models import ScheduleExecution

TODAY = date(2025, 1, 29)
WINDOW = (date(2025, 1, 25), date(2025, 2, 5))


@pytest.fixture
def projector(db):
    return ScheduleProjector(db)


@pytest.fixture
def four_weekly(make_schedule):
    """Alice, every 4 weeks, last performed 2025-01-01, no stored due date"""
    return make_schedule(last_executed_date=date(2025, 1, 1))


def record_execution(db, schedule, planned, executed, status="completed", executed_by=None):
    execution = ScheduleExecution(
        schedule_id=schedule.id,
        organization_id=schedule.organization_id,
        planned_date=planned,
        executed_date=executed,
        status=status,
        executed_by=executed_by,
    )
    return ScheduleRepository.insert_execution(db, execution)


class TestDueDateFor:
    def test_never_performed_uses_start(self):
        assert due_date_for(None, date(2025, 1, 10), Interval.of("week", 1)) == date(2025, 1, 10)

    def test_computed_from_last_performed(self):
        assert due_date_for(date(2025, 1, 1), date(2024, 12, 4), Interval.of("week", 4)) == date(2025, 1, 29)

    def test_stored_due_date_wins(self):
        assert due_date_for(
            date(2025, 1, 1), date(2024, 12, 4), Interval.of("week", 4), scheduled=date(2025, 2, 3)
        ) == date(2025, 2, 3)


class TestEndToEnd:
    def test_nurse_sees_instance_due_today(self, projector, actors, four_weekly):
        instances = projector.project(actors.nurse, *WINDOW, today=TODAY)

        assert len(instances) == 1
        instance = instances[0]
        assert instance.schedule_id == four_weekly.id
        assert instance.due_date == date(2025, 1, 29)
        assert instance.status == InstanceStatus.DUE_TODAY
        assert instance.display_type == "scheduled"
        assert instance.patient_name == "Alice"
        assert instance.item_name == "B12 injection"

    def test_execution_yields_completed_instance_alongside_other_due(
        self, projector, actors, four_weekly, make_schedule, db, seed
    ):
        other = make_schedule(item_id=seed.blood_test.id, next_due_date=date(2025, 2, 3))
        execution = record_execution(db, four_weekly, date(2025, 1, 29), date(2025, 1, 29), executed_by=seed.nurse.id)

        instances = projector.project(actors.nurse, *WINDOW, today=TODAY)

        assert [(i.schedule_id, i.due_date, i.status) for i in instances] == [
            (four_weekly.id, date(2025, 1, 29), InstanceStatus.COMPLETED),
            (other.id, date(2025, 2, 3), InstanceStatus.UPCOMING),
        ]
        completed = instances[0]
        assert completed.display_type == "completed"
        assert completed.completion_ref == execution.id
        assert completed.planned_date == date(2025, 1, 29)
        assert completed.executed_by == seed.nurse.id

    def test_completion_through_service(self, projector, actors, four_weekly, db):
        ScheduleService(db).complete_schedule(actors.nurse, four_weekly.id, executed_date=TODAY, today=TODAY)

        instances = projector.project(actors.nurse, *WINDOW, today=TODAY)

        # Next occurrence (2025-02-26) falls outside the window
        assert [(i.due_date, i.status) for i in instances] == [(TODAY, InstanceStatus.COMPLETED)]


class TestProjection:
    def test_classification(self, projector, actors, make_schedule):
        make_schedule(next_due_date=date(2025, 1, 26))
        make_schedule(next_due_date=TODAY)
        make_schedule(next_due_date=date(2025, 2, 4))

        statuses = [i.status for i in projector.project(actors.admin, *WINDOW, today=TODAY)]
        assert statuses == [InstanceStatus.OVERDUE, InstanceStatus.DUE_TODAY, InstanceStatus.UPCOMING]

    def test_outside_window_excluded(self, projector, actors, make_schedule):
        make_schedule(next_due_date=date(2025, 1, 24))
        make_schedule(next_due_date=date(2025, 2, 6))
        make_schedule(last_executed_date=date(2024, 12, 1))  # computed 2024-12-29
        assert projector.project(actors.admin, *WINDOW, today=TODAY) == []

    def test_paused_and_cancelled_excluded(self, projector, actors, make_schedule):
        make_schedule(next_due_date=TODAY, status="paused")
        make_schedule(next_due_date=TODAY, status="cancelled")
        assert projector.project(actors.admin, *WINDOW, today=TODAY) == []

    def test_past_end_date_excluded(self, projector, actors, make_schedule):
        make_schedule(next_due_date=date(2025, 2, 1), end_date=date(2025, 1, 31))
        assert projector.project(actors.admin, *WINDOW, today=TODAY) == []

    def test_skipped_occurrence_not_shown(self, projector, actors, make_schedule, db):
        schedule = make_schedule(next_due_date=TODAY)
        record_execution(db, schedule, TODAY, None, status="skipped")
        assert projector.project(actors.admin, *WINDOW, today=TODAY) == []

    def test_ties_sorted_by_patient_name(self, projector, actors, make_schedule, seed):
        make_schedule(patient=seed.bob, next_due_date=TODAY)
        make_schedule(patient=seed.alice, next_due_date=TODAY)
        names = [i.patient_name for i in projector.project(actors.admin, *WINDOW, today=TODAY)]
        assert names == ["Alice", "Bob"]

    def test_inverted_range(self, projector, actors):
        with pytest.raises(InvalidDateRange):
            projector.project(actors.admin, date(2025, 2, 5), date(2025, 1, 25), today=TODAY)

    def test_single_day_window(self, projector, actors, make_schedule):
        make_schedule(next_due_date=TODAY)
        assert len(projector.project(actors.admin, TODAY, TODAY, today=TODAY)) == 1


class TestProjectionVisibility:
    @pytest.fixture
    def caseload(self, make_schedule, seed, db):
        alice = make_schedule(patient=seed.alice, next_due_date=TODAY)
        bob = make_schedule(patient=seed.bob, next_due_date=TODAY)
        carol = make_schedule(patient=seed.carol, next_due_date=TODAY)
        record_execution(db, bob, date(2025, 1, 1), date(2025, 1, 27))
        record_execution(db, carol, date(2025, 1, 1), date(2025, 1, 27))
        return alice, bob, carol

    def visible(self, projector, actor, filters=None):
        return {
            (i.patient_name, i.display_type)
            for i in projector.project(actor, *WINDOW, filters=filters, today=TODAY)
        }

    def test_admin_sees_own_organization(self, projector, actors, caseload):
        assert self.visible(projector, actors.admin) == {
            ("Alice", "scheduled"),
            ("Bob", "scheduled"),
            ("Bob", "completed"),
        }

    def test_doctor_sees_assigned_patients(self, projector, actors, caseload):
        assert self.visible(projector, actors.doctor) == {("Alice", "scheduled")}
        assert self.visible(projector, actors.other_doctor) == {("Bob", "scheduled"), ("Bob", "completed")}

    def test_nurse_sees_department(self, projector, actors, caseload):
        assert self.visible(projector, actors.icu_nurse) == {("Bob", "scheduled"), ("Bob", "completed")}

    def test_other_tenant(self, projector, actors, caseload):
        assert self.visible(projector, actors.doctor_b) == {("Carol", "scheduled"), ("Carol", "completed")}

    def test_super_admin_sees_nothing(self, projector, actors, caseload):
        assert projector.project(actors.super_admin, *WINDOW, today=TODAY) == []

    def test_department_filter_narrows(self, projector, actors, caseload, seed):
        filters = ProjectionFilters(department_ids=(seed.icu.id,))
        assert self.visible(projector, actors.admin, filters) == {("Bob", "scheduled"), ("Bob", "completed")}

    def test_filter_cannot_widen(self, projector, actors, caseload, seed):
        filters = ProjectionFilters(department_ids=(seed.icu.id,))
        assert self.visible(projector, actors.nurse, filters) == set()

    def test_schedule_assignment_overrides_patient(self, projector, actors, make_schedule, seed):
        make_schedule(patient=seed.alice, next_due_date=TODAY, assigned_department_id=seed.icu.id)
        assert ("Alice", "scheduled") in self.visible(projector, actors.icu_nurse)
        assert self.visible(projector, actors.nurse) == set()


def test_summarize(projector, actors, make_schedule, db):
    make_schedule(next_due_date=date(2025, 1, 26))
    done = make_schedule(next_due_date=date(2025, 2, 3))
    record_execution(db, done, date(2025, 1, 27), date(2025, 1, 27))

    counts = summarize(projector.project(actors.admin, *WINDOW, today=TODAY))
    assert counts == {"overdue": 1, "due_today": 0, "upcoming": 1, "completed": 1, "total": 3}
