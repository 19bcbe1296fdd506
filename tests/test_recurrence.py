"""Next-due computation, interval validation and status classification"""
from datetime import date, timedelta

import pytest

from carecycle.domain.scheduling.errors import InvalidInterval, InvalidIntervalUnit
from carecycle.domain.scheduling.recurrence import (
    InstanceStatus,
    Interval,
    IntervalUnit,
    classify,
    compute_next_due_date,
    sort_by_priority,
    status_label,
)

TODAY = date(2025, 1, 29)


class TestComputeNextDueDate:
    def test_weeks(self):
        assert compute_next_due_date(date(2025, 1, 15), Interval.of("week", 2)) == date(2025, 1, 29)

    def test_months(self):
        assert compute_next_due_date(date(2025, 1, 15), Interval.of("month", 3)) == date(2025, 4, 15)

    def test_month_end_clamps(self):
        assert compute_next_due_date(date(2025, 1, 31), Interval.of("month", 1)) == date(2025, 2, 28)

    def test_days(self):
        assert compute_next_due_date("2025-01-15", Interval.of(IntervalUnit.DAY, 10)) == date(2025, 1, 25)

    def test_unknown_unit_is_rejected(self):
        """An unrecognized unit must fail, never fall back to a default"""
        with pytest.raises(InvalidIntervalUnit):
            compute_next_due_date(date(2025, 1, 15), Interval("fortnight", 1))

    def test_zero_value_is_rejected(self):
        with pytest.raises(InvalidInterval):
            compute_next_due_date(date(2025, 1, 15), Interval(IntervalUnit.WEEK, 0))


class TestInterval:
    def test_unit_is_case_insensitive(self):
        assert Interval.of("WEEK", 1).unit == IntervalUnit.WEEK

    @pytest.mark.parametrize("value", [0, -1, 1.5, True, "2"])
    def test_rejects_bad_values(self, value):
        with pytest.raises(InvalidInterval):
            Interval.of("week", value)

    def test_upper_bounds(self):
        assert Interval.of("day", 365).value == 365
        with pytest.raises(InvalidInterval):
            Interval.of("week", 53)
        with pytest.raises(InvalidInterval):
            Interval.of("month", 25)

    def test_unknown_unit(self):
        with pytest.raises(InvalidIntervalUnit):
            Interval.of("year", 1)


class TestClassify:
    def test_exhaustive_around_today(self):
        for offset in range(-40, 41):
            due = TODAY + timedelta(days=offset)
            status = classify(due, TODAY)
            assert status in (InstanceStatus.OVERDUE, InstanceStatus.DUE_TODAY, InstanceStatus.UPCOMING)
            assert (status == InstanceStatus.DUE_TODAY) == (due == TODAY)
            assert (status == InstanceStatus.OVERDUE) == (due < TODAY)

    def test_accepts_strings(self):
        assert classify("2025-01-28", "2025-01-29") == InstanceStatus.OVERDUE


class TestStatusLabel:
    def test_variants_and_priorities(self):
        assert status_label(date(2025, 1, 20), TODAY) == status_label("2025-01-20", "2025-01-29")
        overdue = status_label(date(2025, 1, 20), TODAY)
        assert (overdue.variant, overdue.days, overdue.priority) == ("overdue", 9, 0)
        assert status_label(TODAY, TODAY).priority == 1
        tomorrow = status_label(date(2025, 1, 30), TODAY)
        assert (tomorrow.variant, tomorrow.priority) == ("upcoming", 2)
        week = status_label(date(2025, 2, 5), TODAY)
        assert (week.variant, week.days, week.priority) == ("upcoming", 7, 3)
        assert status_label(date(2025, 2, 6), TODAY).variant == "future"

    def test_sort_by_priority(self):
        dates = [date(2025, 3, 1), date(2025, 1, 30), TODAY, date(2025, 1, 2), date(2025, 1, 20)]
        assert sort_by_priority(dates, TODAY) == [
            date(2025, 1, 2),
            date(2025, 1, 20),
            TODAY,
            date(2025, 1, 30),
            date(2025, 3, 1),
        ]
