"""Status workflow and resume date strategies"""
from datetime import date

import pytest

from carecycle.domain.scheduling.errors import InvalidDateRange, InvalidStateTransition
from carecycle.domain.scheduling.recurrence import Interval
from carecycle.domain.scheduling.state import (
    ResumeStrategy,
    ScheduleStatus,
    catch_up_dates,
    ensure_not_ended,
    missed_occurrences,
    pause_length,
    remaining_occurrences,
    resume_due_date,
    suggest_resume_strategy,
    validate_transition,
)

TODAY = date(2025, 1, 29)
EVERY_TWO_WEEKS = Interval.of("week", 2)


class TestValidateTransition:
    @pytest.mark.parametrize(
        "current,target",
        [
            ("active", "paused"),
            ("active", "completed"),
            ("active", "cancelled"),
            ("paused", "active"),
            ("paused", "cancelled"),
        ],
    )
    def test_allowed(self, current, target):
        assert validate_transition(current, target) is True

    @pytest.mark.parametrize(
        "current,target",
        [
            ("paused", "completed"),
            ("completed", "active"),
            ("completed", "paused"),
            ("cancelled", "active"),
            ("cancelled", "paused"),
        ],
    )
    def test_rejected(self, current, target):
        with pytest.raises(InvalidStateTransition) as exc_info:
            validate_transition(current, target)
        assert exc_info.value.current == current
        assert exc_info.value.target == target

    def test_same_state_is_noop(self):
        assert validate_transition(ScheduleStatus.PAUSED, "paused") is False

    def test_unknown_status(self):
        with pytest.raises(InvalidStateTransition):
            validate_transition("archived", "active")

    def test_paused_to_completed_message(self):
        with pytest.raises(InvalidStateTransition, match="resumed"):
            validate_transition("paused", "completed")


class TestEnsureNotEnded:
    def test_open_ended(self):
        ensure_not_ended(None, "paused", TODAY)

    def test_end_today_is_still_running(self):
        ensure_not_ended(TODAY, "paused", TODAY)

    def test_ended(self):
        with pytest.raises(InvalidStateTransition):
            ensure_not_ended(date(2025, 1, 28), "resumed", TODAY)


class TestResumeDueDate:
    def test_immediate(self):
        assert resume_due_date("immediate", EVERY_TWO_WEEKS, TODAY) == TODAY

    def test_next_cycle_is_default(self):
        assert resume_due_date(None, EVERY_TWO_WEEKS, TODAY) == date(2025, 2, 12)
        assert resume_due_date(ResumeStrategy.NEXT_CYCLE, EVERY_TWO_WEEKS, TODAY) == date(2025, 2, 12)

    def test_next_cycle_monthly_clamps(self):
        assert resume_due_date("next_cycle", Interval.of("month", 1), date(2025, 1, 31)) == date(2025, 2, 28)

    def test_custom(self):
        assert resume_due_date("custom", EVERY_TWO_WEEKS, TODAY, custom_date="2025-02-03") == date(2025, 2, 3)

    def test_custom_requires_date(self):
        with pytest.raises(InvalidDateRange):
            resume_due_date("custom", EVERY_TWO_WEEKS, TODAY)

    def test_custom_after_end_date(self):
        with pytest.raises(InvalidDateRange):
            resume_due_date(
                "custom", EVERY_TWO_WEEKS, TODAY, custom_date=date(2025, 3, 1), end_date=date(2025, 2, 28)
            )

    def test_unknown_strategy(self):
        with pytest.raises(ValueError):
            resume_due_date("later", EVERY_TWO_WEEKS, TODAY)


class TestSuggestResumeStrategy:
    def test_short_pause(self):
        assert suggest_resume_strategy(EVERY_TWO_WEEKS, 13) == ResumeStrategy.IMMEDIATE

    def test_medium_pause(self):
        assert suggest_resume_strategy(EVERY_TWO_WEEKS, 14) == ResumeStrategy.CUSTOM
        assert suggest_resume_strategy(EVERY_TWO_WEEKS, 56) == ResumeStrategy.CUSTOM

    def test_long_pause(self):
        assert suggest_resume_strategy(EVERY_TWO_WEEKS, 57) == ResumeStrategy.NEXT_CYCLE


class TestMissedOccurrences:
    def test_lists_due_dates_inside_pause(self):
        missed = missed_occurrences(date(2025, 1, 1), EVERY_TWO_WEEKS, date(2025, 1, 10), TODAY)
        assert missed == [date(2025, 1, 15)]

    def test_includes_pause_day_excludes_resume_day(self):
        missed = missed_occurrences(date(2025, 1, 1), EVERY_TWO_WEEKS, date(2025, 1, 1), date(2025, 1, 29))
        assert missed == [date(2025, 1, 1), date(2025, 1, 15)]

    def test_nothing_missed(self):
        assert missed_occurrences(date(2025, 2, 1), EVERY_TWO_WEEKS, date(2025, 1, 10), TODAY) == []

    def test_inverted_range(self):
        with pytest.raises(InvalidDateRange):
            missed_occurrences(date(2025, 1, 1), EVERY_TWO_WEEKS, TODAY, date(2025, 1, 1))

    def test_pause_length(self):
        assert pause_length(None, TODAY) == 0
        assert pause_length(date(2025, 1, 1), TODAY) == 28


class TestCatchUpDates:
    def test_half_interval_starting_today(self):
        dates = catch_up_dates(Interval.of("week", 4), 3, TODAY)
        assert dates == [TODAY, date(2025, 2, 12), date(2025, 2, 26)]

    def test_minimum_one_unit(self):
        assert catch_up_dates(Interval.of("day", 1), 2, TODAY) == [TODAY, date(2025, 1, 30)]

    def test_stops_at_end_date(self):
        dates = catch_up_dates(EVERY_TWO_WEEKS, 5, TODAY, end_date=date(2025, 2, 10))
        assert dates == [TODAY, date(2025, 2, 5)]

    def test_nothing_missed(self):
        assert catch_up_dates(EVERY_TWO_WEEKS, 0, TODAY) == []


class TestRemainingOccurrences:
    def test_open_ended(self):
        assert remaining_occurrences(EVERY_TWO_WEEKS, None, TODAY) is None

    def test_counts_end_date_inclusive(self):
        assert remaining_occurrences(EVERY_TWO_WEEKS, date(2025, 2, 26), TODAY) == 3

    def test_monthly_clamped(self):
        # Jan 31, Feb 28, Mar 28
        assert remaining_occurrences(Interval.of("month", 1), date(2025, 3, 30), date(2025, 1, 31)) == 3

    def test_past_end_date(self):
        assert remaining_occurrences(EVERY_TWO_WEEKS, date(2025, 1, 1), TODAY) == 0
