"""
Unit tests for the streak & duty-pass ledger.
"""

from datetime import date, datetime, timezone

import pytest

from questline.modules.shared.exceptions import (
    AlreadyClaimedError,
    InsufficientPassesError,
    InvalidStateError,
    NotFoundError,
    NotMissedError,
)
from questline.modules.weekly_quest.constants import (
    EVENT_DAY_MISSED,
    EVENT_DUTY_PASS_CLAIMED,
    EVENT_DUTY_PASS_USED,
    DayStatus,
)
from questline.modules.weekly_quest.week_calendar import resolve

from tests.conftest import MONDAY_MORNING_UTC, TEST_TIMEZONE


def at(week, year, month, day, hour=2):
    return resolve(datetime(year, month, day, hour, tzinfo=timezone.utc), TEST_TIMEZONE, week.week_start)


@pytest.mark.unit
class TestStreak:
    def test_completion_extends_streak_once(self, ledger, quest_week):
        assert ledger.record_completion(quest_week, "monday", MONDAY_MORNING_UTC)
        assert not ledger.record_completion(quest_week, "monday", MONDAY_MORNING_UTC)

        assert quest_week.current_streak == 1
        assert quest_week.progress.completed_days == ["monday"]

    def test_longest_streak_never_decreases(self, ledger, quest_week):
        for day in ("monday", "tuesday", "wednesday"):
            ledger.record_completion(quest_week, day, MONDAY_MORNING_UTC)

        quest_week.break_streak()

        assert quest_week.current_streak == 0
        assert quest_week.longest_streak == 3

    def test_completed_days_stay_in_week_order(self, ledger, quest_week):
        for day in ("wednesday", "monday", "tuesday"):
            ledger.record_completion(quest_week, day, MONDAY_MORNING_UTC)

        assert quest_week.progress.completed_days == ["monday", "tuesday", "wednesday"]


@pytest.mark.unit
class TestMissedDays:
    def test_past_unfinished_days_become_missed(self, ledger, quest_week):
        wednesday = at(quest_week, 2025, 1, 8)

        missed = ledger.detect_missed_days(quest_week, wednesday)

        assert missed == ["monday", "tuesday"]
        assert quest_week.day("monday").status == DayStatus.MISSED
        assert quest_week.day("wednesday").status == DayStatus.NOT_STARTED
        names = [e.event_name for e in quest_week.get_pending_events()]
        assert names == [EVENT_DAY_MISSED, EVENT_DAY_MISSED]

    def test_missing_does_not_touch_streak(self, ledger, quest_week):
        quest_week.day("monday").status = DayStatus.COMPLETED
        ledger.record_completion(quest_week, "monday", MONDAY_MORNING_UTC)

        missed = ledger.detect_missed_days(quest_week, at(quest_week, 2025, 1, 9))

        assert missed == ["tuesday", "wednesday"]
        assert quest_week.current_streak == 1
        assert quest_week.day("monday").status == DayStatus.COMPLETED

    def test_failed_past_day_becomes_missed(self, ledger, quest_week):
        quest_week.day("monday").status = DayStatus.FAILED

        ledger.detect_missed_days(quest_week, at(quest_week, 2025, 1, 7))

        assert quest_week.day("monday").status == DayStatus.MISSED

    def test_rescued_day_is_never_missed_again(self, ledger, quest_week):
        state = quest_week.day("monday")
        state.status = DayStatus.UNLOCKED_VIA_PASS
        state.via_pass = True

        assert ledger.detect_missed_days(quest_week, at(quest_week, 2025, 1, 8)) == ["tuesday"]
        assert state.status == DayStatus.UNLOCKED_VIA_PASS

    def test_detection_is_idempotent(self, ledger, quest_week):
        wednesday = at(quest_week, 2025, 1, 8)
        ledger.detect_missed_days(quest_week, wednesday)

        assert ledger.detect_missed_days(quest_week, wednesday) == []

    def test_whole_week_is_past_on_weekend(self, ledger, quest_week):
        saturday = at(quest_week, 2025, 1, 11)

        assert len(ledger.detect_missed_days(quest_week, saturday)) == 5


@pytest.mark.unit
class TestWeeklyDutyPass:
    def test_claim_on_weekend(self, ledger, quest_week):
        saturday = at(quest_week, 2025, 1, 11)

        assert ledger.can_claim_weekly_pass(quest_week, saturday)
        assert ledger.claim_weekly_duty_pass(quest_week, saturday) == 1
        assert quest_week.last_duty_pass_claim_week == date(2025, 1, 6)
        assert quest_week.get_pending_events()[-1].event_name == EVENT_DUTY_PASS_CLAIMED

    def test_second_claim_same_week(self, ledger, quest_week):
        sunday = at(quest_week, 2025, 1, 12)
        ledger.claim_weekly_duty_pass(quest_week, sunday)

        with pytest.raises(AlreadyClaimedError):
            ledger.claim_weekly_duty_pass(quest_week, sunday)

        assert quest_week.duty_passes == 1
        assert not ledger.can_claim_weekly_pass(quest_week, sunday)

    def test_weekday_claim_rejected(self, ledger, quest_week):
        friday = at(quest_week, 2025, 1, 10)

        with pytest.raises(InvalidStateError):
            ledger.claim_weekly_duty_pass(quest_week, friday)

        assert not ledger.can_claim_weekly_pass(quest_week, friday)
        assert quest_week.duty_passes == 0


@pytest.mark.unit
class TestUseDutyPass:
    @pytest.fixture
    def week_with_pass(self, ledger, quest_week):
        ledger.claim_weekly_duty_pass(quest_week, at(quest_week, 2025, 1, 11))
        quest_week.clear_domain_events()
        return quest_week

    def test_rescues_missed_day(self, ledger, week_with_pass):
        week_with_pass.day("tuesday").status = DayStatus.MISSED
        week_with_pass.day("tuesday").lives_remaining = 0

        ledger.use_duty_pass(week_with_pass, "tuesday", 3)

        state = week_with_pass.day("tuesday")
        assert week_with_pass.duty_passes == 0
        assert state.status == DayStatus.UNLOCKED_VIA_PASS
        assert state.via_pass
        assert state.lives_remaining == 3
        assert week_with_pass.get_pending_events()[-1].event_name == EVENT_DUTY_PASS_USED

    def test_not_missed_day(self, ledger, week_with_pass):
        with pytest.raises(NotMissedError):
            ledger.use_duty_pass(week_with_pass, "tuesday", 3)

        assert week_with_pass.duty_passes == 1

    def test_no_passes_left(self, ledger, quest_week):
        quest_week.day("monday").status = DayStatus.MISSED

        with pytest.raises(InsufficientPassesError):
            ledger.use_duty_pass(quest_week, "monday", 3)

        assert quest_week.duty_passes == 0
        assert quest_week.day("monday").status == DayStatus.MISSED

    def test_unknown_day(self, ledger, week_with_pass):
        with pytest.raises(NotFoundError):
            ledger.use_duty_pass(week_with_pass, "sunday", 3)
