"""
Unit tests for the attempt engine.

Tests grading, lives, day completion and failure, ordering rules, access
gating and failed-day resets on an in-memory QuestWeek.
"""

from datetime import datetime, timezone

import pytest

from questline.modules.shared.exceptions import InvalidStateError, NotFoundError
from questline.modules.weekly_quest.constants import (
    EVENT_ANSWER_SUBMITTED,
    EVENT_DAY_COMPLETED,
    EVENT_DAY_FAILED,
    EVENT_DAY_RESET,
    DayStatus,
)
from questline.modules.weekly_quest.week_calendar import resolve

from tests.conftest import CORRECT_ANSWER, MONDAY_MORNING_UTC, TEST_TIMEZONE, WRONG_ANSWER

NOW = MONDAY_MORNING_UTC


@pytest.fixture
def monday(quest_week):
    return resolve(NOW, TEST_TIMEZONE, quest_week.week_start)


def answer(engine, week, calendar, day, n, value):
    return engine.submit_answer(week, calendar, day, f"{day[:3]}-q{n}", value, NOW)


@pytest.mark.unit
class TestGrading:
    def test_correct_answer_keeps_lives_and_scores(self, engine, quest_week, monday):
        result = answer(engine, quest_week, monday, "monday", 1, CORRECT_ANSWER)

        assert result.is_correct
        assert result.lives_remaining == 3
        assert result.score == 1
        assert result.current_question == 2
        assert result.next_question_id == "mon-q2"
        assert quest_week.day("monday").status == DayStatus.IN_PROGRESS

    def test_answers_are_compared_case_insensitively(self, engine, quest_week, monday):
        result = answer(engine, quest_week, monday, "monday", 1, "  a ")

        assert result.is_correct

    def test_wrong_answer_costs_a_life_and_reveals_answer(self, engine, quest_week, monday):
        result = answer(engine, quest_week, monday, "monday", 1, WRONG_ANSWER)

        assert not result.is_correct
        assert result.lives_remaining == 2
        assert result.correct_answer == CORRECT_ANSWER
        assert result.explanation == "Because 1"

    def test_view_uses_camel_case(self, engine, quest_week, monday):
        view = answer(engine, quest_week, monday, "monday", 1, CORRECT_ANSWER).to_view()

        assert set(view) == {
            "isCorrect",
            "correctAnswer",
            "explanation",
            "livesRemaining",
            "score",
            "isCompleted",
            "isFailed",
            "currentQuestion",
            "totalQuestions",
            "nextQuestionId",
        }


@pytest.mark.unit
class TestDayOutcome:
    def test_three_wrong_answers_fail_the_day(self, engine, quest_week, monday):
        lives = [quest_week.day("monday").lives_remaining]
        for n, value in enumerate([CORRECT_ANSWER, WRONG_ANSWER, WRONG_ANSWER, WRONG_ANSWER], 1):
            lives.append(answer(engine, quest_week, monday, "monday", n, value).lives_remaining)

        state = quest_week.day("monday")
        assert lives == [3, 3, 2, 1, 0]
        assert state.status == DayStatus.FAILED
        assert state.ever_failed
        assert quest_week.progress.completed_days == []
        assert quest_week.current_streak == 0

        names = [e.event_name for e in quest_week.get_pending_events()]
        assert names.count(EVENT_ANSWER_SUBMITTED) == 4
        assert names[-1] == EVENT_DAY_FAILED

    def test_last_question_completes_the_day(self, engine, quest_week, monday):
        for n in range(1, 6):
            result = answer(engine, quest_week, monday, "monday", n, CORRECT_ANSWER)

        assert result.is_completed
        assert result.next_question_id is None
        assert result.current_question == 5
        assert quest_week.day("monday").status == DayStatus.COMPLETED
        assert quest_week.progress.completed_days == ["monday"]
        assert quest_week.current_streak == 1
        assert EVENT_DAY_COMPLETED in [e.event_name for e in quest_week.get_pending_events()]

    def test_completion_with_lives_lost(self, engine, quest_week, monday):
        values = [WRONG_ANSWER, WRONG_ANSWER, CORRECT_ANSWER, CORRECT_ANSWER, CORRECT_ANSWER]
        for n, value in enumerate(values, 1):
            result = answer(engine, quest_week, monday, "monday", n, value)

        assert result.is_completed
        assert result.lives_remaining == 1
        assert result.score == 3


@pytest.mark.unit
class TestRejections:
    def test_future_day_is_locked(self, engine, quest_week, monday):
        with pytest.raises(InvalidStateError) as exc_info:
            answer(engine, quest_week, monday, "friday", 1, CORRECT_ANSWER)

        assert exc_info.value.reason == "day is locked"

    def test_past_day_is_not_playable(self, engine, quest_week):
        wednesday = resolve(
            datetime(2025, 1, 8, 1, 0, tzinfo=timezone.utc), TEST_TIMEZONE, quest_week.week_start
        )

        with pytest.raises(InvalidStateError):
            answer(engine, quest_week, wednesday, "monday", 1, CORRECT_ANSWER)

    def test_out_of_order_question(self, engine, quest_week, monday):
        with pytest.raises(InvalidStateError) as exc_info:
            answer(engine, quest_week, monday, "monday", 2, CORRECT_ANSWER)

        assert exc_info.value.details["expected_question_id"] == "mon-q1"

    def test_unknown_question(self, engine, quest_week, monday):
        with pytest.raises(NotFoundError):
            engine.submit_answer(quest_week, monday, "monday", "nope", CORRECT_ANSWER, NOW)

    def test_unknown_day(self, engine, quest_week, monday):
        with pytest.raises(NotFoundError):
            engine.submit_answer(quest_week, monday, "saturday", "sat-q1", CORRECT_ANSWER, NOW)

    def test_completed_day_rejects_answers(self, engine, quest_week, monday):
        for n in range(1, 6):
            answer(engine, quest_week, monday, "monday", n, CORRECT_ANSWER)

        with pytest.raises(InvalidStateError):
            answer(engine, quest_week, monday, "monday", 1, CORRECT_ANSWER)

    def test_rejection_changes_nothing(self, engine, quest_week, monday):
        before = quest_week.day("monday").to_dict()

        with pytest.raises(InvalidStateError):
            answer(engine, quest_week, monday, "monday", 3, CORRECT_ANSWER)

        assert quest_week.day("monday").to_dict() == before


@pytest.mark.unit
class TestResetDay:
    def fail_monday(self, engine, week, calendar):
        for n in range(1, 4):
            answer(engine, week, calendar, "monday", n, WRONG_ANSWER)

    def test_reset_restores_a_fresh_attempt(self, engine, quest_week, monday):
        self.fail_monday(engine, quest_week, monday)

        state = engine.reset_day(quest_week, "monday")

        assert state.status == DayStatus.NOT_STARTED
        assert state.lives_remaining == 3
        assert state.current_question_index == 0
        assert state.score == 0
        assert state.ever_failed
        assert quest_week.get_pending_events()[-1].event_name == EVENT_DAY_RESET

    def test_reset_keeps_streak(self, engine, quest_week, monday):
        quest_week.record_completion("friday", NOW)
        self.fail_monday(engine, quest_week, monday)

        engine.reset_day(quest_week, "monday")

        assert quest_week.current_streak == 1

    def test_only_failed_days_reset(self, engine, quest_week):
        with pytest.raises(InvalidStateError):
            engine.reset_day(quest_week, "monday")

    def test_reset_of_rescued_day_stays_rescued(self, engine, quest_week, monday):
        self.fail_monday(engine, quest_week, monday)
        quest_week.day("monday").via_pass = True

        state = engine.reset_day(quest_week, "monday")

        assert state.status == DayStatus.UNLOCKED_VIA_PASS
