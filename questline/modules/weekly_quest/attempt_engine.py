"""
Attempt engine: the lives/question state machine of a quest day.

Day lifecycle
-------------
    not_started / unlocked_via_pass --first answer--> in_progress
    in_progress --last question answered, lives left--> completed
    in_progress --lives reach 0--> failed
    failed --reset_day--> not_started (or unlocked_via_pass)

Answers must follow question order: the submitted question id has to be
the one at `current_question_index`. Grading ignores surrounding
whitespace and letter case.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from questline.domain.models.quest_week import QuestDayState, QuestWeek
from questline.modules.shared.exceptions import InvalidStateError, NotFoundError
from questline.modules.weekly_quest.constants import (
    EVENT_ANSWER_SUBMITTED,
    EVENT_DAY_FAILED,
    EVENT_DAY_RESET,
    QUEST_DAYS,
    DayStatus,
)
from questline.modules.weekly_quest.content import QuestContentProvider
from questline.modules.weekly_quest.ledger import StreakLedger
from questline.modules.weekly_quest.week_calendar import CalendarSnapshot


def normalize_answer(value: str) -> str:
    return value.strip().casefold()


def can_access(state: QuestDayState, calendar: CalendarSnapshot, day: str) -> bool:
    """A day is playable today, or any day once rescued by a duty pass."""
    if state.via_pass:
        return state.status in (DayStatus.UNLOCKED_VIA_PASS, DayStatus.IN_PROGRESS)
    return calendar.is_today(day) and state.status in (
        DayStatus.NOT_STARTED,
        DayStatus.IN_PROGRESS,
    )


def current_question_number(state: QuestDayState, total_questions: int) -> int:
    """1-based number of the next question, capped at the last one."""
    if total_questions <= 0:
        return 0
    return min(state.current_question_index + 1, total_questions)


@dataclass(frozen=True)
class AnswerResult:
    day: str
    question_id: str
    selected_answer: str
    is_correct: bool
    correct_answer: str
    explanation: str
    lives_remaining: int
    score: int
    is_completed: bool
    is_failed: bool
    current_question: int
    total_questions: int
    next_question_id: Optional[str]

    def to_view(self) -> Dict[str, Any]:
        return {
            "isCorrect": self.is_correct,
            "correctAnswer": self.correct_answer,
            "explanation": self.explanation,
            "livesRemaining": self.lives_remaining,
            "score": self.score,
            "isCompleted": self.is_completed,
            "isFailed": self.is_failed,
            "currentQuestion": self.current_question,
            "totalQuestions": self.total_questions,
            "nextQuestionId": self.next_question_id,
        }


class AttemptEngine:
    """
    Applies answers and resets to the day states of a `QuestWeek`.

    Args:
        content: Quest content (questions, answers, lives)
        ledger: Receives day completions
    """

    def __init__(self, content: QuestContentProvider, ledger: StreakLedger) -> None:
        self._content = content
        self._ledger = ledger

    def submit_answer(
        self,
        week: QuestWeek,
        calendar: CalendarSnapshot,
        day: str,
        question_id: str,
        selected_answer: str,
        now: datetime,
    ) -> AnswerResult:
        """
        Grade one answer and advance the day.

        Raises:
            NotFoundError: Unknown day or question
            InvalidStateError: Day not accessible, already finished, or the
                question is not the current one
        """
        if day not in QUEST_DAYS:
            raise NotFoundError("QuestDay", day)
        content = self._content.get_day(day)
        state = week.day(day)

        if calendar.is_future(day) and not state.via_pass:
            raise InvalidStateError("submit_answer", "day is locked", day=day)
        if state.status in (DayStatus.COMPLETED, DayStatus.FAILED, DayStatus.MISSED):
            raise InvalidStateError(
                "submit_answer",
                f"day is {state.status.value}",
                day=day,
                status=state.status.value,
            )
        if not can_access(state, calendar, day):
            raise InvalidStateError(
                "submit_answer",
                "day is only playable on its own date or after a duty pass",
                day=day,
                current_day=calendar.current_day,
            )

        index = content.index_of(question_id)
        if index is None:
            raise NotFoundError("QuestQuestion", question_id)
        if index != state.current_question_index:
            expected = content.question_at(state.current_question_index)
            raise InvalidStateError(
                "submit_answer",
                "questions must be answered in order",
                day=day,
                question_id=question_id,
                expected_question_id=expected.id if expected else None,
            )

        question = content.questions[index]
        if state.status != DayStatus.IN_PROGRESS:
            state.status = DayStatus.IN_PROGRESS
            state.started_at = now

        is_correct = normalize_answer(selected_answer) == normalize_answer(question.correct_answer)
        if is_correct:
            state.score += 1
        else:
            state.lives_remaining = max(0, state.lives_remaining - 1)
        state.current_question_index += 1

        is_failed = state.lives_remaining == 0
        is_completed = not is_failed and state.current_question_index >= content.total_questions

        week.add_domain_event(
            EVENT_ANSWER_SUBMITTED,
            {
                "user_id": week.user_id,
                "day": day,
                "question_id": question_id,
                "is_correct": is_correct,
                "lives_remaining": state.lives_remaining,
                "score": state.score,
            },
        )

        if is_failed:
            state.status = DayStatus.FAILED
            state.ever_failed = True
            state.completed_at = now
            week.add_domain_event(
                EVENT_DAY_FAILED,
                {
                    "user_id": week.user_id,
                    "day": day,
                    "week_start": week.week_start.isoformat(),
                    "score": state.score,
                },
            )
        elif is_completed:
            state.status = DayStatus.COMPLETED
            self._ledger.record_completion(week, day, now)

        next_question = None if (is_failed or is_completed) else content.question_at(
            state.current_question_index
        )

        return AnswerResult(
            day=day,
            question_id=question_id,
            selected_answer=selected_answer,
            is_correct=is_correct,
            correct_answer=question.correct_answer,
            explanation=question.explanation,
            lives_remaining=state.lives_remaining,
            score=state.score,
            is_completed=is_completed,
            is_failed=is_failed,
            current_question=current_question_number(state, content.total_questions),
            total_questions=content.total_questions,
            next_question_id=next_question.id if next_question else None,
        )

    def reset_day(self, week: QuestWeek, day: str) -> QuestDayState:
        """
        Start a failed day over. The streak is untouched.

        Raises:
            NotFoundError: Unknown day
            InvalidStateError: The day is not `failed`
        """
        if day not in QUEST_DAYS:
            raise NotFoundError("QuestDay", day)

        state = week.day(day)
        if state.status != DayStatus.FAILED:
            raise InvalidStateError(
                "reset_day",
                "only a failed day can be reset",
                day=day,
                status=state.status.value,
            )

        state.reset_attempt(self._content.lives_for(day))
        state.status = DayStatus.UNLOCKED_VIA_PASS if state.via_pass else DayStatus.NOT_STARTED

        week.add_domain_event(
            EVENT_DAY_RESET,
            {
                "user_id": week.user_id,
                "day": day,
                "week_start": week.week_start.isoformat(),
                "status": state.status.value,
            },
        )
        return state
