"""
Quest status projector.

Read-only composition of calendar, day states, ledger and reward chest into
the camelCase views served to the front end. No side effects: callers run
rollover and miss detection first.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from questline.domain.models.quest_week import QuestWeek
from questline.modules.weekly_quest.attempt_engine import can_access, current_question_number
from questline.modules.weekly_quest.constants import QUEST_DAYS, DayStatus
from questline.modules.weekly_quest.content import QuestContentProvider
from questline.modules.weekly_quest.ledger import StreakLedger
from questline.modules.weekly_quest.reward_chest import ChestState, RewardChestController
from questline.modules.weekly_quest.rollover import RolloverOutcome
from questline.modules.weekly_quest.week_calendar import CalendarSnapshot

LOCKED = "locked"


class QuestStatusProjector:
    def __init__(
        self,
        content: QuestContentProvider,
        ledger: StreakLedger,
        chest: RewardChestController,
    ) -> None:
        self._content = content
        self._ledger = ledger
        self._chest = chest

    def project_day(self, week: QuestWeek, calendar: CalendarSnapshot, day: str) -> Dict[str, Any]:
        state = week.day(day)
        total = self._content.total_questions(day)
        is_locked = calendar.is_future(day) and not state.via_pass

        return {
            "day": day,
            "date": calendar.date_for(day).isoformat(),
            "status": LOCKED if is_locked else state.status.value,
            "canAccess": can_access(state, calendar, day),
            "isMissed": state.status == DayStatus.MISSED,
            "needsDutyPass": state.status == DayStatus.MISSED,
            "canReset": state.status == DayStatus.FAILED,
            "isToday": calendar.is_today(day),
            "livesRemaining": state.lives_remaining,
            "score": state.score,
            "currentQuestion": current_question_number(state, total),
            "totalQuestions": total,
            "unlockedViaPass": state.via_pass,
        }

    def project_day_detail(
        self, week: QuestWeek, calendar: CalendarSnapshot, day: str
    ) -> Dict[str, Any]:
        """Day view plus content; questions are listed only while the day is accessible."""
        view = self.project_day(week, calendar, day)
        content = self._content.get_day(day)
        state = week.day(day)

        view["title"] = content.title
        if view["canAccess"]:
            view["questions"] = [
                q.to_public_dict(number) for number, q in enumerate(content.questions, start=1)
            ]
            next_question = content.question_at(state.current_question_index)
            view["nextQuestionId"] = next_question.id if next_question else None
        else:
            view["questions"] = []
            view["nextQuestionId"] = None
        return view

    def project(
        self,
        week: QuestWeek,
        calendar: CalendarSnapshot,
        rollover: Optional[RolloverOutcome] = None,
    ) -> Dict[str, Any]:
        chest = self._chest.state(week)

        return {
            "userId": week.user_id,
            "weekStartDate": week.week_start.isoformat(),
            "currentDay": calendar.current_day,
            "isWeekend": calendar.is_weekend,
            "timezone": week.timezone_name,
            "days": {day: self.project_day(week, calendar, day) for day in QUEST_DAYS},
            "dutyPasses": week.duty_passes,
            "currentStreak": week.current_streak,
            "longestStreak": week.longest_streak,
            "lastDutyPassClaimWeek": (
                week.last_duty_pass_claim_week.isoformat()
                if week.last_duty_pass_claim_week
                else None
            ),
            "canClaimDutyPass": self._ledger.can_claim_weekly_pass(week, calendar),
            "weeklyProgress": week.progress.to_view(),
            "rewardChest": {
                "state": chest.value,
                "isLocked": chest == ChestState.LOCKED,
                "isReady": chest == ChestState.READY,
                "isClaimed": chest == ChestState.CLAIMED,
                "potentialXP": (
                    week.progress.reward_xp
                    if chest == ChestState.CLAIMED
                    else self._chest.potential_xp(week)
                ),
                "canClaim": self._chest.can_claim(week, calendar),
            },
            "weekReset": rollover is not None,
            "rollover": rollover.to_view() if rollover is not None else None,
        }
