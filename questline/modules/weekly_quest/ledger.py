"""
Streak & duty-pass ledger.

Owns every change to `current_streak`, `longest_streak`, `duty_passes` and
`last_duty_pass_claim_week`, plus the conversion of past unfinished days to
`missed`. Operates on an already-locked `QuestWeek`; persistence of the
claim and unlock records is the service's job.

Rules
-----
- Completing a day adds it to the completed set once and extends the streak.
- A day strictly before today (every day on the weekend) that was neither
  completed nor rescued by a pass becomes `missed`. Missing a day does not
  touch the streak; only rollover breaks it.
- One duty pass can be claimed per week, on the weekend only.
- Spending a pass turns a `missed` day into `unlocked_via_pass` with a
  fresh attempt.
"""

from __future__ import annotations

from datetime import datetime
from typing import List

from questline.core.logging.logger import get_logger
from questline.domain.models.quest_week import QuestWeek
from questline.modules.shared.exceptions import (
    AlreadyClaimedError,
    InsufficientPassesError,
    InvalidStateError,
    NotFoundError,
    NotMissedError,
)
from questline.modules.weekly_quest.constants import (
    CLAIM_TYPE_DUTY_PASS,
    EVENT_DAY_COMPLETED,
    EVENT_DAY_MISSED,
    EVENT_DUTY_PASS_CLAIMED,
    EVENT_DUTY_PASS_USED,
    MISSABLE_STATUSES,
    QUEST_DAYS,
    DayStatus,
)
from questline.modules.weekly_quest.week_calendar import CalendarSnapshot

logger = get_logger(__name__)


class StreakLedger:
    """Streak and duty-pass rules applied to a `QuestWeek`."""

    def record_completion(self, week: QuestWeek, day: str, now: datetime) -> bool:
        """Count `day` as completed; idempotent within a week."""
        counted = week.record_completion(day, now)
        if counted:
            week.add_domain_event(
                EVENT_DAY_COMPLETED,
                {
                    "user_id": week.user_id,
                    "day": day,
                    "week_start": week.week_start.isoformat(),
                    "current_streak": week.current_streak,
                    "longest_streak": week.longest_streak,
                    "total_quests_completed": week.progress.total_quests_completed,
                },
            )
        return counted

    def detect_missed_days(self, week: QuestWeek, calendar: CalendarSnapshot) -> List[str]:
        """
        Persistently mark past, unfinished, unrescued days as `missed`.

        Returns the days that changed in this call.
        """
        # A timezone change can put "now" in the week before the stored one
        if calendar.week_start < week.week_start:
            return []

        newly_missed: List[str] = []
        for day in QUEST_DAYS:
            state = week.day(day)
            if not calendar.is_past(day) or state.via_pass:
                continue
            if state.status in MISSABLE_STATUSES:
                state.status = DayStatus.MISSED
                newly_missed.append(day)

        for day in newly_missed:
            week.add_domain_event(
                EVENT_DAY_MISSED,
                {
                    "user_id": week.user_id,
                    "day": day,
                    "week_start": week.week_start.isoformat(),
                },
            )

        if newly_missed:
            logger.debug(
                "Missed days detected",
                extra={"user_id": week.user_id, "days": newly_missed},
            )
        return newly_missed

    def can_claim_weekly_pass(self, week: QuestWeek, calendar: CalendarSnapshot) -> bool:
        return calendar.is_weekend and week.last_duty_pass_claim_week != week.week_start

    def claim_weekly_duty_pass(self, week: QuestWeek, calendar: CalendarSnapshot) -> int:
        """
        Grant this week's duty pass.

        Raises:
            InvalidStateError: Outside the weekend
            AlreadyClaimedError: Already claimed for this week
        """
        if not calendar.is_weekend:
            raise InvalidStateError(
                "claim_weekly_duty_pass",
                "duty passes can only be claimed on the weekend",
                current_day=calendar.current_day,
            )
        if week.last_duty_pass_claim_week == week.week_start:
            raise AlreadyClaimedError(CLAIM_TYPE_DUTY_PASS, week.week_start.isoformat())

        week.add_duty_pass(week.week_start)
        week.add_domain_event(
            EVENT_DUTY_PASS_CLAIMED,
            {
                "user_id": week.user_id,
                "week_start": week.week_start.isoformat(),
                "duty_passes": week.duty_passes,
            },
        )
        return week.duty_passes

    def use_duty_pass(self, week: QuestWeek, day: str, lives: int) -> None:
        """
        Spend one pass to reopen a missed day.

        Raises:
            NotFoundError: Unknown day
            NotMissedError: The day is not `missed`
            InsufficientPassesError: No passes left
        """
        if day not in QUEST_DAYS:
            raise NotFoundError("QuestDay", day)

        state = week.day(day)
        if state.status != DayStatus.MISSED:
            raise NotMissedError(day, state.status.value)
        if week.duty_passes <= 0:
            raise InsufficientPassesError(required=1, current=week.duty_passes)

        week.spend_duty_pass()
        state.reset_attempt(lives)
        state.status = DayStatus.UNLOCKED_VIA_PASS
        state.via_pass = True

        week.add_domain_event(
            EVENT_DUTY_PASS_USED,
            {
                "user_id": week.user_id,
                "day": day,
                "week_start": week.week_start.isoformat(),
                "duty_passes": week.duty_passes,
            },
        )
