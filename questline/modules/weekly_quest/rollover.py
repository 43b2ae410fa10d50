"""
Weekly rollover resolver.

Runs before every operation. When the calendar has moved past the stored
week it performs exactly one transition, however many weeks were skipped:

- the finished week had all five days and only one week passed: the streak
  carries forward;
- otherwise the streak resets to 0 (`longest_streak` is kept);
- days and weekly progress start fresh; the duty-pass balance and the last
  claim week are kept.

With no week boundary crossed it is a no-op.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Optional, Tuple

from questline.core.logging.logger import get_logger
from questline.domain.models.quest_week import QuestWeek
from questline.modules.weekly_quest.constants import EVENT_WEEK_ROLLED_OVER, REQUIRED_DAYS
from questline.modules.weekly_quest.content import QuestContentProvider
from questline.modules.weekly_quest.week_calendar import CalendarSnapshot

logger = get_logger(__name__)

REASON_STREAK_CARRIED = "streak_carried"
REASON_INCOMPLETE_WEEK = "incomplete_week"
REASON_WEEKS_SKIPPED = "weeks_skipped"


@dataclass(frozen=True)
class RolloverOutcome:
    """What a rollover did; also the source of the archive row."""

    user_id: str
    previous_week_start: date
    new_week_start: date
    weeks_elapsed: int
    completed_days: Tuple[str, ...]
    reward_claimed: bool
    reward_xp: int
    claimed_at: Optional[datetime]
    streak_before: int
    streak_after: int
    reason: str

    @property
    def streak_broken(self) -> bool:
        return self.reason != REASON_STREAK_CARRIED

    def to_view(self) -> Dict[str, Any]:
        return {
            "previousWeekStart": self.previous_week_start.isoformat(),
            "newWeekStart": self.new_week_start.isoformat(),
            "weeksElapsed": self.weeks_elapsed,
            "completedDays": list(self.completed_days),
            "streakBefore": self.streak_before,
            "streakAfter": self.streak_after,
            "streakBroken": self.streak_broken,
            "reason": self.reason,
        }


class RolloverResolver:
    def __init__(self, content: QuestContentProvider) -> None:
        self._content = content

    def apply(self, week: QuestWeek, calendar: CalendarSnapshot) -> Optional[RolloverOutcome]:
        """Roll `week` into the calendar's week if a boundary was crossed."""
        if calendar.weeks_elapsed < 1:
            return None

        completed = week.progress.total_quests_completed
        streak_before = week.current_streak

        if calendar.weeks_elapsed > 1:
            reason = REASON_WEEKS_SKIPPED
        elif completed < REQUIRED_DAYS:
            reason = REASON_INCOMPLETE_WEEK
        else:
            reason = REASON_STREAK_CARRIED

        if reason != REASON_STREAK_CARRIED:
            week.break_streak()

        outcome = RolloverOutcome(
            user_id=week.user_id,
            previous_week_start=week.week_start,
            new_week_start=calendar.week_start,
            weeks_elapsed=calendar.weeks_elapsed,
            completed_days=tuple(week.progress.completed_days),
            reward_claimed=week.progress.reward_claimed,
            reward_xp=week.progress.reward_xp,
            claimed_at=week.progress.claimed_at,
            streak_before=streak_before,
            streak_after=week.current_streak,
            reason=reason,
        )

        week.start_week(calendar.week_start, self._content.lives_by_day())
        week.add_domain_event(
            EVENT_WEEK_ROLLED_OVER,
            {
                "user_id": week.user_id,
                "previous_week_start": outcome.previous_week_start.isoformat(),
                "new_week_start": outcome.new_week_start.isoformat(),
                "weeks_elapsed": outcome.weeks_elapsed,
                "completed_days": list(outcome.completed_days),
                "streak_before": outcome.streak_before,
                "streak_after": outcome.streak_after,
                "reason": reason,
            },
        )

        logger.info(
            "Weekly quest rolled over",
            extra={
                "user_id": week.user_id,
                "previous_week_start": outcome.previous_week_start.isoformat(),
                "new_week_start": outcome.new_week_start.isoformat(),
                "weeks_elapsed": outcome.weeks_elapsed,
                "reason": reason,
            },
        )
        return outcome
