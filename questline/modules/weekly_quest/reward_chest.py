"""
Reward chest controller.

Chest state is derived, never stored: `claimed` once the week's reward was
taken, `ready` with all five days completed, `locked` otherwise. The claim
itself is guarded three times: the in-memory check here, the
`RewardClaim` primary key and the XP grant idempotency key.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from questline.core.config.manager import ConfigManager
from questline.domain.models.quest_week import QuestWeek
from questline.modules.shared.exceptions import AlreadyClaimedError, NotReadyError
from questline.modules.weekly_quest.constants import (
    CLAIM_TYPE_WEEKLY_CHEST,
    CONFIG_REWARD_BASE_XP,
    CONFIG_REWARD_FLAWLESS_BONUS_XP,
    CONFIG_REWARD_REQUIRE_WEEKEND,
    EVENT_REWARD_CLAIMED,
    REQUIRED_DAYS,
)
from questline.modules.weekly_quest.week_calendar import CalendarSnapshot


class ChestState(str, Enum):
    LOCKED = "locked"
    READY = "ready"
    CLAIMED = "claimed"


@dataclass(frozen=True)
class RewardPolicy:
    """
    Reward tunables.

    Attributes
    ----------
    base_xp : int
        XP for opening the chest
    flawless_bonus_xp : int
        Extra XP when no day of the week ever failed
    require_weekend : bool
        Only allow the claim on Saturday/Sunday
    """

    base_xp: int = 250
    flawless_bonus_xp: int = 50
    require_weekend: bool = False

    @classmethod
    def from_config(cls, config_manager: Any = ConfigManager) -> RewardPolicy:
        defaults = cls()

        def _xp(key: str, default: int) -> int:
            value = config_manager.get(key, default)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                return default
            return value

        require_weekend = config_manager.get(CONFIG_REWARD_REQUIRE_WEEKEND, defaults.require_weekend)
        return cls(
            base_xp=_xp(CONFIG_REWARD_BASE_XP, defaults.base_xp),
            flawless_bonus_xp=_xp(CONFIG_REWARD_FLAWLESS_BONUS_XP, defaults.flawless_bonus_xp),
            require_weekend=require_weekend if isinstance(require_weekend, bool) else False,
        )


class RewardChestController:
    def __init__(self, policy: RewardPolicy) -> None:
        self.policy = policy

    def state(self, week: QuestWeek) -> ChestState:
        if week.progress.reward_claimed:
            return ChestState.CLAIMED
        if week.progress.total_quests_completed >= REQUIRED_DAYS:
            return ChestState.READY
        return ChestState.LOCKED

    def potential_xp(self, week: QuestWeek) -> int:
        """XP the chest would grant if the current week stays as it is."""
        bonus = 0 if week.has_failed_day else self.policy.flawless_bonus_xp
        return self.policy.base_xp + bonus

    def can_claim(self, week: QuestWeek, calendar: CalendarSnapshot) -> bool:
        if self.state(week) != ChestState.READY:
            return False
        return calendar.is_weekend or not self.policy.require_weekend

    def claim(self, week: QuestWeek, calendar: CalendarSnapshot, now: datetime) -> int:
        """
        Mark the chest claimed and return the XP to grant.

        Raises:
            AlreadyClaimedError: The week's chest was already opened
            NotReadyError: Fewer than five days completed, or a weekday while
                the weekend-only policy is on
        """
        chest = self.state(week)
        if chest == ChestState.CLAIMED:
            raise AlreadyClaimedError(CLAIM_TYPE_WEEKLY_CHEST, week.week_start.isoformat())

        completed = week.progress.total_quests_completed
        if chest != ChestState.READY:
            raise NotReadyError(completed, REQUIRED_DAYS)
        if self.policy.require_weekend and not calendar.is_weekend:
            raise NotReadyError(
                completed,
                REQUIRED_DAYS,
                reason="Reward chest can only be opened on the weekend",
            )

        reward_xp = self.potential_xp(week)
        week.mark_reward_claimed(reward_xp, now)
        week.add_domain_event(
            EVENT_REWARD_CLAIMED,
            {
                "user_id": week.user_id,
                "week_start": week.week_start.isoformat(),
                "reward_xp": reward_xp,
                "flawless": not week.has_failed_day,
                "claimed_at": now.isoformat(),
            },
        )
        return reward_xp
