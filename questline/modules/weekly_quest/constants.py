"""
Weekly quest constants: event names, claim identifiers and config keys.
"""

from questline.domain.models.quest_week import (
    DEFAULT_LIVES,
    DEFAULT_TIMEZONE,
    QUEST_DAYS,
    DayStatus,
)

WEEKEND = "weekend"
REQUIRED_DAYS = len(QUEST_DAYS)

# Statuses a past, unrescued day is converted from when it is detected as missed
MISSABLE_STATUSES = frozenset(
    {DayStatus.NOT_STARTED, DayStatus.IN_PROGRESS, DayStatus.FAILED}
)

# ============================================================================
# Events
# ============================================================================

EVENT_ANSWER_SUBMITTED = "weekly_quest.answer_submitted"
EVENT_DAY_COMPLETED = "weekly_quest.day_completed"
EVENT_DAY_FAILED = "weekly_quest.day_failed"
EVENT_DAY_RESET = "weekly_quest.day_reset"
EVENT_DAY_MISSED = "weekly_quest.day_missed"
EVENT_WEEK_ROLLED_OVER = "weekly_quest.week_rolled_over"
EVENT_DUTY_PASS_CLAIMED = "weekly_quest.duty_pass_claimed"
EVENT_DUTY_PASS_USED = "weekly_quest.duty_pass_used"
EVENT_REWARD_CLAIMED = "weekly_quest.reward_claimed"
EVENT_TIMEZONE_CHANGED = "weekly_quest.timezone_changed"

# ============================================================================
# Claims
# ============================================================================

CLAIM_TYPE_WEEKLY_CHEST = "weekly_chest"
CLAIM_TYPE_DUTY_PASS = "duty_pass"
XP_REASON_WEEKLY_CHEST = "weekly_chest"


def chest_grant_key(user_id: str, week_start_iso: str) -> str:
    return f"{CLAIM_TYPE_WEEKLY_CHEST}:{user_id}:{week_start_iso}"


# ============================================================================
# Config keys
# ============================================================================

CONFIG_TIMEZONE = "weekly_quest.timezone"
CONFIG_DAYS = "weekly_quest.days"
CONFIG_REWARD_BASE_XP = "weekly_quest.reward.base_xp"
CONFIG_REWARD_FLAWLESS_BONUS_XP = "weekly_quest.reward.flawless_bonus_xp"
CONFIG_REWARD_REQUIRE_WEEKEND = "weekly_quest.reward.require_weekend"
CONFIG_CONCURRENCY_PREFIX = "weekly_quest.concurrency"
CONFIG_HISTORY_LIMIT = "weekly_quest.history.max_weeks"

__all__ = [
    "QUEST_DAYS",
    "DEFAULT_LIVES",
    "DEFAULT_TIMEZONE",
    "DayStatus",
    "WEEKEND",
    "REQUIRED_DAYS",
    "MISSABLE_STATUSES",
]
