"""
Weekly quest module: five weekday quest days, streaks, duty passes and the
weekly reward chest.
"""

from questline.modules.weekly_quest.content import QuestContentProvider
from questline.modules.weekly_quest.reward_chest import RewardPolicy
from questline.modules.weekly_quest.service import WeeklyQuestService
from questline.modules.weekly_quest.week_calendar import FixedClock, SystemClock

__all__ = [
    "WeeklyQuestService",
    "QuestContentProvider",
    "RewardPolicy",
    "FixedClock",
    "SystemClock",
]
