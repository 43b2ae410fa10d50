"""Weekly quest progression models."""

from questline.database.models.progression.duty_pass import DutyPassClaim, DutyPassUnlock
from questline.database.models.progression.quest_answer import QuestAnswer
from questline.database.models.progression.quest_week import UserQuestWeek
from questline.database.models.progression.weekly_archive import WeeklyProgressArchive

__all__ = [
    "UserQuestWeek",
    "WeeklyProgressArchive",
    "DutyPassClaim",
    "DutyPassUnlock",
    "QuestAnswer",
]
