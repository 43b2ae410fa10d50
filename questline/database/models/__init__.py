"""
Database Models Package
=======================

SQLAlchemy ORM models for Questline, grouped by domain:

- progression: weekly quest state, archive, duty passes, answer log
- economy: reward claim guard, XP ledger

All models:
- are schema-only, with no quest rules
- use Mapped[] with mapped_column()
- share `questline.core.database.base.Base` so one metadata creates the schema

Importing this package registers every table on `Base.metadata`.
"""

from questline.core.database.base import Base

# Economy models
from .economy import RewardClaim, XPAccount, XPGrant

# Progression models
from .progression import (
    DutyPassClaim,
    DutyPassUnlock,
    QuestAnswer,
    UserQuestWeek,
    WeeklyProgressArchive,
)

__all__ = [
    "Base",
    # Progression
    "UserQuestWeek",
    "WeeklyProgressArchive",
    "DutyPassClaim",
    "DutyPassUnlock",
    "QuestAnswer",
    # Economy
    "RewardClaim",
    "XPAccount",
    "XPGrant",
]
