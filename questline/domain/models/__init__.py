"""
Domain models package for Questline.

Rich domain models that own the weekly quest state and its invariants,
kept separate from the anemic SQLAlchemy schemas in
`questline.database.models`. Services convert between the two.
"""

from .base import (
    AggregateRoot,
    DomainEvent,
    DomainValidationError,
    Entity,
    validate_non_negative,
    validate_not_empty,
)
from .quest_week import (
    DEFAULT_LIVES,
    DEFAULT_TIMEZONE,
    QUEST_DAYS,
    DayStatus,
    QuestDayState,
    QuestWeek,
    WeeklyProgress,
)

__all__ = [
    "Entity",
    "AggregateRoot",
    "DomainEvent",
    "DomainValidationError",
    "validate_non_negative",
    "validate_not_empty",
    "QUEST_DAYS",
    "DEFAULT_LIVES",
    "DEFAULT_TIMEZONE",
    "DayStatus",
    "QuestDayState",
    "QuestWeek",
    "WeeklyProgress",
]
