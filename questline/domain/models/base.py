"""
Base domain model classes for Questline.

Purpose
-------
Foundational abstractions for rich domain models that own quest rules,
validate their own invariants and record domain events for the service
layer to publish after commit.

Responsibilities
----------------
- Base Entity with identity and equality semantics
- Base AggregateRoot for consistency boundaries
- DomainEvent record for event-driven side effects
- Small validation helpers raising `DomainValidationError`

Non-Responsibilities
--------------------
- Persistence (repositories)
- Database schema (SQLAlchemy models)
- Transactions and locking (service layer)

Usage Example
-------------
>>> class QuestWeek(AggregateRoot):
...     def record_completion(self, day: str) -> None:
...         self.current_streak += 1
...         self.add_domain_event("weekly_quest.day_completed", {
...             "user_id": self.id,
...             "day": day,
...         })
...
>>> for event in week.clear_domain_events():
...     await event_bus.publish(event.event_name, event.payload)
"""

from __future__ import annotations

from abc import ABC
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


# ============================================================================
# DOMAIN EVENTS
# ============================================================================


@dataclass
class DomainEvent:
    """
    A state change that other parts of the system may react to.

    Attributes
    ----------
    event_name : str
        Event name (e.g., "weekly_quest.day_completed")
    payload : Dict[str, Any]
        Event payload with relevant data
    occurred_at : datetime
        When the event occurred (UTC)
    """

    event_name: str
    payload: Dict[str, Any]
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


# ============================================================================
# ENTITY
# ============================================================================


class Entity(ABC):
    """
    Base class for entities with identity.

    Two entities with the same id are the same entity even if their
    attributes differ. Entities collect domain events until the owning
    service drains them.
    """

    def __init__(self, entity_id: str) -> None:
        self._id = entity_id
        self._domain_events: List[DomainEvent] = []

    @property
    def id(self) -> str:
        return self._id

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Entity):
            return False
        return type(self) is type(other) and self.id == other.id

    def __hash__(self) -> int:
        return hash((type(self).__name__, self.id))

    def add_domain_event(self, event_name: str, payload: Dict[str, Any]) -> None:
        """
        Record a domain event to be published after the transaction commits.

        Parameters
        ----------
        event_name : str
            Event name (e.g., "weekly_quest.duty_pass_used")
        payload : Dict[str, Any]
            Event payload with relevant data
        """
        self._domain_events.append(DomainEvent(event_name=event_name, payload=payload))

    def clear_domain_events(self) -> List[DomainEvent]:
        """Return and clear all pending domain events."""
        events = self._domain_events.copy()
        self._domain_events.clear()
        return events

    def get_pending_events(self) -> List[DomainEvent]:
        return self._domain_events.copy()


# ============================================================================
# AGGREGATE ROOT
# ============================================================================


class AggregateRoot(Entity):
    """
    Base class for aggregate roots.

    The aggregate root is the only entry point for changes to the cluster
    of objects it owns; every change happens inside one transaction.
    """

    pass


# ============================================================================
# DOMAIN MODEL VALIDATION
# ============================================================================


class DomainValidationError(Exception):
    """
    Raised when a domain model would enter an impossible state.

    These signal programming or data errors (corrupt stored state), not
    learner-facing rule violations.
    """

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


def validate_non_negative(value: int, field_name: str) -> None:
    """
    Validate that a value is a non-negative integer.

    Raises
    ------
    DomainValidationError
        If value is negative
    """
    if value < 0:
        raise DomainValidationError(
            f"{field_name} must be non-negative, got {value}",
            field=field_name,
        )


def validate_not_empty(value: str, field_name: str) -> None:
    if not value or not value.strip():
        raise DomainValidationError(
            f"{field_name} cannot be empty",
            field=field_name,
        )
