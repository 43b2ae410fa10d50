"""
Event System for Questline.

Provides the global singleton EventBus and its type definitions.
"""

from .bus import EventBus
from .types import (
    CallbackType,
    EventListener,
    EventPayload,
    ListenerPriority,
)

# Global runtime singleton EventBus
event_bus = EventBus()

__all__ = [
    "event_bus",
    "EventBus",
    "EventPayload",
    "ListenerPriority",
    "EventListener",
    "CallbackType",
]
