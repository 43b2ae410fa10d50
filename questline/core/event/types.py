"""
Core Event Types for the Questline EventBus.

Purpose
-------
Type definitions for the event system: event payloads, listener priorities,
callback types and the listener record.

Priority Levels
---------------
- CRITICAL (0): Sequential, awaited, timeout-protected.
- HIGH (10): Sequential, awaited, timeout-protected.
- NORMAL (50): Concurrent, awaited. Notifications, projections.
- LOW (100): Fire-and-forget. Logging and analytics.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

# Should stay JSON-serializable so audit consumers can persist it as-is
EventPayload = dict[str, Any]


class ListenerPriority(Enum):
    """
    Priority levels for event listeners.

    Lower values run earlier. CRITICAL and HIGH run sequentially with a
    timeout, NORMAL concurrently, LOW in background tasks.
    """

    CRITICAL = 0
    HIGH = 10
    NORMAL = 50
    LOW = 100


CallbackType = Union[
    Callable[[EventPayload], Any],
    Callable[[EventPayload], Awaitable[Any]],
]


@dataclass(slots=True, frozen=True)
class EventListener:
    """
    Represents a registered event listener.

    Attributes
    ----------
    callback:
        Async or sync callable invoked with the event payload.
    priority:
        ListenerPriority determining execution order and concurrency.
    identifier:
        Unique string identifier for deduplication and unsubscription.
    once:
        If True, the listener is removed before its first execution.
    """

    callback: CallbackType
    priority: ListenerPriority
    identifier: str
    once: bool = False

    @classmethod
    def from_callback(
        cls,
        event_name: str,
        callback: CallbackType,
        priority: ListenerPriority,
        identifier: Optional[str],
        once: bool,
    ) -> EventListener:
        """
        Create an EventListener, generating `module.qualname@event` when no
        identifier is given.
        """
        if identifier is None:
            module = getattr(callback, "__module__", "unknown")
            qualname = getattr(
                callback, "__qualname__", getattr(callback, "__name__", "callback")
            )
            identifier = f"{module}.{qualname}@{event_name}"

        return cls(
            callback=callback,
            priority=priority,
            identifier=identifier,
            once=once,
        )
