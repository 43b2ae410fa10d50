"""
Listener registry and wildcard routing for the EventBus.

Exact subscriptions are stored per event name; wildcard subscriptions
(`weekly_quest.*`, `*.claimed`, `*`) are stored as (pattern, listener)
pairs and matched at publish time. Listeners are kept sorted by
(priority, identifier) so execution order is deterministic.
"""

from __future__ import annotations

from questline.core.event.types import EventListener


def matches(event_name: str, pattern: str) -> bool:
    """
    Check if an event name matches a wildcard pattern.

    Examples
    --------
    >>> matches("weekly_quest.reward_claimed", "weekly_quest.*")
    True
    >>> matches("weekly_quest.reward_claimed", "*.reward_claimed")
    True
    >>> matches("audit.transaction.logged", "weekly_quest.*")
    False
    """
    if pattern == "*":
        return True

    if "*" not in pattern:
        return event_name == pattern

    while "**" in pattern:
        pattern = pattern.replace("**", "*")

    parts = pattern.split("*")

    if parts[0] and not event_name.startswith(parts[0]):
        return False
    if parts[-1] and not event_name.endswith(parts[-1]):
        return False

    # Middle pieces must appear in order after the prefix
    idx = len(parts[0])
    for mid in parts[1:-1]:
        if not mid:
            continue
        next_idx = event_name.find(mid, idx)
        if next_idx == -1:
            return False
        idx = next_idx + len(mid)

    return idx <= len(event_name) - len(parts[-1])


class ListenerRegistry:
    """Stores exact and wildcard listeners; prunes one-shot listeners on extract."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[EventListener]] = {}
        self._wildcard_listeners: list[tuple[str, EventListener]] = []

    @staticmethod
    def _sort_key(listener: EventListener) -> tuple[int, str]:
        return (listener.priority.value, listener.identifier)

    def add_listener(
        self,
        event_name: str,
        listener: EventListener,
        *,
        allow_duplicates: bool,
    ) -> bool:
        """
        Register a listener for an event or wildcard pattern.

        Returns False when prevented as a duplicate (same pattern and
        identifier) and `allow_duplicates` is False.
        """
        if "*" in event_name:
            if not allow_duplicates and any(
                lst.identifier == listener.identifier
                for pattern, lst in self._wildcard_listeners
                if pattern == event_name
            ):
                return False

            self._wildcard_listeners.append((event_name, listener))
            self._wildcard_listeners.sort(key=lambda pl: self._sort_key(pl[1]))
            return True

        listeners = self._listeners.setdefault(event_name, [])
        if not allow_duplicates and any(
            lst.identifier == listener.identifier for lst in listeners
        ):
            return False

        listeners.append(listener)
        listeners.sort(key=self._sort_key)
        return True

    def remove_listener(self, event_name: str, identifier: str) -> bool:
        removed = False

        if event_name in self._listeners:
            before = len(self._listeners[event_name])
            self._listeners[event_name] = [
                lst for lst in self._listeners[event_name] if lst.identifier != identifier
            ]
            removed = len(self._listeners[event_name]) < before
            if not self._listeners[event_name]:
                del self._listeners[event_name]

        before_wc = len(self._wildcard_listeners)
        self._wildcard_listeners = [
            (pattern, lst)
            for pattern, lst in self._wildcard_listeners
            if not (pattern == event_name and lst.identifier == identifier)
        ]
        return removed or len(self._wildcard_listeners) < before_wc

    def clear_all(self) -> int:
        total = self.get_total_listener_count()
        self._listeners.clear()
        self._wildcard_listeners.clear()
        return total

    def extract_listeners_for_event(self, event_name: str) -> list[EventListener]:
        """
        Collect exact and matching wildcard listeners, pruning once=True ones.

        Returns the listeners sorted by (priority, identifier).
        """
        result: list[EventListener] = []

        exact = self._listeners.get(event_name, [])
        kept_exact = [lst for lst in exact if not lst.once]
        result.extend(exact)
        if kept_exact:
            self._listeners[event_name] = kept_exact
        elif event_name in self._listeners:
            del self._listeners[event_name]

        kept_wildcards: list[tuple[str, EventListener]] = []
        for pattern, listener in self._wildcard_listeners:
            if matches(event_name, pattern):
                result.append(listener)
                if listener.once:
                    continue
            kept_wildcards.append((pattern, listener))
        self._wildcard_listeners = kept_wildcards

        result.sort(key=self._sort_key)
        return result

    def get_listener_count_for_event(self, event_name: str) -> int:
        exact = len(self._listeners.get(event_name, []))
        wildcard = sum(1 for pattern, _ in self._wildcard_listeners if matches(event_name, pattern))
        return exact + wildcard

    def get_total_listener_count(self) -> int:
        return sum(len(lst) for lst in self._listeners.values()) + len(self._wildcard_listeners)

    def get_all_event_keys(self) -> list[str]:
        keys = set(self._listeners) | {pattern for pattern, _ in self._wildcard_listeners}
        return sorted(keys)
