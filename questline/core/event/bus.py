"""
Questline EventBus: async pub/sub with tiered concurrency.

Purpose
-------
Decouple the quest engine from its side effects (audit trail, analytics,
notifications). Services publish domain events after their transaction
commits; listeners subscribe by exact name or wildcard.

Responsibilities
----------------
- Register/unregister event listeners with priorities
- Publish events to all matching listeners (exact + wildcard)
- Execute listeners according to tiered concurrency:
  * CRITICAL: sequential, ordered, awaited with timeout
  * HIGH: sequential, ordered, awaited with timeout
  * NORMAL: concurrent (gather), awaited
  * LOW: fire-and-forget background tasks
- Error isolation (one failing listener never blocks others)

Design Decisions
----------------
- Instance-based so tests can build their own bus
- Timeouts come from ConfigManager
  (`core.event.listener_timeout.critical_seconds` / `high_seconds`)
- Sync callbacks run in the default executor so they never block the loop
"""

from __future__ import annotations

import asyncio
import inspect
from logging import Logger
from typing import Any, Optional

from questline.core.config.manager import ConfigManager
from questline.core.event.registry import ListenerRegistry
from questline.core.event.types import (
    CallbackType,
    EventListener,
    EventPayload,
    ListenerPriority,
)
from questline.core.logging.logger import get_logger

logger = get_logger(__name__)


class EventBus:
    """
    EventBus with the tiered concurrency model.

    Examples
    --------
    >>> bus = EventBus()
    >>> bus.subscribe("weekly_quest.*", on_quest_event, priority=ListenerPriority.LOW)
    >>> await bus.publish("weekly_quest.reward_claimed", {"user_id": "u-1", "reward_xp": 300})
    """

    def __init__(
        self,
        registry: Optional[ListenerRegistry] = None,
        *,
        critical_timeout_seconds: Optional[float] = None,
        high_timeout_seconds: Optional[float] = None,
    ) -> None:
        self._registry = registry or ListenerRegistry()
        self._background_tasks: set[asyncio.Task[Any]] = set()
        self._critical_timeout_override = critical_timeout_seconds
        self._high_timeout_override = high_timeout_seconds
        self._events_published: dict[str, int] = {}
        self._listener_errors: dict[str, int] = {}

    # ------------------------------------------------------------------ #
    # Configuration
    # ------------------------------------------------------------------ #

    @staticmethod
    def _load_timeout(key: str, override: Optional[float], default: float) -> float:
        """Resolve a timeout: override, then config, then default."""
        if override is not None:
            return float(override)

        value = ConfigManager.get(key, default)
        try:
            return float(value)
        except (TypeError, ValueError):
            logger.warning(
                "Invalid listener timeout in config, using default",
                extra={"config_key": key, "value": value, "default_value": default},
            )
            return float(default)

    @property
    def critical_timeout(self) -> float:
        return self._load_timeout(
            "core.event.listener_timeout.critical_seconds",
            self._critical_timeout_override,
            5.0,
        )

    @property
    def high_timeout(self) -> float:
        return self._load_timeout(
            "core.event.listener_timeout.high_seconds",
            self._high_timeout_override,
            5.0,
        )

    @staticmethod
    def _validate_callback_signature(callback: CallbackType) -> None:
        """
        Ensure callback accepts exactly one parameter.

        Raises
        ------
        ValueError:
            If the callback signature is invalid.
        """
        try:
            sig = inspect.signature(callback)
        except (TypeError, ValueError):
            # Built-ins may not expose a signature
            return

        params = list(sig.parameters.values())
        if len(params) != 1:
            callback_name = getattr(callback, "__qualname__", None) or getattr(
                callback, "__name__", repr(callback)
            )
            raise ValueError(
                f"Event listener must accept exactly 1 parameter (EventPayload), "
                f"got {len(params)} parameters for '{callback_name}'"
            )

    # ------------------------------------------------------------------ #
    # Subscription API
    # ------------------------------------------------------------------ #

    def subscribe(
        self,
        event_name: str,
        callback: CallbackType,
        *,
        priority: ListenerPriority = ListenerPriority.NORMAL,
        identifier: Optional[str] = None,
        once: bool = False,
        allow_duplicates: bool = False,
    ) -> str:
        """
        Subscribe a callback to an event or wildcard pattern.

        Returns
        -------
        str:
            The listener identifier (for unsubscribing later).
        """
        self._validate_callback_signature(callback)

        listener = EventListener.from_callback(
            event_name=event_name,
            callback=callback,
            priority=priority,
            identifier=identifier,
            once=once,
        )

        added = self._registry.add_listener(
            event_name=event_name,
            listener=listener,
            allow_duplicates=allow_duplicates,
        )

        if added:
            logger.debug(
                "EventBus: subscribed listener",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "priority": listener.priority.name,
                    "once": listener.once,
                },
            )
        else:
            logger.warning(
                "EventBus: duplicate listener prevented",
                extra={"event_name": event_name, "listener_id": listener.identifier},
            )

        return listener.identifier

    def unsubscribe(self, event_name: str, identifier: str) -> bool:
        removed = self._registry.remove_listener(event_name=event_name, identifier=identifier)
        if removed:
            logger.debug(
                "EventBus: unsubscribed listener",
                extra={"event_name": event_name, "listener_id": identifier},
            )
        return removed

    def clear(self) -> None:
        """Remove all listeners. Primarily intended for tests."""
        total = self._registry.clear_all()
        logger.info("EventBus: cleared all listeners", extra={"previous_listener_count": total})

    # ------------------------------------------------------------------ #
    # Publish API
    # ------------------------------------------------------------------ #

    async def publish(self, event_name: str, data: EventPayload) -> list[Any]:
        """
        Publish an event to all subscribed listeners.

        Returns
        -------
        list[Any]:
            Results from CRITICAL/HIGH/NORMAL listeners. LOW listeners are
            fire-and-forget and not included. A listener that raised or timed
            out contributes None.
        """
        self._events_published[event_name] = self._events_published.get(event_name, 0) + 1

        listeners = self._registry.extract_listeners_for_event(event_name=event_name)
        if not listeners:
            logger.debug("EventBus: no listeners for event", extra={"event_name": event_name})
            return []

        logger.debug(
            "EventBus: executing listeners",
            extra={
                "event_name": event_name,
                "listener_count": len(listeners),
                "payload_keys": sorted(data),
            },
        )

        critical = [lst for lst in listeners if lst.priority == ListenerPriority.CRITICAL]
        high = [lst for lst in listeners if lst.priority == ListenerPriority.HIGH]
        normal = [lst for lst in listeners if lst.priority == ListenerPriority.NORMAL]
        low = [lst for lst in listeners if lst.priority == ListenerPriority.LOW]

        results: list[Any] = []

        for listener in critical:
            results.append(
                await self._run_with_timeout(listener, event_name, data, self.critical_timeout)
            )

        for listener in high:
            results.append(
                await self._run_with_timeout(listener, event_name, data, self.high_timeout)
            )

        if normal:
            results.extend(
                await asyncio.gather(
                    *[self._run_listener(lst, event_name, data) for lst in normal]
                )
            )

        if low:
            loop = asyncio.get_running_loop()
            for listener in low:
                task = loop.create_task(
                    self._run_listener(listener, event_name, data),
                    name=f"eventbus-low-{event_name}-{listener.identifier}",
                )
                self._background_tasks.add(task)
                task.add_done_callback(self._background_tasks.discard)

        return results

    async def drain(self) -> None:
        """Wait for in-flight LOW listeners (shutdown and tests)."""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    # ------------------------------------------------------------------ #
    # Execution
    # ------------------------------------------------------------------ #

    async def _run_with_timeout(
        self,
        listener: EventListener,
        event_name: str,
        payload: EventPayload,
        timeout: Optional[float],
    ) -> Any:
        if timeout is None or timeout <= 0:
            return await self._run_listener(listener, event_name, payload)

        try:
            return await asyncio.wait_for(
                self._run_listener(listener, event_name, payload),
                timeout=timeout,
            )
        except asyncio.TimeoutError as exc:
            self._handle_listener_error(logger, event_name, listener, exc)
            return None

    async def _run_listener(
        self,
        listener: EventListener,
        event_name: str,
        payload: EventPayload,
    ) -> Any:
        try:
            if inspect.iscoroutinefunction(listener.callback):
                return await listener.callback(payload)

            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, listener.callback, payload)

        except Exception as exc:
            self._handle_listener_error(logger, event_name, listener, exc)
            return None

    def _handle_listener_error(
        self,
        log: Logger,
        event_name: str,
        listener: EventListener,
        exc: Exception,
    ) -> None:
        self._listener_errors[event_name] = self._listener_errors.get(event_name, 0) + 1
        log.error(
            "EventBus listener error",
            extra={
                "event_name": event_name,
                "listener_id": listener.identifier,
                "priority": listener.priority.name,
                "error": str(exc),
                "error_type": type(exc).__name__,
            },
            exc_info=not isinstance(exc, asyncio.TimeoutError),
        )

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    def get_metrics_summary(self) -> dict[str, Any]:
        total = sum(self._events_published.values())
        errors = sum(self._listener_errors.values())
        return {
            "total_events_published": total,
            "events_by_type": dict(self._events_published),
            "total_errors": errors,
            "errors_by_event": dict(self._listener_errors),
            "total_listeners": self._registry.get_total_listener_count(),
        }

    def get_listener_count(self, event_name: Optional[str] = None) -> int:
        if event_name:
            return self._registry.get_listener_count_for_event(event_name)
        return self._registry.get_total_listener_count()

    def get_all_events(self) -> list[str]:
        return self._registry.get_all_event_keys()
