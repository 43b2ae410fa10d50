"""
Base Service Foundation

Purpose
-------
Foundation class for Questline domain services. Services hold the quest
rules, own the transaction boundary of each operation and emit domain
events once their work is committed.

Design Notes
------------
This base class provides:
- Structured logging with operation context
- Safe config access with typed fallbacks
- Event emission helpers
- Input validators that raise `ValidationError`

What this class does NOT do:
- Open sessions (DatabaseService does)
- Serialize concurrent callers (UserLockManager does)
- Contain quest rules

Usage
-----
    class WeeklyQuestService(BaseService):
        def __init__(self, config_manager, event_bus, logger):
            super().__init__(config_manager, event_bus, logger)

        async def claim_reward(self, user_id: str):
            self.validate_user_id(user_id)
            ...
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from logging import Logger

    from questline.core.config.manager import ConfigManager
    from questline.core.event.bus import EventBus


class BaseService:
    """
    Base class for all domain services.

    Args:
        config_manager: Configuration manager (class or instance exposing `get`)
        event_bus: Event bus for cross-module communication
        logger: Structured logger instance
    """

    def __init__(
        self,
        config_manager: type[ConfigManager] | ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        self._config = config_manager
        self._events = event_bus
        self.log = logger

    def get_config(
        self, key: str, default: Optional[Any] = None, required: bool = False
    ) -> Any:
        """
        Safely retrieve a configuration value.

        Raises:
            ConfigurationError: If required=True and key is missing
        """
        from questline.core.exceptions import ConfigurationError

        value = self._config.get(key, default)
        if required and value is None:
            raise ConfigurationError(
                key, f"Required configuration key '{key}' is missing"
            )
        return value

    def get_config_int(self, key: str, default: int, min_val: int = 0) -> int:
        """Read an integer tunable; malformed values fall back to `default`."""
        value = self._config.get(key, default)
        if isinstance(value, bool) or not isinstance(value, int) or value < min_val:
            self.log.warning(
                "Invalid integer config value, using default",
                extra={"config_key": key, "value": value, "default_value": default},
            )
            return default
        return value

    async def emit_event(
        self,
        event_type: str,
        data: Dict[str, Any],
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Emit a domain event for cross-module communication.

        Args:
            event_type: Type/name of the event
            data: Event payload data
            context: Optional additional context (user_id, request_id, ...)
        """
        await self._events.publish(event_type, {**data, **(context or {})})

    def log_operation(self, operation: str, **context: Any) -> None:
        self.log.info(
            f"Service operation: {operation}",
            extra={"operation": operation, **context},
        )

    def log_error(
        self,
        operation: str,
        error: Exception,
        **context: Any,
    ) -> None:
        """
        Log a service error with full context.

        Args:
            operation: Name of the operation that failed
            error: The exception that occurred
            **context: Additional context data
        """
        self.log.error(
            f"Service error during {operation}: {str(error)}",
            extra={
                "operation": operation,
                "error_type": type(error).__name__,
                "error_message": str(error),
                **context,
            },
        )

    def validate_user_id(self, user_id: Any) -> str:
        """
        Validate and normalize a user id.

        Raises:
            ValidationError: If the id is empty or too long
        """
        from .exceptions import ValidationError

        if not isinstance(user_id, str) or not user_id.strip():
            raise ValidationError("user_id", "user_id must be a non-empty string")
        normalized = user_id.strip()
        if len(normalized) > 64:
            raise ValidationError("user_id", "user_id must be at most 64 characters")
        return normalized

    def validate_non_negative_int(self, value: int, name: str) -> None:
        from .exceptions import ValidationError

        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValidationError(
                name, f"{name} must be a non-negative integer, got {value}"
            )

    def validate_non_empty_str(self, value: Any, name: str, max_length: int = 255) -> str:
        """
        Validate a free-text identifier (question id, answer text).

        Raises:
            ValidationError: If value is not a string, is blank or is too long
        """
        from .exceptions import ValidationError

        if not isinstance(value, str) or not value.strip():
            raise ValidationError(name, f"{name} must be a non-empty string")
        if len(value) > max_length:
            raise ValidationError(name, f"{name} must be at most {max_length} characters")
        return value
