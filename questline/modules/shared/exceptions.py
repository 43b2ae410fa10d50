"""
Domain exceptions for the Questline weekly quest engine.

Purpose
-------
Define the structured, domain-specific exception hierarchy for quest rules.
Services raise these for rule violations (wrong day, already claimed, no
passes left, ...). The HTTP layer translates them into 404/409/422 responses
with the serialized exception as the body.

Design Notes
------------
- All domain exceptions inherit from `QuestDomainException`.
- Each exception carries `message`, `details`, `severity`, `is_retryable`
  and `error_code`, and serializes with `to_dict()`.
- `ConcurrentUpdateError` is the only retryable domain error: the request
  lost a race for the per-user lock or the row version check.
- Severity reuses `ErrorSeverity` from the infrastructure hierarchy so both
  trees log and alert the same way.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from questline.core.exceptions import ErrorSeverity


class QuestDomainException(Exception):
    """
    Base exception for all Questline domain-level errors.

    Args:
        message: Human-readable error message
        details: Additional structured data about the error (dict-like)
        severity: Error severity level for logging handlers
        is_retryable: Whether the operation can be retried
        error_code: Optional code for programmatic handling

    Example:
        >>> raise QuestDomainException(
        ...     "Quest day unavailable",
        ...     {"day": "monday"}
        ... )
    """

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.INFO
    DEFAULT_RETRYABLE: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[ErrorSeverity] = None,
        is_retryable: Optional[bool] = None,
        error_code: Optional[str] = None,
    ) -> None:
        self.message: str = message
        self.details: Dict[str, Any] = details or {}
        self.severity: ErrorSeverity = severity or self.DEFAULT_SEVERITY
        self.is_retryable: bool = (
            is_retryable if is_retryable is not None else self.DEFAULT_RETRYABLE
        )
        self.error_code: str = error_code or self.__class__.__name__
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
        }

    def __str__(self) -> str:
        details_str = f" | Details: {self.details}" if self.details else ""
        return f"[{self.error_code}] {self.message}{details_str}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"details={self.details!r}, "
            f"severity={self.severity.value!r}, "
            f"is_retryable={self.is_retryable!r}"
            ")"
        )


class NotFoundError(QuestDomainException):
    """
    Raised when a requested quest resource does not exist.

    Args:
        resource_type: Type of resource (e.g., "QuestDay", "QuestQuestion")
        identifier: Optional identifier for the missing resource
    """

    def __init__(self, resource_type: str, identifier: Optional[Any] = None) -> None:
        self.resource_type = resource_type
        self.identifier = identifier

        if identifier is not None:
            message = f"{resource_type} not found: {identifier}"
        else:
            message = f"{resource_type} not found"

        super().__init__(
            message,
            details={"resource_type": resource_type, "identifier": identifier},
            error_code=f"{resource_type.upper()}_NOT_FOUND",
        )


class ValidationError(QuestDomainException):
    """
    Raised when caller input is malformed (bad timezone name, empty ids).

    Args:
        field: Name of the field that failed validation
        message: Explanation of why validation failed
    """

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.validation_message = message
        super().__init__(
            f"Validation error for {field}: {message}",
            details={"field": field, "validation_message": message},
            error_code=f"VALIDATION_{field.upper()}",
        )


class InvalidStateError(QuestDomainException):
    """
    Raised when an action is not allowed in the current quest state.

    Args:
        action: The attempted action (e.g., "submit_answer")
        reason: Why it is not allowed right now
        **context: Extra structured context (day, status, ...)

    Example:
        >>> raise InvalidStateError("submit_answer", "Day is locked", day="friday")
    """

    def __init__(self, action: str, reason: str, **context: Any) -> None:
        self.action = action
        self.reason = reason
        super().__init__(
            f"Cannot {action}: {reason}",
            details={"action": action, "reason": reason, **context},
            error_code="INVALID_STATE",
        )


class AlreadyClaimedError(QuestDomainException):
    """
    Raised when a once-per-week claim has already been made.

    Args:
        claim_type: "duty_pass" or "weekly_chest"
        week_start: ISO date of the week the claim belongs to
    """

    def __init__(self, claim_type: str, week_start: str) -> None:
        self.claim_type = claim_type
        self.week_start = week_start
        super().__init__(
            f"{claim_type} already claimed for week {week_start}",
            details={"claim_type": claim_type, "week_start": week_start},
            error_code="ALREADY_CLAIMED",
        )


class InsufficientPassesError(QuestDomainException):
    """Raised when a duty pass is spent with none available."""

    def __init__(self, required: int = 1, current: int = 0) -> None:
        self.required = required
        self.current = current
        super().__init__(
            f"Insufficient duty passes: need {required}, have {current}",
            details={"required": required, "current": current},
            error_code="INSUFFICIENT_PASSES",
        )


class NotMissedError(QuestDomainException):
    """Raised when a duty pass targets a day that is not missed."""

    def __init__(self, day: str, status: str) -> None:
        self.day = day
        self.status = status
        super().__init__(
            f"Day '{day}' is not missed (status: {status})",
            details={"day": day, "status": status},
            error_code="NOT_MISSED",
        )


class NotReadyError(QuestDomainException):
    """
    Raised when the weekly reward chest cannot be opened yet.

    Args:
        completed: Days completed this week
        required: Days required to open the chest
        reason: Optional explanation (e.g. weekend-only policy)
    """

    def __init__(self, completed: int, required: int, reason: Optional[str] = None) -> None:
        self.completed = completed
        self.required = required
        message = reason or f"Reward chest not ready: {completed}/{required} days completed"
        super().__init__(
            message,
            details={"completed": completed, "required": required},
            error_code="NOT_READY",
        )


class ConcurrentUpdateError(QuestDomainException):
    """
    Raised when a mutation loses a race for the user's quest state.

    Clients may retry; the HTTP layer adds `Retry-After`.

    Args:
        user_id: User whose state was contended
        reason: "lock_timeout" or "stale_version"
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = True

    def __init__(self, user_id: str, reason: str = "lock_timeout") -> None:
        self.user_id = user_id
        self.reason = reason
        super().__init__(
            f"Concurrent update for user {user_id}: {reason}",
            details={"user_id": user_id, "reason": reason, "retry_after": 1},
            error_code="CONCURRENT_UPDATE",
        )


# Utility functions for exception handling patterns


def is_transient_error(exc: Exception) -> bool:
    if isinstance(exc, QuestDomainException):
        return exc.is_retryable
    return False


def get_error_severity(exc: Exception) -> ErrorSeverity:
    if isinstance(exc, QuestDomainException):
        return exc.severity
    return ErrorSeverity.ERROR
