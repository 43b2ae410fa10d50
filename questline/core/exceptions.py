"""
Infrastructure exceptions for Questline.

Purpose
-------
Define the structured exception hierarchy for infrastructure-level concerns:
database failures, configuration errors, lock backend outages and other
engineering-level issues that require technical attention.

Design Notes
------------
- Infrastructure exceptions only (no quest rules). Quest rule violations live
  in `questline.modules.shared.exceptions`.
- All infrastructure exceptions inherit from `QuestlineInfrastructureException`.
- Each exception carries:
  - `message`: human-readable description
  - `details`: additional structured context (dict)
  - `severity`: `ErrorSeverity` value for logging/alerting
  - `is_retryable`: whether the operation can be retried
  - `error_code`: short, stable identifier for programmatic use
- The HTTP layer maps every subclass to a generic 503 body; details are
  logged, never returned to clients.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    """Error severity levels for logging and alerting."""

    DEBUG = "debug"  # Expected, not concerning
    INFO = "info"  # Normal operation (e.g., validation failures)
    WARNING = "warning"  # Concerning but handled (e.g., retryable errors)
    ERROR = "error"  # Unexpected errors requiring attention
    CRITICAL = "critical"  # System-level failures requiring immediate action


class QuestlineInfrastructureException(Exception):
    """
    Base exception for all Questline infrastructure-level errors.

    Args:
        message: Human-readable error message
        details: Additional structured data about the error
        severity: Error severity level for logging handlers
        is_retryable: Whether the operation can be retried
        error_code: Optional code for programmatic handling

    Example:
        >>> raise QuestlineInfrastructureException(
        ...     "Database connection failed",
        ...     {"host": "localhost", "port": 5432}
        ... )
    """

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.ERROR
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


class ConfigurationError(QuestlineInfrastructureException):
    """
    Raised when a configuration key is invalid or missing.

    Args:
        config_key: The configuration key that has issues
        message: Description of the configuration problem
    """

    DEFAULT_SEVERITY = ErrorSeverity.CRITICAL
    DEFAULT_RETRYABLE = False

    def __init__(self, config_key: str, message: str) -> None:
        self.config_key = config_key
        super().__init__(
            f"Configuration error for {config_key}: {message}",
            details={"config_key": config_key, "message": message},
            error_code="CONFIG_ERROR",
        )


class DatabaseError(QuestlineInfrastructureException):
    """
    Raised when database operations fail.

    Args:
        operation: Description of the database operation that failed
        original_error: The underlying database exception
    """

    DEFAULT_SEVERITY = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE = True

    def __init__(self, operation: str, original_error: Exception) -> None:
        self.operation = operation
        self.original_error = original_error
        super().__init__(
            f"Database error during {operation}: {original_error}",
            details={
                "operation": operation,
                "error": str(original_error),
                "error_type": type(original_error).__name__,
            },
            error_code="DATABASE_ERROR",
        )


class DatabaseNotInitializedError(QuestlineInfrastructureException):
    """Raised when a session is requested before `DatabaseService.initialize()`."""

    DEFAULT_SEVERITY = ErrorSeverity.CRITICAL

    def __init__(self) -> None:
        super().__init__(
            "DatabaseService not initialized. Call DatabaseService.initialize() first.",
            error_code="DATABASE_NOT_INITIALIZED",
        )


class DatabaseInitializationError(QuestlineInfrastructureException):
    """Raised when the engine cannot be created or the first connection fails."""

    DEFAULT_SEVERITY = ErrorSeverity.CRITICAL

    def __init__(self, original_error: Exception) -> None:
        self.original_error = original_error
        super().__init__(
            f"Database initialization failed: {original_error}",
            details={"error_type": type(original_error).__name__},
            error_code="DATABASE_INIT_FAILED",
        )


class LockBackendError(QuestlineInfrastructureException):
    """
    Raised when the per-user lock backend itself is unreachable.

    Lock contention is a domain concern (`ConcurrentUpdateError`); this is
    for Redis outages and similar failures.

    Args:
        operation: Lock operation that failed ("acquire", "release")
        original_error: The underlying exception
    """

    DEFAULT_SEVERITY = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE = True

    def __init__(self, operation: str, original_error: Exception) -> None:
        self.operation = operation
        self.original_error = original_error
        super().__init__(
            f"Lock backend error during {operation}: {original_error}",
            details={
                "operation": operation,
                "error": str(original_error),
                "error_type": type(original_error).__name__,
            },
            error_code="LOCK_BACKEND_ERROR",
        )


# Utility functions for exception handling patterns


def is_transient_error(exc: Exception) -> bool:
    """
    Check if an exception represents a transient error that can be retried.

    Args:
        exc: Exception to check

    Returns:
        True if error is retryable, False otherwise.
    """
    if isinstance(exc, QuestlineInfrastructureException):
        return exc.is_retryable
    return False


def get_error_severity(exc: Exception) -> ErrorSeverity:
    if isinstance(exc, QuestlineInfrastructureException):
        return exc.severity
    return ErrorSeverity.ERROR


def should_alert(exc: Exception) -> bool:
    """True if severity is ERROR or CRITICAL."""
    return get_error_severity(exc) in (ErrorSeverity.ERROR, ErrorSeverity.CRITICAL)
