"""
Database Retry Policy - Infrastructure Resilience

Purpose
-------
Configurable retry policy for transient failures with exponential backoff
and jitter. Executes async operations with automatic retry semantics for
retriable errors such as lost lock races, stale row versions, connection
drops and deadlocks.

Responsibilities
----------------
- Execute async operations with retry logic
- Classify errors as retriable or non-retriable
- Exponential backoff with jitter
- Structured logs for each attempt

Non-Responsibilities
--------------------
- Transaction management (caller owns transactions)
- Business logic or domain rules

Architecture Notes
------------------
**Backoff Strategy**:
- Formula: min(base * 2^(attempt-1), max) + random(0, jitter)

**Transaction Ownership**:
- Retry the whole operation, including the transaction it opens. Never
  retry inside an open transaction.

Configuration
-------------
`DatabaseRetryConfig.from_config(prefix)` reads ConfigManager keys under
`prefix` (for example `weekly_quest.concurrency`):
- max_attempts (default: 2)
- initial_backoff_ms (default: 25)
- max_backoff_ms (default: 250)
- jitter_ms (default: 25)

Usage Example
-------------
>>> retry_policy = DatabaseRetryPolicy(
>>>     DatabaseRetryConfig.from_config(
>>>         "weekly_quest.concurrency",
>>>         retriable_exceptions=(ConcurrentUpdateError,),
>>>     )
>>> )
>>> await retry_policy.execute(
>>>     lambda: claim_reward(user_id),
>>>     operation_name="weekly_quest.claim_reward",
>>>     context={"user_id": user_id},
>>> )
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError

from questline.core.config.manager import ConfigManager
from questline.core.logging.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


# ============================================================================
# Configuration
# ============================================================================


@dataclass
class DatabaseRetryConfig:
    """
    Configuration for retry behavior.

    Attributes
    ----------
    max_attempts : int
        Maximum number of attempts (including initial attempt).
    initial_backoff_ms : int
        Initial backoff duration in milliseconds.
    max_backoff_ms : int
        Maximum backoff duration in milliseconds.
    jitter_ms : int
        Maximum random jitter to add to backoff in milliseconds.
    retriable_exceptions : Tuple[Type[BaseException], ...]
        Exception types considered retriable.
    """

    max_attempts: int = 2
    initial_backoff_ms: int = 25
    max_backoff_ms: int = 250
    jitter_ms: int = 25
    retriable_exceptions: Tuple[Type[BaseException], ...] = (
        OperationalError,
        DBAPIError,
    )

    @classmethod
    def from_config(
        cls,
        prefix: str,
        retriable_exceptions: Optional[Tuple[Type[BaseException], ...]] = None,
    ) -> DatabaseRetryConfig:
        """
        Build retry configuration from ConfigManager keys under `prefix`.

        Values below 1 (attempts) or 0 (timings) fall back to the defaults.
        """
        defaults = cls()

        def _read(key: str, default: int, minimum: int) -> int:
            raw = ConfigManager.get(f"{prefix}.{key}", default)
            try:
                value = int(raw)
            except (TypeError, ValueError):
                logger.warning(
                    "Invalid retry setting; using default",
                    extra={"config_key": f"{prefix}.{key}", "value": raw},
                )
                return default
            return value if value >= minimum else default

        return cls(
            max_attempts=_read("max_attempts", defaults.max_attempts, 1),
            initial_backoff_ms=_read("initial_backoff_ms", defaults.initial_backoff_ms, 0),
            max_backoff_ms=_read("max_backoff_ms", defaults.max_backoff_ms, 0),
            jitter_ms=_read("jitter_ms", defaults.jitter_ms, 0),
            retriable_exceptions=retriable_exceptions or defaults.retriable_exceptions,
        )


# ============================================================================
# Retry Policy
# ============================================================================


class DatabaseRetryPolicy:
    """
    Execute async operations with retry semantics.

    Public API
    ----------
    - __init__(config) -> Create policy with configuration
    - execute(operation, operation_name, context) -> Execute with retries
    """

    def __init__(self, config: Optional[DatabaseRetryConfig] = None) -> None:
        self._config = config or DatabaseRetryConfig()

    @property
    def config(self) -> DatabaseRetryConfig:
        return self._config

    def _is_retriable(self, exc: BaseException) -> bool:
        return isinstance(exc, self._config.retriable_exceptions)

    def _compute_backoff_ms(self, attempt: int) -> int:
        """
        Compute backoff duration for given attempt with jitter.

        Parameters
        ----------
        attempt : int
            Current attempt number (1-indexed).

        Returns
        -------
        int
            Backoff duration in milliseconds.
        """
        exponent = max(attempt - 1, 0)
        base = self._config.initial_backoff_ms * (2**exponent)
        capped = min(base, self._config.max_backoff_ms)
        jitter = random.randint(0, self._config.jitter_ms) if self._config.jitter_ms > 0 else 0
        return capped + jitter

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        operation_name: str,
        context: Optional[dict[str, Any]] = None,
    ) -> T:
        """
        Execute async operation with retry logic for transient failures.

        Parameters
        ----------
        operation : Callable[[], Awaitable[T]]
            Zero-argument async callable performing the work, including
            opening its own transaction.
        operation_name : str
            Stable identifier for logging (e.g., "weekly_quest.claim_reward").
        context : Optional[dict[str, Any]]
            Additional structured context for logs.

        Returns
        -------
        T
            Result from successful operation execution.

        Raises
        ------
        Exception
            The last exception when retries are exhausted, or the first
            non-retriable exception.
        """
        ctx_extra = context.copy() if context else {}
        ctx_extra["retry_operation"] = operation_name

        attempt = 0

        while True:
            attempt += 1

            try:
                return await operation()

            except Exception as exc:
                error_type = type(exc).__name__
                retriable = self._is_retriable(exc)
                will_retry = retriable and attempt < self._config.max_attempts

                if not retriable:
                    raise

                if not will_retry:
                    logger.warning(
                        "Operation retries exhausted",
                        extra={
                            **ctx_extra,
                            "attempt": attempt,
                            "error_type": error_type,
                            "max_attempts": self._config.max_attempts,
                        },
                    )
                    raise

                backoff_ms = self._compute_backoff_ms(attempt)
                logger.info(
                    "Retriable failure; backing off before retry",
                    extra={
                        **ctx_extra,
                        "attempt": attempt,
                        "error_type": error_type,
                        "backoff_ms": backoff_ms,
                    },
                )
                await asyncio.sleep(backoff_ms / 1000.0)
