"""
Per-user mutation lock for Questline services.

Purpose
-------
Serialize every read-modify-write on one user's quest state. The lock is
held around the whole database transaction so two requests for the same
user never interleave.

Backends
--------
- ``redis``: `RedisService.acquire_lock` (SET NX + token release). Required
  when more than one API process serves the same database.
- ``memory``: one `asyncio.Lock` per key inside this process. For
  single-instance deployments, development and tests.

The backend is chosen by `core.locks.backend` (falls back to
`Config.LOCK_BACKEND`). Unsupported values fall back to ``memory`` with a
warning.

Failure Modes
-------------
- Wait timeout: `ConcurrentUpdateError` (retryable, HTTP 409 + Retry-After)
- Redis unreachable: `LockBackendError` (HTTP 503)
"""

from __future__ import annotations

import asyncio
import weakref
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from questline.core.config.config import Config, LockBackend
from questline.core.config.manager import ConfigManager
from questline.core.logging.logger import get_logger
from questline.core.redis.service import RedisService
from questline.modules.shared.exceptions import ConcurrentUpdateError

logger = get_logger(__name__)


class UserLockManager:
    """
    Hands out the `quest:{user_id}` lock on the configured backend.

    Example:
        >>> locks = UserLockManager()
        >>> async with locks.hold("user-42", operation="claim_reward"):
        ...     ...
    """

    def __init__(
        self,
        backend: Optional[str] = None,
        wait_timeout_seconds: Optional[float] = None,
        lease_seconds: Optional[float] = None,
        key_prefix: Optional[str] = None,
    ) -> None:
        configured = backend or ConfigManager.get("core.locks.backend") or Config.LOCK_BACKEND
        configured = str(configured).strip().lower()
        if configured not in {b.value for b in LockBackend}:
            logger.warning(
                "Unsupported lock backend; defaulting to 'memory'",
                extra={"configured_backend": configured},
            )
            configured = LockBackend.MEMORY.value
        self.backend: str = configured

        self.wait_timeout_seconds: float = float(
            wait_timeout_seconds
            if wait_timeout_seconds is not None
            else ConfigManager.get("core.locks.wait_timeout_seconds", 2.0)
        )
        self.lease_seconds: float = float(
            lease_seconds
            if lease_seconds is not None
            else ConfigManager.get("core.locks.lease_seconds", 10.0)
        )
        self.key_prefix: str = key_prefix or ConfigManager.get("core.locks.key_prefix", "quest")

        self._local_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

        logger.debug(
            "UserLockManager configured",
            extra={
                "backend": self.backend,
                "wait_timeout_seconds": self.wait_timeout_seconds,
                "lease_seconds": self.lease_seconds,
            },
        )

    def key_for(self, user_id: str) -> str:
        return f"{self.key_prefix}:{user_id}"

    @asynccontextmanager
    async def hold(self, user_id: str, operation: str = "mutation") -> AsyncGenerator[None, None]:
        """
        Hold the user's lock for the duration of the block.

        Raises:
            ConcurrentUpdateError: lock not acquired within the wait timeout.
            LockBackendError: the Redis backend is unreachable.
        """
        key = self.key_for(user_id)
        if self.backend == LockBackend.REDIS.value:
            async with self._hold_redis(key, user_id, operation):
                yield
        else:
            async with self._hold_memory(key, user_id, operation):
                yield

    @asynccontextmanager
    async def _hold_memory(
        self, key: str, user_id: str, operation: str
    ) -> AsyncGenerator[None, None]:
        lock = self._local_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._local_locks[key] = lock

        try:
            await asyncio.wait_for(lock.acquire(), timeout=self.wait_timeout_seconds)
        except asyncio.TimeoutError as exc:
            logger.warning(
                "User lock wait timed out",
                extra={"lock_key": key, "lock_operation": operation, "backend": "memory"},
            )
            raise ConcurrentUpdateError(user_id, reason="lock_timeout") from exc

        try:
            yield
        finally:
            lock.release()

    @asynccontextmanager
    async def _hold_redis(
        self, key: str, user_id: str, operation: str
    ) -> AsyncGenerator[None, None]:
        acquired = False
        try:
            async with RedisService.acquire_lock(
                key,
                timeout=self.lease_seconds,
                wait_timeout=self.wait_timeout_seconds,
                operation=operation,
                owner_id=user_id,
            ):
                acquired = True
                yield
        except TimeoutError as exc:
            # A TimeoutError raised by the body itself is not lock contention
            if acquired:
                raise
            raise ConcurrentUpdateError(user_id, reason="lock_timeout") from exc
