"""
RedisService: async Redis infrastructure for Questline

Purpose
-------
Provide a small, observable Redis abstraction with:
- Singleton async client with connection pooling
- Distributed locking with token-based safety (SET NX + Lua compare-and-delete)
- Health check for the /health endpoint

Responsibilities
----------------
- Initialize and manage a singleton Redis connection pool
- Provide atomic distributed locking via SET NX + Lua unlock
- Translate Redis outages into `LockBackendError`

Non-Responsibilities
--------------------
- Quest rules of any kind
- Database transactions
- Deciding which backend serializes user mutations (UserLockManager)

Configuration Keys
------------------
- core.redis.url                       : str (falls back to Config.REDIS_URL)
- core.redis.socket_timeout            : int (falls back to Config.REDIS_SOCKET_TIMEOUT)
- core.redis.max_connections           : int (falls back to Config.REDIS_MAX_CONNECTIONS)
- core.redis.lock.default_timeout_sec  : float (default 10)
- core.redis.lock.wait_timeout_sec     : float (default 2)
- core.redis.lock.retry_interval_sec   : float (default 0.05)

Architecture Notes
------------------
- Lock safety guaranteed via unique UUID tokens + Lua compare-and-delete
- Lock lease is set in milliseconds so sub-second leases work
- Initialization is idempotent via asyncio.Lock
"""

from __future__ import annotations

import asyncio
import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from redis.asyncio.client import Redis as AsyncRedis
from redis.exceptions import RedisError

from questline.core.config.config import Config
from questline.core.config.manager import ConfigManager
from questline.core.exceptions import LockBackendError
from questline.core.logging.logger import get_logger

logger = get_logger(__name__)


class RedisService:
    """
    Async Redis infrastructure service.

    Provides connection pooling, distributed locking and a health check.
    """

    _client: Optional[AsyncRedis] = None
    _init_lock: asyncio.Lock = asyncio.Lock()
    _is_healthy: bool = False

    # Lua script for atomic lock release (compare token + delete)
    _LUA_UNLOCK_SCRIPT = """
    if redis.call("GET", KEYS[1]) == ARGV[1] then
        return redis.call("DEL", KEYS[1])
    else
        return 0
    end
    """

    # ═══════════════════════════════════════════════════════════════════════
    # LIFECYCLE MANAGEMENT
    # ═══════════════════════════════════════════════════════════════════════

    @classmethod
    async def initialize(cls, url: Optional[str] = None) -> None:
        """
        Initialize the singleton Redis client and verify it with PING.

        Idempotent. Safe to call multiple times.

        Raises
        ------
        LockBackendError
            If the Redis connection cannot be established.
        """
        if cls._client is not None:
            logger.debug("RedisService already initialized, skipping")
            return

        async with cls._init_lock:
            if cls._client is not None:
                return

            url = url or cls._get_config_str("core.redis.url", Config.REDIS_URL)
            socket_timeout = cls._get_config_int(
                "core.redis.socket_timeout",
                Config.REDIS_SOCKET_TIMEOUT,
            )
            max_connections = cls._get_config_int(
                "core.redis.max_connections",
                Config.REDIS_MAX_CONNECTIONS,
            )
            url_scheme = url.split("://")[0] if "://" in url else "unknown"

            start_time = time.monotonic()
            client: AsyncRedis = AsyncRedis.from_url(
                url,
                socket_timeout=socket_timeout,
                decode_responses=True,
                max_connections=max_connections,
                retry_on_timeout=False,
            )

            try:
                await client.ping()
            except (RedisError, OSError) as exc:
                await client.aclose()
                cls._is_healthy = False
                logger.critical(
                    "Failed to initialize RedisService",
                    extra={
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                        "url_scheme": url_scheme,
                    },
                    exc_info=True,
                )
                raise LockBackendError("initialize", exc) from exc

            cls._client = client
            cls._is_healthy = True

            logger.info(
                "RedisService initialized successfully",
                extra={
                    "url_scheme": url_scheme,
                    "socket_timeout_seconds": socket_timeout,
                    "max_connections": max_connections,
                    "initialization_time_ms": round((time.monotonic() - start_time) * 1000, 2),
                },
            )

    @classmethod
    async def shutdown(cls) -> None:
        """Close the Redis client. Safe to call even if not initialized."""
        client = cls._client
        cls._client = None
        cls._is_healthy = False

        if client is None:
            logger.debug("RedisService not initialized, nothing to shutdown")
            return

        await client.aclose()
        logger.info("RedisService shutdown complete")

    @classmethod
    def is_initialized(cls) -> bool:
        return cls._client is not None

    # ═══════════════════════════════════════════════════════════════════════
    # HEALTH & STATUS
    # ═══════════════════════════════════════════════════════════════════════

    @classmethod
    async def health_check(cls) -> bool:
        """
        Verify Redis connectivity via PING command.

        Returns
        -------
        bool
            True if Redis is reachable and responsive, False otherwise.
        """
        if cls._client is None:
            logger.warning("Health check failed: RedisService not initialized")
            cls._is_healthy = False
            return False

        try:
            start_time = time.monotonic()
            pong = await cls._client.ping()
            latency_ms = (time.monotonic() - start_time) * 1000
        except (RedisError, OSError) as exc:
            cls._is_healthy = False
            logger.error(
                "Redis health check failed",
                extra={"error": str(exc), "error_type": type(exc).__name__},
            )
            return False

        cls._is_healthy = bool(pong)
        logger.debug(
            "Redis health check completed",
            extra={"healthy": cls._is_healthy, "latency_ms": round(latency_ms, 2)},
        )
        return cls._is_healthy

    @classmethod
    def is_healthy(cls) -> bool:
        """Return cached health status without performing I/O."""
        return cls._is_healthy

    @classmethod
    def client(cls) -> AsyncRedis:
        """
        Return the singleton Redis client.

        Raises
        ------
        RuntimeError
            If RedisService has not been initialized.
        """
        if cls._client is None:
            raise RuntimeError(
                "RedisService not initialized. "
                "Call `await RedisService.initialize()` first."
            )
        return cls._client

    # ═══════════════════════════════════════════════════════════════════════
    # DISTRIBUTED LOCKING
    # ═══════════════════════════════════════════════════════════════════════

    @classmethod
    @asynccontextmanager
    async def acquire_lock(
        cls,
        key: str,
        timeout: Optional[float] = None,
        wait_timeout: Optional[float] = None,
        retry_interval: Optional[float] = None,
        operation: Optional[str] = None,
        owner_id: Optional[str] = None,
    ) -> AsyncGenerator[None, None]:
        """
        Acquire a distributed lock using Redis SET NX with unique token.

        The lock expires after `timeout` seconds if never released
        (e.g. the process crashed mid-operation).

        Parameters
        ----------
        key : str
            Lock identifier (e.g., "quest:{user_id}").
        timeout : Optional[float]
            Lock lease in seconds (default from config).
        wait_timeout : Optional[float]
            Maximum time to wait for lock acquisition (default from config).
        retry_interval : Optional[float]
            Sleep duration between acquisition attempts (default from config).
        operation : Optional[str]
            Operation name for logs (e.g., "claim_reward").
        owner_id : Optional[str]
            Owner identifier for logs (e.g., the user id).

        Raises
        ------
        TimeoutError
            If lock cannot be acquired within wait_timeout.
        LockBackendError
            If Redis is unreachable while acquiring.

        Example
        -------
        >>> async with RedisService.acquire_lock(f"quest:{user_id}", timeout=10):
        >>>     await service.claim_reward(user_id)
        """
        client = cls.client()

        if timeout is None:
            timeout = cls._get_config_float("core.redis.lock.default_timeout_sec", 10.0)
        if wait_timeout is None:
            wait_timeout = cls._get_config_float("core.redis.lock.wait_timeout_sec", 2.0)
        if retry_interval is None:
            retry_interval = cls._get_config_float("core.redis.lock.retry_interval_sec", 0.05)

        token = str(uuid.uuid4())
        lease_ms = max(1, int(timeout * 1000))
        lock_start_time = time.monotonic()
        deadline = lock_start_time + max(0.0, wait_timeout)
        acquired = False
        hold_start_time: Optional[float] = None

        try:
            while True:
                try:
                    acquired = bool(await client.set(name=key, value=token, nx=True, px=lease_ms))
                except (RedisError, OSError) as exc:
                    logger.error(
                        "Redis lock acquisition error",
                        extra={
                            "lock_key": key,
                            "error": str(exc),
                            "error_type": type(exc).__name__,
                        },
                    )
                    raise LockBackendError("acquire", exc) from exc

                if acquired:
                    hold_start_time = time.monotonic()
                    logger.debug(
                        "Redis lock acquired",
                        extra={
                            "lock_key": key,
                            "lease_ms": lease_ms,
                            "wait_ms": round((hold_start_time - lock_start_time) * 1000, 2),
                            "lock_operation": operation,
                            "owner_id": owner_id,
                        },
                    )
                    break

                if time.monotonic() >= deadline:
                    logger.warning(
                        "Failed to acquire Redis lock within timeout",
                        extra={
                            "lock_key": key,
                            "wait_timeout_seconds": wait_timeout,
                            "actual_wait_ms": round((time.monotonic() - lock_start_time) * 1000, 2),
                        },
                    )
                    raise TimeoutError(
                        f"Failed to acquire Redis lock '{key}' within {wait_timeout}s"
                    )

                await asyncio.sleep(retry_interval)

            yield

        finally:
            if acquired:
                try:
                    released = await client.eval(cls._LUA_UNLOCK_SCRIPT, 1, key, token)
                except (RedisError, OSError) as exc:
                    logger.warning(
                        "Failed to release Redis lock (will expire automatically)",
                        extra={
                            "lock_key": key,
                            "lease_ms": lease_ms,
                            "error": str(exc),
                            "error_type": type(exc).__name__,
                        },
                    )
                else:
                    hold_ms = (
                        round((time.monotonic() - hold_start_time) * 1000, 2)
                        if hold_start_time is not None
                        else None
                    )
                    if released:
                        logger.debug(
                            "Redis lock released",
                            extra={"lock_key": key, "hold_ms": hold_ms},
                        )
                    else:
                        logger.warning(
                            "Redis lock already expired or stolen",
                            extra={"lock_key": key, "hold_ms": hold_ms},
                        )

    # ═══════════════════════════════════════════════════════════════════════
    # CONFIGURATION HELPERS
    # ═══════════════════════════════════════════════════════════════════════

    @staticmethod
    def _get_config_str(key: str, default: str) -> str:
        val = ConfigManager.get(key)
        return val if isinstance(val, str) and val else default

    @staticmethod
    def _get_config_int(key: str, default: int) -> int:
        val = ConfigManager.get(key)
        if isinstance(val, int) and not isinstance(val, bool):
            return val
        return default

    @staticmethod
    def _get_config_float(key: str, default: float) -> float:
        val = ConfigManager.get(key)
        if isinstance(val, (int, float)) and not isinstance(val, bool):
            return float(val)
        return default
