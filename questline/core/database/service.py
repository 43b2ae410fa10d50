"""
Database Service - Core Infrastructure Layer

Purpose
-------
Centralized async database engine and session management for Questline.
Provides atomic transactions, pessimistic locking and health checks for all
database operations.

Responsibilities
----------------
- Initialize and manage a single AsyncEngine instance with connection pooling
- Provide async context managers for read-only sessions and atomic transactions
- Enforce transaction discipline: automatic commit on success, rollback on exception
- Support pessimistic row locking via `with_for_update=True`
- Configure statement timeouts for PostgreSQL connections
- Create the schema from ORM metadata for development and tests

Non-Responsibilities
--------------------
- Retry policies for transient failures (handled by DatabaseRetryPolicy)
- Domain logic, quest rules or event emission

Architecture Notes
------------------
**Transaction Model**:
- `get_transaction()` is the primary interface for all state mutations
- Automatic commit on success, rollback on any exception
- Never manually call `session.commit()` inside service code

**Backends**:
- PostgreSQL via asyncpg in production (`SELECT ... FOR UPDATE`, statement timeout)
- SQLite via aiosqlite for development and tests (row locks are a no-op there;
  the per-user lock and the version column provide serialization)

**Pooling**:
- `NullPool` when ENVIRONMENT=testing, so every session gets a fresh connection
  bound to the running event loop
- `AsyncAdaptedQueuePool` otherwise

Usage Example
-------------
>>> async with DatabaseService.get_transaction() as session:
>>>     week = await session.get(UserQuestWeek, user_id, with_for_update=True)
>>>     week.duty_passes += 1
>>>     # Automatic commit on exit

Read-only access:

>>> async with DatabaseService.get_session() as session:
>>>     result = await session.execute(select(UserQuestWeek))
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Optional, Type, TypeVar

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import AsyncAdaptedQueuePool, NullPool, Pool

from questline.core.config.config import Config
from questline.core.exceptions import (
    DatabaseInitializationError,
    DatabaseNotInitializedError,
)
from questline.core.logging.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


# ============================================================================
# Configuration Snapshot
# ============================================================================


@dataclass(frozen=True)
class _DatabaseConfigSnapshot:
    """
    Immutable snapshot of database configuration.

    Provides a stable configuration view for the lifetime of the engine.
    """

    url: str
    echo: bool
    pool_class: Type[Pool]
    pool_size: int
    max_overflow: int
    pool_recycle: int
    pool_timeout: int
    statement_timeout_ms: int

    @property
    def is_postgres(self) -> bool:
        return self.url.startswith(("postgresql://", "postgresql+asyncpg://"))

    @property
    def url_scheme(self) -> str:
        return self.url.split(":", 1)[0] if ":" in self.url else "unknown"


# ============================================================================
# DatabaseService - Core Infrastructure
# ============================================================================


class DatabaseService:
    """
    Centralized async database engine and session management.

    Public API
    ----------
    **Lifecycle**:
    - initialize() -> Initialize engine and session factory
    - shutdown() -> Dispose engine and cleanup resources
    - create_schema() -> Create all tables from ORM metadata

    **Session Management**:
    - get_session() -> Read-only access
    - get_transaction() -> Atomic write transaction (preferred)

    **Utilities**:
    - health_check() -> Fast database reachability check
    - get_locked_entity() -> Helper for pessimistic row locking
    """

    _engine: Optional[AsyncEngine] = None
    _session_factory: Optional[async_sessionmaker[AsyncSession]] = None
    _config_snapshot: Optional[_DatabaseConfigSnapshot] = None
    _init_lock: asyncio.Lock = asyncio.Lock()

    # ========================================================================
    # Initialization & Shutdown
    # ========================================================================

    @classmethod
    def _build_config_snapshot(cls, url: Optional[str] = None) -> _DatabaseConfigSnapshot:
        """
        Build an immutable configuration snapshot from Config.

        Raises
        ------
        ValueError
            If DATABASE_URL is missing or invalid.
        """
        database_url = url or Config.DATABASE_URL
        if not database_url or not isinstance(database_url, str):
            logger.error("DATABASE_URL is not configured or invalid")
            raise ValueError("DATABASE_URL must be configured as a non-empty string")

        pool_class: Type[Pool] = NullPool if Config.is_testing() else AsyncAdaptedQueuePool

        snapshot = _DatabaseConfigSnapshot(
            url=database_url,
            echo=Config.DATABASE_ECHO,
            pool_class=pool_class,
            pool_size=Config.DATABASE_POOL_SIZE,
            max_overflow=Config.DATABASE_MAX_OVERFLOW,
            pool_recycle=Config.DATABASE_POOL_RECYCLE,
            pool_timeout=Config.DATABASE_POOL_TIMEOUT,
            statement_timeout_ms=Config.DATABASE_STATEMENT_TIMEOUT_MS,
        )

        logger.debug(
            "Database configuration snapshot created",
            extra={
                "url_scheme": snapshot.url_scheme,
                "pool_class": pool_class.__name__,
                "pool_size": snapshot.pool_size,
                "max_overflow": snapshot.max_overflow,
                "statement_timeout_ms": snapshot.statement_timeout_ms,
            },
        )

        return snapshot

    @classmethod
    async def initialize(cls, url: Optional[str] = None) -> None:
        """
        Initialize the database engine and session factory.

        Idempotent: if already initialized, returns immediately.

        Args:
            url: Optional override for `Config.DATABASE_URL` (tests, containers).

        Raises
        ------
        DatabaseInitializationError
            If configuration is invalid or engine creation fails.
        """
        async with cls._init_lock:
            if cls._engine is not None:
                logger.debug("DatabaseService already initialized; skipping")
                return

            logger.info("Initializing DatabaseService")

            try:
                config = cls._build_config_snapshot(url)

                engine_kwargs: dict[str, Any] = {
                    "echo": config.echo,
                    "poolclass": config.pool_class,
                }

                if config.pool_class is AsyncAdaptedQueuePool:
                    engine_kwargs.update(
                        {
                            "pool_size": config.pool_size,
                            "max_overflow": config.max_overflow,
                            "pool_recycle": config.pool_recycle,
                            "pool_timeout": config.pool_timeout,
                            "pool_pre_ping": config.is_postgres,
                        }
                    )

                engine = create_async_engine(config.url, **engine_kwargs)
                cls._engine = engine
                cls._config_snapshot = config
                cls._session_factory = async_sessionmaker(
                    bind=engine,
                    class_=AsyncSession,
                    expire_on_commit=False,
                )

                logger.info(
                    "DatabaseService initialized successfully",
                    extra={
                        "url_scheme": config.url_scheme,
                        "pool_class": config.pool_class.__name__,
                    },
                )

            except Exception as exc:
                logger.error(
                    "DatabaseService initialization failed",
                    extra={"error": str(exc), "error_type": type(exc).__name__},
                    exc_info=True,
                )
                cls._engine = None
                cls._session_factory = None
                cls._config_snapshot = None
                raise DatabaseInitializationError(exc) from exc

    @classmethod
    async def shutdown(cls) -> None:
        """
        Dispose the engine and reset internal state.

        Safe to call multiple times; no-op if already shut down.
        """
        async with cls._init_lock:
            if cls._engine is None:
                logger.debug("DatabaseService not initialized; nothing to shutdown")
                return

            logger.info("Shutting down DatabaseService")

            try:
                await cls._engine.dispose()
                logger.info("DatabaseService shutdown complete")

            except Exception as exc:
                logger.error(
                    "Error during DatabaseService shutdown",
                    extra={"error": str(exc), "error_type": type(exc).__name__},
                    exc_info=True,
                )
                raise

            finally:
                cls._engine = None
                cls._session_factory = None
                cls._config_snapshot = None

    @classmethod
    async def create_schema(cls) -> None:
        """Create every table registered on `Base.metadata` (idempotent)."""
        cls._ensure_initialized()
        assert cls._engine is not None

        # Importing the package registers every model on Base.metadata
        import questline.database.models  # noqa: F401
        from questline.core.database.base import Base

        async with cls._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        logger.info(
            "Database schema ensured",
            extra={"tables": sorted(Base.metadata.tables)},
        )

    @classmethod
    def is_initialized(cls) -> bool:
        return cls._engine is not None

    # ========================================================================
    # Health Check
    # ========================================================================

    @classmethod
    async def health_check(cls) -> bool:
        """
        Perform a lightweight health check by executing `SELECT 1`.

        Returns
        -------
        bool
            True if the database is reachable and responsive, False otherwise.
        """
        if cls._engine is None:
            logger.warning("Health check called on uninitialized DatabaseService")
            return False

        start = time.perf_counter()
        success = False

        try:
            async with cls._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            success = True
            return True

        except (OperationalError, DBAPIError, OSError) as exc:
            logger.warning(
                "Database health check failed",
                extra={"error": str(exc), "error_type": type(exc).__name__},
            )
            return False

        finally:
            duration_ms = (time.perf_counter() - start) * 1000.0
            logger.debug(
                "Database health check completed",
                extra={"success": success, "duration_ms": duration_ms},
            )

    # ========================================================================
    # Session & Transaction Context Managers
    # ========================================================================

    @classmethod
    def _ensure_initialized(cls) -> None:
        if cls._session_factory is None or cls._engine is None:
            logger.error("DatabaseService operation attempted before initialization")
            raise DatabaseNotInitializedError()

    @classmethod
    def _get_config_snapshot(cls) -> _DatabaseConfigSnapshot:
        if cls._config_snapshot is None:
            raise DatabaseNotInitializedError()
        return cls._config_snapshot

    @classmethod
    @asynccontextmanager
    async def get_session(cls) -> AsyncGenerator[AsyncSession, None]:
        """
        Create a database session without automatic commit.

        Use for read-only operations. The session is closed on exit; nothing
        is committed.

        Raises
        ------
        DatabaseNotInitializedError
            If DatabaseService has not been initialized.
        """
        cls._ensure_initialized()
        assert cls._session_factory is not None

        start = time.perf_counter()
        async with cls._session_factory() as session:
            config = cls._get_config_snapshot()

            try:
                if config.is_postgres:
                    await session.execute(
                        text(f"SET LOCAL statement_timeout = {config.statement_timeout_ms}")
                    )

                logger.debug("Database session opened (read-only)")
                yield session

            finally:
                await session.close()
                duration_ms = (time.perf_counter() - start) * 1000.0
                logger.debug("Database session closed", extra={"duration_ms": duration_ms})

    @classmethod
    @asynccontextmanager
    async def get_transaction(cls) -> AsyncGenerator[AsyncSession, None]:
        """
        Create a database session wrapped in an atomic transaction.

        This is the **primary interface for all state mutations**.

        Behavior
        --------
        - On success: commits the transaction
        - On exception: rolls back, logs with error context, re-raises

        Raises
        ------
        DatabaseNotInitializedError
            If DatabaseService has not been initialized.
        OperationalError, DBAPIError
            For database connection or database-level errors.
        Exception
            Any exception raised within the transaction context.
        """
        cls._ensure_initialized()
        assert cls._session_factory is not None

        start = time.perf_counter()
        async with cls._session_factory() as session:
            config = cls._get_config_snapshot()

            try:
                if config.is_postgres:
                    await session.execute(
                        text(f"SET LOCAL statement_timeout = {config.statement_timeout_ms}")
                    )

                logger.debug("Database transaction started")
                yield session

                await session.commit()
                duration_ms = (time.perf_counter() - start) * 1000.0
                logger.debug(
                    "Database transaction committed",
                    extra={"duration_ms": duration_ms},
                )

            except (OperationalError, DBAPIError) as exc:
                await session.rollback()
                duration_ms = (time.perf_counter() - start) * 1000.0
                logger.error(
                    f"{type(exc).__name__} in transaction; rolled back",
                    extra={
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                        "duration_ms": duration_ms,
                    },
                    exc_info=True,
                )
                raise

            except Exception as exc:
                await session.rollback()
                duration_ms = (time.perf_counter() - start) * 1000.0
                # Domain rejections roll back here too; they are not infra failures
                logger.debug(
                    "Transaction rolled back",
                    extra={
                        "error_type": type(exc).__name__,
                        "duration_ms": duration_ms,
                    },
                )
                raise

            finally:
                await session.close()

    # ========================================================================
    # Pessimistic Locking Helper
    # ========================================================================

    @classmethod
    async def get_locked_entity(
        cls,
        session: AsyncSession,
        model: Type[T],
        primary_key: Any,
    ) -> Optional[T]:
        """
        Fetch an entity with a pessimistic row lock (SELECT FOR UPDATE).

        Must be used within a `get_transaction()` context. On SQLite the
        lock clause is omitted by the dialect.
        """
        return await session.get(model, primary_key, with_for_update=True)
