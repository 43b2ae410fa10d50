"""
Questline HTTP application.

Purpose
-------
Build the FastAPI app and own the process lifecycle: logging, YAML config,
database engine, Redis (when it backs the user lock) and the shared
`WeeklyQuestService` instance.

Startup Order
-------------
1. `setup_logging()` and `Config.validate()`
2. `ConfigManager.load()`
3. `DatabaseService.initialize()` (+ `create_schema()` when
   `DATABASE_AUTO_CREATE` is on)
4. `RedisService.initialize()` when `LOCK_BACKEND=redis`
5. service wiring on `app.state`

Shutdown reverses it and drains background event listeners.
"""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request

from questline.api.errors import register_error_handlers
from questline.api.routes import health, weekly_quest
from questline.core.config.config import Config, LockBackend
from questline.core.config.manager import ConfigManager
from questline.core.database.service import DatabaseService
from questline.core.event import event_bus as default_event_bus
from questline.core.event.bus import EventBus
from questline.core.logging.logger import LogContext, get_logger, setup_logging, shutdown_logging
from questline.core.redis.service import RedisService
from questline.modules.shared.user_lock import UserLockManager
from questline.modules.weekly_quest.service import WeeklyQuestService
from questline.modules.weekly_quest.week_calendar import Clock
from questline.modules.xp.ledger_service import XPLedgerService

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-Id"


def build_weekly_quest_service(
    event_bus: EventBus,
    clock: Optional[Clock] = None,
) -> WeeklyQuestService:
    xp_ledger = XPLedgerService(
        ConfigManager, event_bus, get_logger("questline.modules.xp.ledger_service")
    )
    return WeeklyQuestService(
        ConfigManager,
        event_bus,
        get_logger("questline.modules.weekly_quest.service"),
        xp_ledger,
        lock_manager=UserLockManager(),
        clock=clock,
    )


def create_app(
    *,
    database_url: Optional[str] = None,
    config_dir: Optional[Path] = None,
    clock: Optional[Clock] = None,
    event_bus: Optional[EventBus] = None,
) -> FastAPI:
    """
    Create the application.

    Args:
        database_url: Overrides `DATABASE_URL` (tests, containers)
        config_dir: Overrides `CONFIG_DIR` for the YAML tunables
        clock: Time source for the weekly quest calendar
        event_bus: Bus domain events are published on
    """
    bus = event_bus or default_event_bus

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        setup_logging()
        Config.validate()
        ConfigManager.load(config_dir)

        await DatabaseService.initialize(database_url)
        if Config.DATABASE_AUTO_CREATE:
            await DatabaseService.create_schema()

        redis_enabled = Config.LOCK_BACKEND == LockBackend.REDIS.value
        if redis_enabled:
            await RedisService.initialize()

        app.state.weekly_quest_service = build_weekly_quest_service(bus, clock)
        logger.info(
            "Questline API started",
            extra={"environment": Config.ENVIRONMENT, "lock_backend": Config.LOCK_BACKEND},
        )

        try:
            yield
        finally:
            logger.info("Questline API shutting down")
            await bus.drain()
            if redis_enabled:
                await RedisService.shutdown()
            await DatabaseService.shutdown()
            shutdown_logging()

    app = FastAPI(title=Config.APP_NAME, version=Config.APP_VERSION, lifespan=lifespan)

    @app.middleware("http")
    async def bind_log_context(request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:12]
        async with LogContext(
            user_id=request.headers.get("X-User-Id"),
            route=request.url.path,
            method=request.method,
            component="api",
            request_id=request_id,
        ):
            response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    register_error_handlers(app)
    app.include_router(health.router)
    app.include_router(weekly_quest.router)
    return app
