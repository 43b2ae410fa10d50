"""Liveness and dependency reachability."""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from questline.core.config.config import Config, LockBackend
from questline.core.database.service import DatabaseService
from questline.core.redis.service import RedisService

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> JSONResponse:
    database_ok = await DatabaseService.health_check()

    checks = {"database": database_ok}
    if Config.LOCK_BACKEND == LockBackend.REDIS.value:
        checks["redis"] = await RedisService.health_check()

    healthy = all(checks.values())
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={
            "status": "ok" if healthy else "degraded",
            "version": Config.APP_VERSION,
            "lockBackend": Config.LOCK_BACKEND,
            "checks": checks,
        },
    )
