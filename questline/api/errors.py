"""
HTTP error mapping.

Domain exceptions become 404 / 422 / 409 responses with the serialized
exception as the body. Infrastructure failures become a generic 503 so
connection strings and driver messages never reach clients.
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from questline.core.exceptions import QuestlineInfrastructureException
from questline.core.logging.logger import get_logger
from questline.modules.shared.exceptions import (
    ConcurrentUpdateError,
    NotFoundError,
    QuestDomainException,
    ValidationError,
)

logger = get_logger(__name__)


def status_code_for(exc: QuestDomainException) -> int:
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, ValidationError):
        return 422
    return 409


async def handle_domain_error(request: Request, exc: QuestDomainException) -> JSONResponse:
    status_code = status_code_for(exc)
    headers = {"Retry-After": "1"} if isinstance(exc, ConcurrentUpdateError) else None

    logger.info(
        "Domain rule rejected request",
        extra={
            "error_code": exc.error_code,
            "status_code": status_code,
            "path": request.url.path,
        },
    )
    return JSONResponse(status_code=status_code, content=exc.to_dict(), headers=headers)


async def handle_infrastructure_error(
    request: Request, exc: QuestlineInfrastructureException
) -> JSONResponse:
    logger.error(
        "Infrastructure failure while serving request",
        extra={
            "error_type": type(exc).__name__,
            "error": exc.message,
            "path": request.url.path,
        },
    )
    return JSONResponse(
        status_code=503,
        content={
            "error_type": "ServiceUnavailable",
            "error_code": "SERVICE_UNAVAILABLE",
            "message": "Service temporarily unavailable",
            "is_retryable": True,
        },
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(QuestDomainException, handle_domain_error)
    app.add_exception_handler(QuestlineInfrastructureException, handle_infrastructure_error)
