"""FastAPI dependencies: the caller's user id and the shared service."""

from __future__ import annotations

from fastapi import Header, Request

from questline.core.logging.logger import set_log_context
from questline.modules.shared.exceptions import ValidationError
from questline.modules.weekly_quest.service import WeeklyQuestService

USER_ID_HEADER = "X-User-Id"


async def get_user_id(x_user_id: str = Header(default="", alias=USER_ID_HEADER)) -> str:
    user_id = x_user_id.strip()
    if not user_id:
        raise ValidationError("user_id", f"{USER_ID_HEADER} header is required")
    set_log_context(user_id=user_id)
    return user_id


def get_weekly_quest_service(request: Request) -> WeeklyQuestService:
    return request.app.state.weekly_quest_service
