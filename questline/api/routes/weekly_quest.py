"""
Weekly quest HTTP routes.

Thin layer: parse the request, call `WeeklyQuestService`, return its view.
Every rule and every error lives in the service; `questline.api.errors`
turns raised exceptions into responses.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from questline.api.dependencies import get_user_id, get_weekly_quest_service
from questline.modules.weekly_quest.service import WeeklyQuestService

router = APIRouter(prefix="/weekly-quest", tags=["weekly-quest"])


class AnswerRequest(BaseModel):
    question_id: str = Field(..., min_length=1, max_length=64, alias="questionId")
    selected_answer: str = Field(..., max_length=512, alias="selectedAnswer")

    model_config = {"populate_by_name": True}


class UseDutyPassRequest(BaseModel):
    day: str = Field(..., min_length=1, max_length=16)


class TimezoneRequest(BaseModel):
    timezone: str = Field(..., min_length=1, max_length=64)


@router.get("/status")
async def get_status(
    user_id: str = Depends(get_user_id),
    service: WeeklyQuestService = Depends(get_weekly_quest_service),
) -> Dict[str, Any]:
    return await service.get_status(user_id)


@router.get("/days/{day}")
async def get_day(
    day: str,
    user_id: str = Depends(get_user_id),
    service: WeeklyQuestService = Depends(get_weekly_quest_service),
) -> Dict[str, Any]:
    return await service.get_day(user_id, day)


@router.post("/days/{day}/answers")
async def submit_answer(
    day: str,
    body: AnswerRequest,
    user_id: str = Depends(get_user_id),
    service: WeeklyQuestService = Depends(get_weekly_quest_service),
) -> Dict[str, Any]:
    return await service.submit_answer(user_id, day, body.question_id, body.selected_answer)


@router.post("/days/{day}/reset")
async def reset_day(
    day: str,
    user_id: str = Depends(get_user_id),
    service: WeeklyQuestService = Depends(get_weekly_quest_service),
) -> Dict[str, Any]:
    return await service.reset_day(user_id, day)


@router.post("/duty-pass/claim")
async def claim_weekly_duty_pass(
    user_id: str = Depends(get_user_id),
    service: WeeklyQuestService = Depends(get_weekly_quest_service),
) -> Dict[str, Any]:
    return await service.claim_weekly_duty_pass(user_id)


@router.post("/duty-pass/use")
async def use_duty_pass(
    body: UseDutyPassRequest,
    user_id: str = Depends(get_user_id),
    service: WeeklyQuestService = Depends(get_weekly_quest_service),
) -> Dict[str, Any]:
    return await service.use_duty_pass(user_id, body.day)


@router.post("/reward/claim")
async def claim_reward(
    user_id: str = Depends(get_user_id),
    service: WeeklyQuestService = Depends(get_weekly_quest_service),
) -> Dict[str, Any]:
    return await service.claim_reward(user_id)


@router.get("/history")
async def get_history(
    limit: Optional[int] = Query(default=None, ge=1),
    user_id: str = Depends(get_user_id),
    service: WeeklyQuestService = Depends(get_weekly_quest_service),
) -> List[Dict[str, Any]]:
    return await service.get_history(user_id, limit)


@router.put("/timezone")
async def set_timezone(
    body: TimezoneRequest,
    user_id: str = Depends(get_user_id),
    service: WeeklyQuestService = Depends(get_weekly_quest_service),
) -> Dict[str, Any]:
    return await service.set_timezone(user_id, body.timezone)
