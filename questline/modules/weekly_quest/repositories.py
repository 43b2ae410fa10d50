"""
Repositories for the weekly quest tables.

Pure data access: no rules, no transactions. Every method takes the
caller's session.
"""

from __future__ import annotations

from datetime import date
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from questline.database.models.economy.reward_claim import RewardClaim
from questline.database.models.progression import (
    DutyPassClaim,
    DutyPassUnlock,
    QuestAnswer,
    UserQuestWeek,
    WeeklyProgressArchive,
)
from questline.modules.shared.base_repository import BaseRepository


class UserQuestWeekRepository(BaseRepository[UserQuestWeek]):
    async def get_for_user(
        self, session: AsyncSession, user_id: str, *, for_update: bool = False
    ) -> Optional[UserQuestWeek]:
        return await self.find_one_where(
            session, UserQuestWeek.user_id == user_id, for_update=for_update
        )


class WeeklyArchiveRepository(BaseRepository[WeeklyProgressArchive]):
    async def list_for_user(
        self, session: AsyncSession, user_id: str, limit: int
    ) -> List[WeeklyProgressArchive]:
        return await self.find_many_where(
            session,
            WeeklyProgressArchive.user_id == user_id,
            order_by=[WeeklyProgressArchive.week_start_date.desc()],
            limit=limit,
        )


class DutyPassClaimRepository(BaseRepository[DutyPassClaim]):
    async def exists_for_week(self, session: AsyncSession, user_id: str, week_start: date) -> bool:
        return await self.exists(
            session,
            DutyPassClaim.user_id == user_id,
            DutyPassClaim.week_start_date == week_start,
        )


class DutyPassUnlockRepository(BaseRepository[DutyPassUnlock]):
    pass


class QuestAnswerRepository(BaseRepository[QuestAnswer]):
    pass


class RewardClaimRepository(BaseRepository[RewardClaim]):
    async def exists_for(
        self, session: AsyncSession, user_id: str, claim_type: str, claim_key: str
    ) -> bool:
        return await self.exists(
            session,
            RewardClaim.user_id == user_id,
            RewardClaim.claim_type == claim_type,
            RewardClaim.claim_key == claim_key,
        )
