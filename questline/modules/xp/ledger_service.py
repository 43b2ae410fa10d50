"""
XP Ledger Service
=================

Purpose
-------
The XP collaborator of the weekly quest engine: credits XP to a user's
account exactly once per idempotency key, inside the caller's transaction.

Domain
------
- Keep one running balance per user (`XPAccount`)
- Record every grant (`XPGrant`) under a caller-supplied idempotency key
- Treat a replayed key as a no-op returning the original grant

Design Notes
------------
- Never opens its own transaction: the reward claim and the XP credit must
  commit or roll back together, so the caller passes its session.
- The `XPGrant` primary key is the database backstop; a racing insert of
  the same key fails the caller's transaction with IntegrityError.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from questline.core.logging.logger import get_logger
from questline.database.models.economy.xp import XPAccount, XPGrant
from questline.modules.shared.base_repository import BaseRepository
from questline.modules.shared.base_service import BaseService
from questline.modules.shared.exceptions import ValidationError

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from questline.core.config.manager import ConfigManager
    from questline.core.event.bus import EventBus


# ============================================================================
# Repositories
# ============================================================================


class XPAccountRepository(BaseRepository[XPAccount]):
    pass


class XPGrantRepository(BaseRepository[XPGrant]):
    pass


@dataclass(frozen=True)
class XPGrantResult:
    user_id: str
    amount: int
    total_xp: int
    idempotency_key: str
    replayed: bool


# ============================================================================
# XPLedgerService
# ============================================================================


class XPLedgerService(BaseService):
    """
    Idempotent XP crediting.

    Public Methods
    --------------
    - grant_xp() -> Credit XP once per idempotency key
    - get_balance() -> Current XP total of a user
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)

        self._accounts = XPAccountRepository(
            model_class=XPAccount,
            logger=get_logger(f"{__name__}.XPAccountRepository"),
        )
        self._grants = XPGrantRepository(
            model_class=XPGrant,
            logger=get_logger(f"{__name__}.XPGrantRepository"),
        )

    async def grant_xp(
        self,
        user_id: str,
        amount: int,
        reason: str,
        idempotency_key: str,
        session: AsyncSession,
    ) -> XPGrantResult:
        """
        Credit `amount` XP to `user_id` unless `idempotency_key` was used before.

        Args:
            user_id: Learner receiving the XP
            amount: Positive XP amount
            reason: Short machine-readable reason (e.g. "weekly_chest")
            idempotency_key: Unique key of this grant
            session: The caller's open transaction

        Returns:
            XPGrantResult with the resulting balance; `replayed` is True when
            the key already existed and nothing was credited.

        Raises:
            ValidationError: If amount is not positive or ids are empty
        """
        user_id = self.validate_user_id(user_id)
        self.validate_non_negative_int(amount, "amount")
        if amount == 0:
            raise ValidationError("amount", "amount must be positive")
        self.validate_non_empty_str(idempotency_key, "idempotency_key", max_length=128)

        existing = await self._grants.find_one_where(
            session, XPGrant.idempotency_key == idempotency_key
        )
        if existing is not None:
            balance = await self.get_balance(user_id, session)
            self.log.info(
                "XP grant replayed; no credit",
                extra={
                    "user_id": user_id,
                    "idempotency_key": idempotency_key,
                    "amount": existing.amount,
                },
            )
            return XPGrantResult(
                user_id=existing.user_id,
                amount=existing.amount,
                total_xp=balance,
                idempotency_key=idempotency_key,
                replayed=True,
            )

        account = await self._accounts.find_one_where(
            session, XPAccount.user_id == user_id, for_update=True
        )
        if account is None:
            account = self._accounts.add(session, XPAccount(user_id=user_id, total_xp=0))

        self._grants.add(
            session,
            XPGrant(
                idempotency_key=idempotency_key,
                user_id=user_id,
                amount=amount,
                reason=reason,
            ),
        )
        account.total_xp = (account.total_xp or 0) + amount
        await self._accounts.flush(session)

        self.log.info(
            "XP granted",
            extra={
                "user_id": user_id,
                "amount": amount,
                "reason": reason,
                "idempotency_key": idempotency_key,
                "total_xp": account.total_xp,
            },
        )

        return XPGrantResult(
            user_id=user_id,
            amount=amount,
            total_xp=account.total_xp,
            idempotency_key=idempotency_key,
            replayed=False,
        )

    async def get_balance(self, user_id: str, session: AsyncSession) -> int:
        account = await self._accounts.find_one_where(session, XPAccount.user_id == user_id)
        return account.total_xp if account is not None else 0
