"""
RewardClaim: idempotency guard for reward distribution.

Purpose
-------
Prevents double-claiming with a composite primary key on
(user_id, claim_type, claim_key). The weekly chest records
("weekly_chest", <week start ISO date>); a second insert for the same week
fails with IntegrityError even if two transactions both passed the
application-level check.

Schema Design
-------------
- Composite primary key prevents duplicate claims at DB level
- Indexed by user_id for history queries
- claimed_at for audit trail and retention
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from questline.core.database.base import Base, utc_now


class RewardClaim(Base):
    """
    Tracks reward claims to prevent double-claiming.

    Composite Primary Key: (user_id, claim_type, claim_key)
    """

    __tablename__ = "reward_claims"

    # ========================================================================
    # PRIMARY KEY COMPONENTS
    # ========================================================================

    user_id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        comment="Learner claiming the reward",
    )

    claim_type: Mapped[str] = mapped_column(
        String(50),
        primary_key=True,
        comment="Type of claim (weekly_chest, ...)",
    )

    claim_key: Mapped[str] = mapped_column(
        String(100),
        primary_key=True,
        comment="Unique identifier for this claim (week start date, ...)",
    )

    # ========================================================================
    # AUDIT FIELDS
    # ========================================================================

    reward_xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    claimed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        server_default=func.now(),
    )

    __table_args__ = (
        Index("idx_reward_claims_user", "user_id", "claimed_at"),
        Index("idx_reward_claims_type", "claim_type", "claimed_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<RewardClaim("
            f"user_id={self.user_id!r}, "
            f"claim_type='{self.claim_type}', "
            f"claim_key='{self.claim_key}', "
            f"claimed_at={self.claimed_at}"
            f")>"
        )
