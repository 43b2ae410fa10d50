"""
XP ledger models. Schema only.

- XPAccount: running XP balance per user.
- XPGrant: one row per grant, keyed by a caller-supplied idempotency key so
  a replayed grant is a no-op.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from questline.core.database.base import Base, TimestampMixin, utc_now


class XPAccount(Base, TimestampMixin):
    __tablename__ = "xp_accounts"
    __table_args__ = (CheckConstraint("total_xp >= 0", name="total_xp_non_negative"),)

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    total_xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class XPGrant(Base):
    __tablename__ = "xp_grants"
    __table_args__ = (CheckConstraint("amount > 0", name="amount_positive"),)

    idempotency_key: Mapped[str] = mapped_column(String(128), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(String(64), nullable=False)
    granted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    def __repr__(self) -> str:
        return f"<XPGrant(key={self.idempotency_key!r}, user_id={self.user_id!r}, amount={self.amount})>"
