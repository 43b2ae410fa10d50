"""
Duty-pass records. Schema only.

- DutyPassClaim: single slot per (user, week). The composite primary key is
  the database backstop against a second weekly claim.
- DutyPassUnlock: one row per pass spent on a missed day.
"""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Date, DateTime, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from questline.core.database.base import Base, IdMixin, utc_now


class DutyPassClaim(Base):
    __tablename__ = "duty_pass_claims"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    week_start_date: Mapped[date] = mapped_column(Date, primary_key=True)
    claimed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    def __repr__(self) -> str:
        return f"<DutyPassClaim(user_id={self.user_id!r}, week_start={self.week_start_date})>"


class DutyPassUnlock(Base, IdMixin):
    __tablename__ = "duty_pass_unlocks"
    __table_args__ = (
        UniqueConstraint("user_id", "week_start_date", "day", name="uq_duty_pass_unlocks_user_week_day"),
    )

    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    week_start_date: Mapped[date] = mapped_column(Date, nullable=False)
    day: Mapped[str] = mapped_column(String(16), nullable=False)
    unlocked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
