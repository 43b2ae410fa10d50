"""
UserQuestWeek: the current weekly quest state of one user.
Schema only; rules live in `questline.domain.models.quest_week`.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Boolean, CheckConstraint, Date, DateTime, Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from questline.core.database.base import Base, TimestampMixin

JSONType = JSON().with_variant(JSONB(), "postgresql")


class UserQuestWeek(Base, TimestampMixin):
    """
    One row per user, rolled over in place at each week boundary.

    `version` is the optimistic lock: a flush against a row whose version
    moved underneath raises `StaleDataError`.
    """

    __tablename__ = "user_quest_weeks"
    __table_args__ = (
        CheckConstraint("duty_passes >= 0", name="duty_passes_non_negative"),
        CheckConstraint("current_streak >= 0", name="current_streak_non_negative"),
        CheckConstraint("longest_streak >= current_streak", name="longest_streak_covers_current"),
        CheckConstraint("reward_xp >= 0", name="reward_xp_non_negative"),
    )

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)

    week_start_date: Mapped[date] = mapped_column(Date, nullable=False)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="Asia/Manila")

    # weekday name -> serialized day state
    day_states: Mapped[Dict[str, Dict[str, Any]]] = mapped_column(
        JSONType, nullable=False, default=dict
    )

    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    duty_passes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_duty_pass_claim_week: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    completed_days: Mapped[List[str]] = mapped_column(JSONType, nullable=False, default=list)
    reward_claimed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reward_xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    claimed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        doc="Optimistic locking version",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<UserQuestWeek(user_id={self.user_id!r}, week_start={self.week_start_date}, "
            f"streak={self.current_streak}, passes={self.duty_passes}, version={self.version})>"
        )
