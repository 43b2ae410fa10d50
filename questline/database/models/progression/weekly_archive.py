"""
WeeklyProgressArchive: one row per finished week, written by rollover.
Schema only.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import Boolean, Date, DateTime, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from questline.core.database.base import Base, IdMixin, utc_now
from questline.database.models.progression.quest_week import JSONType


class WeeklyProgressArchive(Base, IdMixin):
    """Snapshot of a week's progress taken at the moment it rolled over."""

    __tablename__ = "weekly_progress_archive"
    __table_args__ = (
        UniqueConstraint("user_id", "week_start_date", name="uq_weekly_archive_user_week"),
        Index("ix_weekly_archive_user_archived", "user_id", "archived_at"),
    )

    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    week_start_date: Mapped[date] = mapped_column(Date, nullable=False)

    completed_days: Mapped[List[str]] = mapped_column(JSONType, nullable=False, default=list)
    total_quests_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reward_claimed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reward_xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    claimed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    streak_before: Mapped[int] = mapped_column(Integer, nullable=False)
    streak_after: Mapped[int] = mapped_column(Integer, nullable=False)
    weeks_elapsed: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(String(32), nullable=False)

    archived_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
