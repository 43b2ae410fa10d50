"""
QuestAnswer: append-only log of every graded submission. Schema only.
"""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from questline.core.database.base import Base, IdMixin, utc_now


class QuestAnswer(Base, IdMixin):
    __tablename__ = "quest_answers"
    __table_args__ = (
        Index("ix_quest_answers_user_week_day", "user_id", "week_start_date", "day"),
    )

    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    week_start_date: Mapped[date] = mapped_column(Date, nullable=False)
    day: Mapped[str] = mapped_column(String(16), nullable=False)
    question_id: Mapped[str] = mapped_column(String(64), nullable=False)
    selected_answer: Mapped[str] = mapped_column(String(512), nullable=False)
    is_correct: Mapped[bool] = mapped_column(Boolean, nullable=False)
    answered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
