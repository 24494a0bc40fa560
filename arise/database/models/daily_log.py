"""
DailyLog: per-user, per-day aggregate counters.

Schema only. Written by the quest orchestrator on every completion or
reset and closed by the daily rollover; read by the streak walk.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from sqlalchemy import Boolean, Date, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from arise.core.database.base import Base, IdMixin, TimestampMixin, UTCDateTime, XPAmount


class DailyLog(Base, IdMixin, TimestampMixin):
    """One row per user per calendar day (user's timezone)."""

    __tablename__ = "daily_logs"
    __table_args__ = (
        Index("ux_daily_logs_user_date", "user_id", "log_date", unique=True),
    )

    user_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("users.user_id", ondelete="CASCADE"),
        nullable=False,
    )

    log_date: Mapped[date] = mapped_column(Date, nullable=False)

    core_quests_total: Mapped[int] = mapped_column(nullable=False, default=0)
    core_quests_completed: Mapped[int] = mapped_column(nullable=False, default=0)
    bonus_quests_completed: Mapped[int] = mapped_column(nullable=False, default=0)

    xp_earned: Mapped[int] = mapped_column(XPAmount(), nullable=False, default=0)

    is_perfect_day: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    had_debuff: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    closed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<DailyLog(user_id={self.user_id!r}, date={self.log_date}, "
            f"core={self.core_quests_completed}/{self.core_quests_total})>"
        )
