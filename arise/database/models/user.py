"""
User Progression Model
======================

One row per user: cumulative XP, cached level, streak counters, debuff
state and the active title. Schema only; the rules live in the services.

`level` is a cache of the level curve applied to `total_xp` and is only
written together with `total_xp` by the XP ledger.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from arise.core.database.base import Base, IdMixin, TimestampMixin, UTCDateTime, XPAmount


class UserProgression(Base, IdMixin, TimestampMixin):
    """Mutable progression aggregate for a user."""

    __tablename__ = "users"
    __table_args__ = (
        Index("ix_users_level", "level"),
        Index("ix_users_debuff_active_until", "debuff_active_until"),
    )

    user_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
        index=True,
        doc="External user identifier",
    )

    timezone: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        default="UTC",
        doc="IANA timezone used for day boundaries and weekend bonus",
    )

    # ========================================================================
    # LEVEL & EXPERIENCE
    # ========================================================================

    total_xp: Mapped[int] = mapped_column(XPAmount(), nullable=False, default=0)

    level: Mapped[int] = mapped_column(nullable=False, default=1)

    # ========================================================================
    # STREAKS
    # ========================================================================

    current_streak: Mapped[int] = mapped_column(nullable=False, default=0)
    longest_streak: Mapped[int] = mapped_column(nullable=False, default=0)
    perfect_streak: Mapped[int] = mapped_column(nullable=False, default=0)

    # ========================================================================
    # MODIFIER STATE
    # ========================================================================

    debuff_active_until: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime(),
        nullable=True,
    )

    active_title_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<UserProgression(user_id={self.user_id!r}, level={self.level}, "
            f"total_xp={self.total_xp}, streak={self.current_streak})>"
        )
