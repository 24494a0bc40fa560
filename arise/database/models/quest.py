"""
Quest Models
============

`QuestTemplate` defines a repeatable objective and its requirement tree
(stored as JSON, parsed at the service boundary). `QuestLog` is a
per-user, per-day instance of a template; at most one exists per
(user, template, date).
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Boolean, Date, Float, ForeignKey, Index, Integer, BigInteger, String, Text
from sqlalchemy import Enum as SAEnum
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from arise.core.database.base import Base, IdMixin, TimestampMixin, UTCDateTime, XPAmount
from arise.database.models.enums import QuestCategory, QuestStatus, QuestType


class QuestTemplate(Base, IdMixin, TimestampMixin):
    """Definition of a quest; one template yields many daily quest logs."""

    __tablename__ = "quest_templates"
    __table_args__ = (
        Index("ix_quest_templates_active_core", "is_active", "is_core"),
    )

    name: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    type: Mapped[QuestType] = mapped_column(
        SAEnum(QuestType, native_enum=False, length=16),
        nullable=False,
        default=QuestType.DAILY,
    )
    category: Mapped[QuestCategory] = mapped_column(
        SAEnum(QuestCategory, native_enum=False, length=16),
        nullable=False,
    )

    requirement: Mapped[Dict[str, Any]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
    )

    base_xp: Mapped[int] = mapped_column(Integer, nullable=False)

    allow_partial: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    min_partial_percent: Mapped[int] = mapped_column(Integer, nullable=False, default=50)

    is_core: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Set for user-created custom quests
    owner_user_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        ForeignKey("users.user_id", ondelete="CASCADE"),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<QuestTemplate(id={self.id}, name={self.name!r}, core={self.is_core})>"


class QuestLog(Base, IdMixin, TimestampMixin):
    """A user's instance of a template for one calendar day."""

    __tablename__ = "quest_logs"
    __table_args__ = (
        Index(
            "ux_quest_logs_user_template_date",
            "user_id",
            "template_id",
            "quest_date",
            unique=True,
        ),
        Index("ix_quest_logs_user_date", "user_id", "quest_date"),
        Index("ix_quest_logs_user_status", "user_id", "status"),
    )

    user_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("users.user_id", ondelete="CASCADE"),
        nullable=False,
    )
    template_id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        ForeignKey("quest_templates.id"),
        nullable=False,
    )

    quest_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[QuestStatus] = mapped_column(
        SAEnum(QuestStatus, native_enum=False, length=16),
        nullable=False,
        default=QuestStatus.ACTIVE,
    )

    current_value: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    target_value: Mapped[float] = mapped_column(Float, nullable=False)
    completion_percent: Mapped[float] = mapped_column(Float, nullable=False, default=0)

    completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)

    # XP actually credited for this completion (after modifiers)
    xp_awarded: Mapped[Optional[int]] = mapped_column(XPAmount(), nullable=True)

    template: Mapped[QuestTemplate] = relationship(lazy="selectin")

    def __repr__(self) -> str:
        return (
            f"<QuestLog(id={self.id}, user_id={self.user_id!r}, "
            f"template_id={self.template_id}, date={self.quest_date}, status={self.status})>"
        )
