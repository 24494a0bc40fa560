"""
XP Ledger Models
================

`XPEvent` is an append-only ledger row: created once per award or removal,
never updated or deleted. Each row carries the hash of the user's previous
event, forming a per-user chain.

`XPEventModifier` rows are written with their parent event, one per
applied modifier, in application order (`order_index`).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Index, Integer, BigInteger, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from arise.core.database.base import Base, IdMixin, Multiplier, UTCDateTime, XPAmount, utcnow
from arise.database.models.enums import ModifierType, XPEventSource


class XPEvent(Base, IdMixin):
    """Immutable record of one XP-affecting action."""

    __tablename__ = "xp_events"
    __table_args__ = (
        Index("ix_xp_events_user_created", "user_id", "created_at", "id"),
        Index("ix_xp_events_source", "source", "source_id"),
    )

    user_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("users.user_id", ondelete="CASCADE"),
        nullable=False,
    )

    source: Mapped[XPEventSource] = mapped_column(
        SAEnum(XPEventSource, native_enum=False, length=32),
        nullable=False,
    )
    source_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # Pre-modifier and credited amounts; removals store -amount in both
    base_amount: Mapped[int] = mapped_column(XPAmount(), nullable=False)
    final_amount: Mapped[int] = mapped_column(XPAmount(), nullable=False)

    level_before: Mapped[int] = mapped_column(Integer, nullable=False)
    level_after: Mapped[int] = mapped_column(Integer, nullable=False)
    total_xp_before: Mapped[int] = mapped_column(XPAmount(), nullable=False)
    total_xp_after: Mapped[int] = mapped_column(XPAmount(), nullable=False)

    hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    previous_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    description: Mapped[str] = mapped_column(Text, nullable=False)

    # Part of the hash input; set by the ledger, never by the database
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)

    modifiers: Mapped[List["XPEventModifier"]] = relationship(
        back_populates="event",
        order_by="XPEventModifier.order_index",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return (
            f"<XPEvent(id={self.id}, user_id={self.user_id!r}, source={self.source}, "
            f"final_amount={self.final_amount})>"
        )


class XPEventModifier(Base, IdMixin):
    """One multiplier applied to an XP event."""

    __tablename__ = "xp_event_modifiers"
    __table_args__ = (
        Index("ix_xp_event_modifiers_event_order", "event_id", "order_index", unique=True),
    )

    event_id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        ForeignKey("xp_events.id", ondelete="CASCADE"),
        nullable=False,
    )

    type: Mapped[ModifierType] = mapped_column(
        SAEnum(ModifierType, native_enum=False, length=32),
        nullable=False,
    )
    multiplier: Mapped[Decimal] = mapped_column(Multiplier(), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False)

    event: Mapped[XPEvent] = relationship(back_populates="modifiers")
