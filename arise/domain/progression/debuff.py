"""Debuff penalty derived from a `debuff_active_until` timestamp."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from arise.domain.models.base import validate_range

DEFAULT_PENALTY_PERCENT = 10


@dataclass(frozen=True)
class DebuffModifier:
    has_debuff: bool
    multiplier: Decimal
    description: str


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_debuff_active(active_until: Optional[datetime], now: datetime) -> bool:
    """A debuff is active strictly before its expiry instant."""
    if active_until is None:
        return False
    return _as_utc(now) < _as_utc(active_until)


def debuff_modifier(
    active_until: Optional[datetime],
    now: datetime,
    penalty_percent: int = DEFAULT_PENALTY_PERCENT,
) -> DebuffModifier:
    """
    XP multiplier for a user's debuff state.

    Example:
        >>> debuff_modifier(None, now)
        DebuffModifier(has_debuff=False, multiplier=Decimal('1'), description='')
        >>> debuff_modifier(now + timedelta(hours=3), now).multiplier
        Decimal('0.9')

    Raises:
        DomainValidationError: `penalty_percent` is outside [0, 100]
    """
    validate_range(penalty_percent, 0, 100, "penalty_percent")
    if not is_debuff_active(active_until, now):
        return DebuffModifier(has_debuff=False, multiplier=Decimal(1), description="")

    multiplier = (Decimal(100) - Decimal(penalty_percent)) / Decimal(100)
    return DebuffModifier(
        has_debuff=True,
        multiplier=multiplier,
        description=f"Debuff penalty (-{penalty_percent}% XP)",
    )


def hours_remaining(active_until: Optional[datetime], now: datetime) -> Optional[int]:
    """Whole hours left on an active debuff, rounded up; None when inactive."""
    if not is_debuff_active(active_until, now):
        return None
    seconds = (_as_utc(active_until) - _as_utc(now)).total_seconds()
    return int(math.ceil(seconds / 3600))
