"""
XP modifier chain.

Purpose
-------
Turn a base XP amount into the credited amount by folding an ordered list
of multipliers over it. The order and rounding rules materially change
the result, so both are explicit, named functions with their own tests.

Rules
-----
- Ordering policy (`order_modifiers`): a stable partition. Every modifier
  with multiplier >= 1 (bonus) precedes every modifier with multiplier < 1
  (penalty); relative order inside each group is the insertion order.
- Rounding (`apply_modifiers`): the running amount is floored to an
  integer after every step, then the result is clamped at zero.

    >>> apply_modifiers(100, [debuff_0_5, streak_1_15]).final_amount
    57        # floor(floor(100 * 1.15) * 0.5)

Multipliers are `Decimal` so `100 * 1.15` is exactly 115.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal, localcontext
from typing import Iterable, List, Sequence, Tuple, Union

from arise.domain.models.base import DomainValidationError

MultiplierLike = Union[Decimal, int, float, str]


class ModifierKind(str, enum.Enum):
    """Kinds of XP modifiers; values match the persisted enum."""

    STREAK_BONUS = "STREAK_BONUS"
    DEBUFF_PENALTY = "DEBUFF_PENALTY"
    WEEKEND_BONUS = "WEEKEND_BONUS"
    TITLE_BONUS = "TITLE_BONUS"
    DUNGEON_MULTIPLIER = "DUNGEON_MULTIPLIER"
    HARD_MODE_BONUS = "HARD_MODE_BONUS"
    EVENT_BONUS = "EVENT_BONUS"


def to_multiplier(value: MultiplierLike) -> Decimal:
    """
    Exact Decimal for a multiplier.

    Floats go through `str()` so 1.15 becomes Decimal('1.15'), not the
    binary approximation.
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise DomainValidationError("multiplier must be numeric", field="multiplier")
    elif isinstance(value, (int, str)):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(str(value))
    else:
        raise DomainValidationError(
            f"multiplier must be numeric, got {type(value).__name__}",
            field="multiplier",
        )

    if not result.is_finite() or result < 0:
        raise DomainValidationError(
            f"multiplier must be a finite non-negative number, got {value}",
            field="multiplier",
        )
    return result


@dataclass(frozen=True)
class XPModifierSpec:
    """One requested modifier before ordering."""

    kind: ModifierKind
    multiplier: Decimal
    description: str

    @classmethod
    def of(
        cls,
        kind: Union[ModifierKind, str],
        multiplier: MultiplierLike,
        description: str,
    ) -> XPModifierSpec:
        try:
            kind = ModifierKind(kind)
        except ValueError as exc:
            raise DomainValidationError(
                f"unknown modifier type: {kind}", field="type"
            ) from exc
        return cls(kind=kind, multiplier=to_multiplier(multiplier), description=description)

    @property
    def is_bonus(self) -> bool:
        return self.multiplier >= 1


@dataclass(frozen=True)
class AppliedModifier:
    """A modifier after ordering, with its position and the running amount."""

    kind: ModifierKind
    multiplier: Decimal
    description: str
    order_index: int
    amount_before: int
    amount_after: int


@dataclass(frozen=True)
class ModifierResult:
    base_amount: int
    final_amount: int
    applied: Tuple[AppliedModifier, ...]


def order_modifiers(modifiers: Iterable[XPModifierSpec]) -> List[XPModifierSpec]:
    """Bonuses before penalties, insertion order kept within each group."""
    items = list(modifiers)
    bonuses = [m for m in items if m.is_bonus]
    penalties = [m for m in items if not m.is_bonus]
    return bonuses + penalties


def floor_step(amount: int, multiplier: Decimal) -> int:
    """floor(amount * multiplier) as an int, exact for arbitrarily large amounts."""
    with localcontext() as ctx:
        # Enough digits that the product is never rounded before the floor
        ctx.prec = max(28, len(str(abs(int(amount)))) + len(multiplier.as_tuple().digits) + 2)
        product = Decimal(amount) * multiplier
        return int(product.to_integral_value(rounding=ROUND_FLOOR))


def apply_modifiers(base_amount: int, modifiers: Sequence[XPModifierSpec]) -> ModifierResult:
    """
    Apply the ordered modifier chain to `base_amount`.

    Negative base amounts flow through the same floors and end at zero.
    """
    amount = int(base_amount)
    applied: List[AppliedModifier] = []

    for index, modifier in enumerate(order_modifiers(modifiers)):
        before = amount
        amount = floor_step(amount, modifier.multiplier)
        applied.append(
            AppliedModifier(
                kind=modifier.kind,
                multiplier=modifier.multiplier,
                description=modifier.description,
                order_index=index,
                amount_before=before,
                amount_after=amount,
            )
        )

    return ModifierResult(
        base_amount=int(base_amount),
        final_amount=max(0, amount),
        applied=tuple(applied),
    )


def replay_modifiers(base_amount: int, stored: Sequence[Tuple[Decimal, str, str]]) -> List[dict]:
    """
    Running amounts for already-ordered stored modifiers.

    `stored` holds `(multiplier, kind, description)` tuples in order index
    order. Used by the event breakdown read model.
    """
    amount = int(base_amount)
    steps: List[dict] = []
    for index, (multiplier, kind, description) in enumerate(stored):
        before = amount
        amount = floor_step(amount, to_multiplier(multiplier))
        steps.append(
            {
                "order": index,
                "type": kind,
                "multiplier": str(multiplier),
                "description": description,
                "amount_before": before,
                "amount_after": amount,
            }
        )
    return steps
