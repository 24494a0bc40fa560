"""
Unit Tests for the XP Modifier Chain
====================================

Test Coverage
-------------
- Multiplier coercion (Decimal, int, float via str, rejected inputs)
- Bonus-before-penalty ordering
- Per-step flooring and the zero clamp
- Replaying stored modifiers
"""

from decimal import Decimal

import pytest

from arise.domain.models.base import DomainValidationError
from arise.domain.progression.modifiers import (
    ModifierKind,
    XPModifierSpec,
    apply_modifiers,
    floor_step,
    order_modifiers,
    replay_modifiers,
    to_multiplier,
)


def streak(multiplier="1.15"):
    return XPModifierSpec.of(ModifierKind.STREAK_BONUS, multiplier, "Streak bonus")


def debuff(multiplier="0.5"):
    return XPModifierSpec.of(ModifierKind.DEBUFF_PENALTY, multiplier, "Debuff")


def weekend():
    return XPModifierSpec.of(ModifierKind.WEEKEND_BONUS, "1.1", "Weekend")


@pytest.mark.unit
@pytest.mark.domain
class TestToMultiplier:
    def test_float_is_exact_via_str(self):
        assert to_multiplier(1.15) == Decimal("1.15")

    def test_int_and_string(self):
        assert to_multiplier(2) == Decimal(2)
        assert to_multiplier("0.9") == Decimal("0.9")

    def test_zero_allowed(self):
        assert to_multiplier(0) == Decimal(0)

    @pytest.mark.parametrize("value", [True, -1, "-0.5", float("nan"), float("inf"), None])
    def test_rejected_values(self, value):
        with pytest.raises(DomainValidationError):
            to_multiplier(value)

    def test_unknown_kind_rejected(self):
        with pytest.raises(DomainValidationError) as exc_info:
            XPModifierSpec.of("LUCKY_CHARM", 2, "nope")

        assert exc_info.value.field == "type"


@pytest.mark.unit
@pytest.mark.domain
class TestOrdering:
    def test_bonuses_before_penalties(self):
        ordered = order_modifiers([debuff(), streak(), weekend()])

        assert [m.kind for m in ordered] == [
            ModifierKind.STREAK_BONUS,
            ModifierKind.WEEKEND_BONUS,
            ModifierKind.DEBUFF_PENALTY,
        ]

    def test_multiplier_of_one_counts_as_bonus(self):
        neutral = XPModifierSpec.of(ModifierKind.EVENT_BONUS, 1, "Neutral")

        ordered = order_modifiers([debuff(), neutral])

        assert ordered[0] is neutral


@pytest.mark.unit
@pytest.mark.domain
class TestApplyModifiers:
    def test_no_modifiers(self):
        result = apply_modifiers(100, [])

        assert result.final_amount == 100
        assert result.applied == ()

    def test_bonus_applies_before_penalty(self):
        # Arrange: penalty listed first
        modifiers = [debuff("0.5"), streak("1.15")]

        # Act
        result = apply_modifiers(100, modifiers)

        # Assert: floor(floor(100 * 1.15) * 0.5) = floor(115 * 0.5) = 57
        assert result.final_amount == 57
        assert [(a.amount_before, a.amount_after) for a in result.applied] == [(100, 115), (115, 57)]
        assert [a.order_index for a in result.applied] == [0, 1]

    def test_floors_after_every_step(self):
        result = apply_modifiers(10, [streak("1.15"), weekend()])

        # floor(10 * 1.15) = 11, floor(11 * 1.1) = 12
        assert result.final_amount == 12

    def test_streak_and_debuff_on_hundred(self):
        result = apply_modifiers(100, [streak("1.15"), debuff("0.9")])

        assert result.final_amount == 103

    def test_negative_base_clamped_to_zero(self):
        result = apply_modifiers(-10, [streak()])

        assert result.base_amount == -10
        assert result.final_amount == 0

    def test_zero_multiplier_zeroes_amount(self):
        assert apply_modifiers(500, [debuff(0)]).final_amount == 0

    def test_huge_amounts_stay_exact(self):
        base = 10**30 + 7

        assert floor_step(base, Decimal("1.15")) == (base * 115) // 100


@pytest.mark.unit
@pytest.mark.domain
def test_replay_matches_apply():
    modifiers = [debuff("0.9"), streak("1.15")]
    applied = apply_modifiers(100, modifiers).applied
    stored = [(a.multiplier, a.kind.value, a.description) for a in applied]

    steps = replay_modifiers(100, stored)

    assert [s["amount_after"] for s in steps] == [a.amount_after for a in applied]
    assert steps[0]["type"] == "STREAK_BONUS"
    assert steps[1]["multiplier"] == "0.9"
