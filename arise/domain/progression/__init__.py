"""Pure progression rules: level curve, streak tiers, debuff, XP modifiers, hash chain."""

from arise.domain.progression.debuff import DebuffModifier, debuff_modifier, is_debuff_active
from arise.domain.progression.hash_chain import (
    ChainVerification,
    compute_event_hash,
    verify_chain,
)
from arise.domain.progression.level_curve import (
    LevelBounds,
    LevelProgress,
    level_for_xp,
    level_thresholds,
    xp_bounds_for_level,
    xp_to_next_level,
)
from arise.domain.progression.modifiers import (
    AppliedModifier,
    ModifierKind,
    ModifierResult,
    XPModifierSpec,
    apply_modifiers,
    order_modifiers,
)
from arise.domain.progression.streak import (
    DayRecord,
    StreakBonus,
    StreakCount,
    StreakTier,
    count_streak,
    days_until_next_tier,
    streak_bonus,
)

__all__ = [
    "AppliedModifier",
    "ChainVerification",
    "DayRecord",
    "DebuffModifier",
    "LevelBounds",
    "LevelProgress",
    "ModifierKind",
    "ModifierResult",
    "StreakBonus",
    "StreakCount",
    "StreakTier",
    "XPModifierSpec",
    "apply_modifiers",
    "compute_event_hash",
    "count_streak",
    "days_until_next_tier",
    "debuff_modifier",
    "is_debuff_active",
    "level_for_xp",
    "level_thresholds",
    "order_modifiers",
    "streak_bonus",
    "verify_chain",
    "xp_bounds_for_level",
    "xp_to_next_level",
]
