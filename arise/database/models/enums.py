"""
Database Model Enums
====================

Categorical constants for the progression schema. Values are the stored
strings, so renaming a member is a data migration.
"""

from __future__ import annotations

import enum

from arise.domain.progression.modifiers import ModifierKind

# The modifier kinds are a domain concept; the schema stores the same values
ModifierType = ModifierKind


class XPEventSource(str, enum.Enum):
    """What produced an XP event."""

    QUEST_COMPLETION = "QUEST_COMPLETION"
    DUNGEON_CLEAR = "DUNGEON_CLEAR"
    BOSS_DEFEAT = "BOSS_DEFEAT"
    BODY_COMPOSITION = "BODY_COMPOSITION"
    STREAK_MILESTONE = "STREAK_MILESTONE"
    ACHIEVEMENT = "ACHIEVEMENT"
    MANUAL_ADJUSTMENT = "MANUAL_ADJUSTMENT"


class QuestStatus(str, enum.Enum):
    """
    Per-day quest log status.

    ACTIVE -> COMPLETED by progress updates, COMPLETED -> ACTIVE only by
    an explicit reset. FAILED/EXPIRED are set by the daily rollover.
    """

    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    EXPIRED = "EXPIRED"


class QuestType(str, enum.Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    CUSTOM = "CUSTOM"
    BONUS = "BONUS"


class QuestCategory(str, enum.Enum):
    MOVEMENT = "MOVEMENT"
    STRENGTH = "STRENGTH"
    RECOVERY = "RECOVERY"
    NUTRITION = "NUTRITION"
    DISCIPLINE = "DISCIPLINE"
