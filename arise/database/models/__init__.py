"""
ORM models. Importing this package registers every table on `Base.metadata`.
"""

from arise.database.models.daily_log import DailyLog
from arise.database.models.enums import (
    ModifierType,
    QuestCategory,
    QuestStatus,
    QuestType,
    XPEventSource,
)
from arise.database.models.quest import QuestLog, QuestTemplate
from arise.database.models.user import UserProgression
from arise.database.models.xp_event import XPEvent, XPEventModifier

__all__ = [
    "DailyLog",
    "ModifierType",
    "QuestCategory",
    "QuestLog",
    "QuestStatus",
    "QuestTemplate",
    "QuestType",
    "UserProgression",
    "XPEvent",
    "XPEventModifier",
    "XPEventSource",
]
