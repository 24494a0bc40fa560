"""
Event names, payload type and listener records for the EventBus.

Payloads are plain dicts with JSON-friendly values: XP amounts stay ints,
timestamps are ISO strings.

Listener tiers (lower value runs earlier):

    CRITICAL  sequential, awaited, timeout-protected
    HIGH      sequential, awaited, timeout-protected
    NORMAL    concurrent, awaited
    LOW       background task, not awaited
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

EventPayload = dict[str, Any]

CallbackType = Union[
    Callable[[EventPayload], Any],
    Callable[[EventPayload], Awaitable[Any]],
]


class EventName:
    """Every event the progression services publish."""

    XP_AWARDED = "xp.awarded"
    XP_REMOVED = "xp.removed"
    LEVEL_UP = "progression.level_up"
    LEVEL_DOWN = "progression.level_down"
    STREAK_UPDATED = "streak.updated"
    DEBUFF_APPLIED = "debuff.applied"
    QUEST_ACTIVATED = "quest.activated"
    QUEST_COMPLETED = "quest.completed"
    QUEST_RESET = "quest.reset"
    QUEST_REMOVED = "quest.removed"
    DAY_CLOSED = "day.closed"
    USER_REGISTERED = "user.registered"
    TITLE_CHANGED = "player.title_changed"


class ListenerPriority(Enum):
    CRITICAL = 0
    HIGH = 10
    NORMAL = 50
    LOW = 100


@dataclass(slots=True, frozen=True)
class EventListener:
    callback: CallbackType
    priority: ListenerPriority
    identifier: str
    once: bool = False

    @classmethod
    def from_callback(
        cls,
        event_name: str,
        callback: CallbackType,
        priority: ListenerPriority,
        identifier: Optional[str] = None,
        once: bool = False,
    ) -> "EventListener":
        """Default identifier is `module.qualname@event_name`."""
        if identifier is None:
            name = getattr(callback, "__qualname__", None) or getattr(
                callback, "__name__", type(callback).__name__
            )
            identifier = f"{getattr(callback, '__module__', 'unknown')}.{name}@{event_name}"
        return cls(callback=callback, priority=priority, identifier=identifier, once=once)
