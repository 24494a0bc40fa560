"""In-process pub/sub for progression notifications."""

from arise.core.event.bus import EventBus
from arise.core.event.types import (
    CallbackType,
    EventListener,
    EventName,
    EventPayload,
    ListenerPriority,
)

__all__ = [
    "CallbackType",
    "EventBus",
    "EventListener",
    "EventName",
    "EventPayload",
    "ListenerPriority",
]
