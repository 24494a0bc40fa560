"""
BaseService: what every ARISE service is built from.

A service owns its transaction boundaries, applies the progression rules
and publishes events once its work is done. All of them share one
constructor signature so `ServiceContainer` can build them uniformly:

    XPService(config_manager, event_bus, logger, clock=clock)

Public methods that mutate state take an optional `session`. Given one,
they run inside the caller's unit of work; without one they open their own
transaction:

    async with DatabaseService.join_transaction(session) as s:
        ...
    await self.emit_event(EventName.STREAK_UPDATED, {...})

Events are published after the `async with` block. When the session was
joined, the outer caller commits later.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

from arise.core.clock import Clock

if TYPE_CHECKING:
    from logging import Logger

    from arise.core.config.manager import ConfigManager
    from arise.core.event.bus import EventBus


class BaseService:
    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        clock: Optional[Clock] = None,
    ) -> None:
        self._config = config_manager
        self._events = event_bus
        self.log = logger
        self.clock = clock or Clock()

    def get_config(self, key: str, default: Any = None) -> Any:
        return self._config.get(key, default)

    async def emit_event(self, event_type: str, data: Dict[str, Any]) -> None:
        await self._events.publish(event_type, dict(data))

    def log_operation(self, operation: str, **context: Any) -> None:
        """Entry log line for a mutating operation."""
        self.log.info(f"{operation} started", extra={"operation": operation, **context})
