"""
EventBus: async pub/sub between progression services and their observers.

Services publish after their transaction block (`xp.awarded`,
`progression.level_up`, `quest.completed`, ...); anything that reacts to
progress (notifications, analytics, narration) subscribes by exact name or
by an fnmatch pattern such as `xp.*` or `quest.*`.

A failing or slow listener is logged and counted; it never fails the
publisher and never stops the other listeners. CRITICAL and HIGH
listeners are bounded by `core.event.listener_timeout.*` from the
ConfigManager.
"""

from __future__ import annotations

import asyncio
import fnmatch
import inspect
from typing import Any, Dict, List, Optional, Set

from arise.core.event.types import (
    CallbackType,
    EventListener,
    EventPayload,
    ListenerPriority,
)
from arise.core.logging.logger import get_logger

logger = get_logger(__name__)


class EventBus:
    """
    Instance-based event bus.

    Examples
    --------
    >>> bus = EventBus()
    >>> bus.subscribe("progression.level_up", on_level_up)
    >>> await bus.publish("progression.level_up", {"user_id": "u-1", "new_level": 3})
    """

    def __init__(
        self,
        config_manager: Any = None,
        *,
        critical_timeout_seconds: Optional[float] = None,
        high_timeout_seconds: Optional[float] = None,
    ) -> None:
        self._config_manager = config_manager
        self._listeners: Dict[str, List[EventListener]] = {}
        self._background_tasks: Set[asyncio.Task[Any]] = set()
        self._published_counts: Dict[str, int] = {}
        self._error_count = 0

        self._critical_timeout = self._load_timeout(
            "core.event.listener_timeout.critical_seconds",
            critical_timeout_seconds,
            5.0,
        )
        self._high_timeout = self._load_timeout(
            "core.event.listener_timeout.high_seconds",
            high_timeout_seconds,
            5.0,
        )

    def _load_timeout(self, key: str, override: Optional[float], default: float) -> float:
        """Resolve a timeout: explicit override, then config, then default."""
        if override is not None:
            return float(override)
        if self._config_manager is None:
            return float(default)
        return float(self._config_manager.get(key, default))

    # ------------------------------------------------------------------ #
    # Subscription API
    # ------------------------------------------------------------------ #

    @staticmethod
    def _validate_callback_signature(callback: CallbackType) -> None:
        """Reject callbacks that do not take exactly one parameter."""
        try:
            sig = inspect.signature(callback)
        except (TypeError, ValueError):
            # Built-ins may not expose a signature; trust the caller
            return

        params = [
            p
            for p in sig.parameters.values()
            if p.kind not in (p.VAR_POSITIONAL, p.VAR_KEYWORD)
        ]
        if len(params) != 1:
            name = getattr(callback, "__qualname__", repr(callback))
            raise ValueError(
                f"Event listener must accept exactly 1 parameter (EventPayload), "
                f"got {len(params)} parameters for '{name}'"
            )

    def subscribe(
        self,
        event_name: str,
        callback: CallbackType,
        *,
        priority: ListenerPriority = ListenerPriority.NORMAL,
        identifier: Optional[str] = None,
        once: bool = False,
    ) -> str:
        """
        Subscribe a callback to an event name or wildcard pattern.

        Returns the listener identifier for `unsubscribe`. Registering the
        same identifier twice for one event is a no-op.
        """
        self._validate_callback_signature(callback)

        listener = EventListener.from_callback(
            event_name=event_name,
            callback=callback,
            priority=priority,
            identifier=identifier,
            once=once,
        )

        bucket = self._listeners.setdefault(event_name, [])
        if any(existing.identifier == listener.identifier for existing in bucket):
            logger.warning(
                "EventBus: duplicate listener prevented",
                extra={"event_name": event_name, "listener_id": listener.identifier},
            )
            return listener.identifier

        bucket.append(listener)
        logger.debug(
            "EventBus: subscribed listener",
            extra={
                "event_name": event_name,
                "listener_id": listener.identifier,
                "priority": listener.priority.name,
            },
        )
        return listener.identifier

    def unsubscribe(self, event_name: str, identifier: str) -> bool:
        """Remove a listener; True if one was removed."""
        bucket = self._listeners.get(event_name, [])
        remaining = [lst for lst in bucket if lst.identifier != identifier]
        removed = len(remaining) != len(bucket)

        if remaining:
            self._listeners[event_name] = remaining
        else:
            self._listeners.pop(event_name, None)

        return removed

    def clear(self) -> None:
        """Remove all listeners (tests, full reinit)."""
        self._listeners.clear()

    # ------------------------------------------------------------------ #
    # Publish API
    # ------------------------------------------------------------------ #

    def _matching_listeners(self, event_name: str) -> List[EventListener]:
        matched: List[EventListener] = []

        for pattern, bucket in list(self._listeners.items()):
            if pattern != event_name and not fnmatch.fnmatchcase(event_name, pattern):
                continue

            matched.extend(bucket)
            once_ids = {lst.identifier for lst in bucket if lst.once}
            if once_ids:
                self._listeners[pattern] = [
                    lst for lst in bucket if lst.identifier not in once_ids
                ]

        matched.sort(key=lambda lst: lst.priority.value)
        return matched

    async def publish(self, event_name: str, data: EventPayload) -> List[Any]:
        """
        Deliver `data` to every listener matching `event_name`.

        Returns the results of the awaited tiers in execution order; LOW
        listeners are scheduled and left running (see `drain`).
        """
        self._published_counts[event_name] = self._published_counts.get(event_name, 0) + 1

        tiers: Dict[ListenerPriority, List[EventListener]] = {p: [] for p in ListenerPriority}
        for listener in self._matching_listeners(event_name):
            tiers[listener.priority].append(listener)

        results: List[Any] = []
        for priority, timeout in (
            (ListenerPriority.CRITICAL, self._critical_timeout),
            (ListenerPriority.HIGH, self._high_timeout),
        ):
            for listener in tiers[priority]:
                results.append(await self._run_with_timeout(listener, event_name, data, timeout))

        if tiers[ListenerPriority.NORMAL]:
            results.extend(
                await asyncio.gather(
                    *(self._run_listener(lst, event_name, data) for lst in tiers[ListenerPriority.NORMAL])
                )
            )

        loop = asyncio.get_running_loop()
        for listener in tiers[ListenerPriority.LOW]:
            task = loop.create_task(
                self._run_listener(listener, event_name, data),
                name=f"event-{event_name}-{listener.identifier}",
            )
            self._background_tasks.add(task)
            task.add_done_callback(self._background_tasks.discard)

        return results

    async def _run_with_timeout(
        self,
        listener: EventListener,
        event_name: str,
        payload: EventPayload,
        timeout: Optional[float],
    ) -> Any:
        if timeout is None or timeout <= 0:
            return await self._run_listener(listener, event_name, payload)

        try:
            return await asyncio.wait_for(
                self._run_listener(listener, event_name, payload),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            self._error_count += 1
            logger.error(
                "EventBus listener timeout",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "timeout_seconds": timeout,
                },
            )
            return None

    async def _run_listener(
        self,
        listener: EventListener,
        event_name: str,
        payload: EventPayload,
    ) -> Any:
        try:
            result = listener.callback(payload)
            if inspect.isawaitable(result):
                result = await result
            return result
        except Exception as exc:
            self._error_count += 1
            logger.error(
                "EventBus listener failed",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
                exc_info=True,
            )
            return None

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    async def drain(self) -> None:
        """Wait for outstanding LOW-priority listener tasks."""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    def get_listener_count(self, event_name: Optional[str] = None) -> int:
        """Listeners that would receive `event_name`, or all listeners."""
        if event_name is None:
            return sum(len(bucket) for bucket in self._listeners.values())
        return sum(
            len(bucket)
            for pattern, bucket in self._listeners.items()
            if pattern == event_name or fnmatch.fnmatchcase(event_name, pattern)
        )

    def get_metrics_summary(self) -> Dict[str, Any]:
        return {
            "total_events_published": sum(self._published_counts.values()),
            "events_by_type": dict(self._published_counts),
            "total_errors": self._error_count,
            "total_listeners": self.get_listener_count(),
        }
