"""
Unit Tests for EventBus
=======================

Test Coverage
-------------
- Exact and wildcard subscriptions
- Priority tiers and LOW-priority background execution
- Listener error isolation and timeouts
- Duplicate prevention, once-listeners, unsubscribe
- Callback signature validation
"""

import asyncio

import pytest

from arise.core.event.bus import EventBus
from arise.core.event.types import ListenerPriority


@pytest.fixture
def bus():
    return EventBus(critical_timeout_seconds=0.05, high_timeout_seconds=0.05)


@pytest.mark.unit
class TestSubscribeAndPublish:
    async def test_exact_listener_receives_payload(self, bus):
        received = []
        bus.subscribe("xp.awarded", received.append, identifier="collector")

        await bus.publish("xp.awarded", {"user_id": "u-1", "amount": 100})

        assert received == [{"user_id": "u-1", "amount": 100}]

    async def test_wildcard_listener(self, bus):
        received = []
        bus.subscribe("progression.*", received.append, identifier="wild")

        await bus.publish("progression.level_up", {"new_level": 3})
        await bus.publish("quest.completed", {"quest_id": 1})

        assert received == [{"new_level": 3}]

    async def test_no_listeners_returns_empty(self, bus):
        assert await bus.publish("day.closed", {}) == []

    async def test_async_listener_result_returned(self, bus):
        async def handler(payload):
            return payload["amount"] * 2

        bus.subscribe("xp.awarded", handler)

        assert await bus.publish("xp.awarded", {"amount": 21}) == [42]

    async def test_priority_order(self, bus):
        calls = []
        bus.subscribe("e", lambda p: calls.append("normal"), identifier="n")
        bus.subscribe("e", lambda p: calls.append("high"), identifier="h", priority=ListenerPriority.HIGH)
        bus.subscribe(
            "e", lambda p: calls.append("critical"), identifier="c", priority=ListenerPriority.CRITICAL
        )

        await bus.publish("e", {})

        assert calls == ["critical", "high", "normal"]

    async def test_low_priority_runs_in_background(self, bus):
        calls = []

        async def slow(payload):
            await asyncio.sleep(0)
            calls.append(payload)

        bus.subscribe("e", slow, priority=ListenerPriority.LOW)

        results = await bus.publish("e", {"n": 1})
        await bus.drain()

        assert results == []
        assert calls == [{"n": 1}]


@pytest.mark.unit
class TestErrorIsolation:
    async def test_failing_listener_does_not_break_others(self, bus):
        received = []

        def broken(payload):
            raise RuntimeError("listener bug")

        bus.subscribe("e", broken, identifier="broken")
        bus.subscribe("e", received.append, identifier="ok")

        results = await bus.publish("e", {"x": 1})

        assert received == [{"x": 1}]
        assert None in results
        assert bus.get_metrics_summary()["total_errors"] == 1

    async def test_critical_listener_timeout(self, bus):
        async def hang(payload):
            await asyncio.sleep(1)

        bus.subscribe("e", hang, priority=ListenerPriority.CRITICAL)

        assert await bus.publish("e", {}) == [None]
        assert bus.get_metrics_summary()["total_errors"] == 1


@pytest.mark.unit
class TestListenerManagement:
    async def test_duplicate_identifier_ignored(self, bus):
        received = []
        bus.subscribe("e", received.append, identifier="same")
        bus.subscribe("e", received.append, identifier="same")

        await bus.publish("e", {})

        assert len(received) == 1
        assert bus.get_listener_count("e") == 1

    async def test_once_listener_removed_after_first_publish(self, bus):
        received = []
        bus.subscribe("e", received.append, once=True)

        await bus.publish("e", {"n": 1})
        await bus.publish("e", {"n": 2})

        assert received == [{"n": 1}]

    def test_unsubscribe(self, bus):
        listener_id = bus.subscribe("e", lambda p: None, identifier="x")

        assert bus.unsubscribe("e", listener_id) is True
        assert bus.unsubscribe("e", listener_id) is False
        assert bus.get_listener_count() == 0

    def test_rejects_wrong_arity(self, bus):
        with pytest.raises(ValueError, match="exactly 1 parameter"):
            bus.subscribe("e", lambda a, b: None)

    def test_timeouts_read_from_config(self, mock_config_manager):
        mock_config_manager.get.side_effect = lambda key, default=None: 9.0

        bus = EventBus(mock_config_manager)

        assert bus._critical_timeout == 9.0
        assert bus._high_timeout == 9.0

    async def test_metrics_count_publishes(self, bus):
        await bus.publish("xp.awarded", {})
        await bus.publish("xp.awarded", {})

        summary = bus.get_metrics_summary()

        assert summary["events_by_type"] == {"xp.awarded": 2}
        assert summary["total_events_published"] == 2
