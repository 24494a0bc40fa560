"""
Pytest Configuration and Fixtures for ARISE Tests
=================================================

Purpose
-------
Shared fixtures for the progression core test suite.

- Unit tests use pure functions and mocks (fast, isolated)
- Service tests run against a file-backed aiosqlite database initialized
  through `DatabaseService`, with a `FixedClock` so day boundaries,
  weekends and debuff expiry are deterministic
- PostgreSQL integration tests use testcontainers (see tests/integration)

Fixture scopes are function-level: every test gets a fresh database,
a fresh ConfigManager state and a private EventBus.
"""

from __future__ import annotations

import os

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Dict, List, Tuple

import pytest
import pytest_asyncio

from arise.core.clock import FixedClock
from arise.core.config.config import Config
from arise.core.config.manager import ConfigManager
from arise.core.database.service import DatabaseService
from arise.core.event.bus import EventBus
from arise.core.logging.logger import get_logger
from arise.core.services.container import ServiceContainer

logger = get_logger(__name__)

# Wednesday; weekend bonus off by default in service tests
WEDNESDAY_NOON = datetime(2026, 1, 14, 12, 0, tzinfo=timezone.utc)
SATURDAY_NOON = datetime(2026, 1, 17, 12, 0, tzinfo=timezone.utc)

STEPS_10K = {"type": "numeric", "metric": "steps", "operator": "gte", "value": 10000}
WORKOUT_DONE = {"type": "boolean", "metric": "workout_done", "expected": True}
PROTEIN_150 = {"type": "numeric", "metric": "protein", "operator": "gte", "value": 150}


def pytest_configure(config):
    Config.load()


# ============================================================================
# CORE FIXTURES
# ============================================================================


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(WEDNESDAY_NOON)


@pytest.fixture
def config_manager():
    """ConfigManager class with YAML defaults and no overrides."""
    ConfigManager.reset()
    ConfigManager.load()
    yield ConfigManager
    ConfigManager.reset()


@pytest.fixture
def event_bus(config_manager) -> EventBus:
    return EventBus(config_manager)


class EventRecorder:
    """Collects (event_name, payload) pairs published on a bus."""

    def __init__(self, bus: EventBus) -> None:
        self.bus = bus
        self.events: List[Tuple[str, Dict[str, Any]]] = []

    def _make_listener(self, name: str):
        def _record(payload: Dict[str, Any]) -> None:
            self.events.append((name, payload))

        return _record

    def watch(self, *names: str) -> "EventRecorder":
        for name in names:
            self.bus.subscribe(name, self._make_listener(name), identifier=f"recorder@{name}")
        return self

    def named(self, name: str) -> List[Dict[str, Any]]:
        return [payload for event_name, payload in self.events if event_name == name]


@pytest.fixture
def recorder(event_bus) -> EventRecorder:
    return EventRecorder(event_bus).watch(
        "xp.awarded",
        "xp.removed",
        "progression.level_up",
        "progression.level_down",
        "quest.completed",
        "quest.reset",
        "quest.removed",
        "streak.updated",
        "debuff.applied",
        "day.closed",
        "user.registered",
    )


# ============================================================================
# DATABASE FIXTURES (Service Tests)
# ============================================================================


@pytest_asyncio.fixture
async def database(tmp_path) -> AsyncGenerator[None, None]:
    """
    Fresh SQLite database for one test.

    File-backed rather than in-memory so every session (each opened with
    NullPool) sees the same schema.
    """
    await DatabaseService.shutdown()
    await DatabaseService.initialize(f"sqlite+aiosqlite:///{tmp_path / 'arise-test.db'}")
    await DatabaseService.create_all()
    yield
    await DatabaseService.shutdown()


@pytest_asyncio.fixture
async def services(database, config_manager, event_bus, clock) -> AsyncGenerator[ServiceContainer, None]:
    container = ServiceContainer(
        config_manager, event_bus, get_logger("tests.services"), clock=clock
    )
    await container.initialize()
    yield container
    await container.shutdown()


# ============================================================================
# FACTORIES
# ============================================================================


@pytest_asyncio.fixture
async def make_user(services):
    async def _make(user_id: str = "user-1", timezone_name: str = "UTC") -> str:
        await services.player_progression.register_user(user_id, timezone_name)
        return user_id

    return _make


@pytest_asyncio.fixture
async def make_template(services):
    async def _make(
        name: str = "Daily Steps",
        requirement: Dict[str, Any] = STEPS_10K,
        base_xp: int = 100,
        is_core: bool = True,
        **kwargs: Any,
    ):
        return await services.quest_catalog.create_template(
            name=name,
            category=kwargs.pop("category", "MOVEMENT"),
            requirement=requirement,
            base_xp=base_xp,
            is_core=is_core,
            **kwargs,
        )

    return _make


# ============================================================================
# MOCK FIXTURES (Unit Tests)
# ============================================================================


@pytest.fixture
def mock_event_bus(mocker):
    mock_bus = mocker.MagicMock()
    mock_bus.publish = mocker.AsyncMock()
    mock_bus.subscribe = mocker.MagicMock()
    return mock_bus


@pytest.fixture
def mock_config_manager(mocker):
    """Config mock that always answers with the caller's default."""
    mock_config = mocker.MagicMock()
    mock_config.get = mocker.MagicMock(side_effect=lambda key, default=None: default)
    return mock_config
