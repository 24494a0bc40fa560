"""
PostgreSQL fixtures for integration tests.

The container is started once per session with testcontainers; every test
gets freshly created tables through `DatabaseService`. Tests are skipped
when Docker is not available.
"""

from __future__ import annotations

from typing import AsyncGenerator, Generator

import pytest
import pytest_asyncio
from testcontainers.postgres import PostgresContainer

from arise.core.database.service import DatabaseService
from arise.core.logging.logger import get_logger
from arise.core.services.container import ServiceContainer

logger = get_logger(__name__)


@pytest.fixture(scope="session")
def postgres_container() -> Generator[PostgresContainer, None, None]:
    """
    Start a PostgreSQL testcontainer.

    Scope: session (container persists across all tests)
    """
    logger.info("Starting PostgreSQL testcontainer...")
    container = PostgresContainer(image="postgres:16-alpine", driver="asyncpg")
    try:
        container.start()
    except Exception as exc:
        pytest.skip(f"Docker not available for PostgreSQL testcontainer: {exc}")

    logger.info("PostgreSQL testcontainer started: %s", container.get_connection_url())
    yield container

    logger.info("Stopping PostgreSQL testcontainer...")
    container.stop()


@pytest_asyncio.fixture
async def pg_database(postgres_container: PostgresContainer) -> AsyncGenerator[None, None]:
    """Clean schema on the container for one test."""
    await DatabaseService.shutdown()
    await DatabaseService.initialize(postgres_container.get_connection_url())
    await DatabaseService.drop_all()
    await DatabaseService.create_all()
    yield
    await DatabaseService.shutdown()


@pytest_asyncio.fixture
async def pg_services(
    pg_database, config_manager, event_bus, clock
) -> AsyncGenerator[ServiceContainer, None]:
    container = ServiceContainer(
        config_manager, event_bus, get_logger("tests.integration"), clock=clock
    )
    await container.initialize()
    yield container
    await container.shutdown()
