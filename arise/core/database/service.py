"""
DatabaseService: the one async engine and its sessions.

Every write to the progression tables goes through `get_transaction()` or
`join_transaction()`. Service code never calls `session.commit()`; the
context manager that opened the transaction commits it when the block
exits cleanly and rolls back (then re-raises) otherwise.

Read-modify-write of a user's totals locks the row first with
`select(...).with_for_update()`. PostgreSQL honors the lock. SQLite ignores
the clause, so writers there also hold `user_lock(user_id)` around the
whole transaction.

Backends
--------
- PostgreSQL through asyncpg: pooled, with a per-transaction
  `statement_timeout`.
- SQLite through aiosqlite: NullPool, used locally and by the service tests.

Schema migrations are out of scope; `create_all`/`drop_all` exist for
development and tests.
"""

from __future__ import annotations

import asyncio
import time
import weakref
from contextlib import asynccontextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Dict, FrozenSet, Optional

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from arise.core.config.config import Config
from arise.core.exceptions import DatabaseInitializationError, DatabaseNotInitializedError
from arise.core.logging.logger import get_logger

logger = get_logger(__name__)

# user ids whose lock the current task already holds
_held_user_locks: ContextVar[FrozenSet[str]] = ContextVar(
    "arise_held_user_locks", default=frozenset()
)


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000.0, 2)


@dataclass(frozen=True)
class _EngineSettings:
    """Settings captured at initialize time; later Config changes do not apply."""

    url: str
    echo: bool
    pooled: bool
    pool_size: int
    max_overflow: int
    pool_recycle: int
    pool_timeout: int
    statement_timeout_ms: int

    @classmethod
    def from_config(cls, url: Optional[str]) -> "_EngineSettings":
        if url is None:
            Config.validate()
        database_url = url or Config.DATABASE_URL
        if not isinstance(database_url, str) or not database_url:
            raise DatabaseInitializationError("DATABASE_URL must be a non-empty string")
        return cls(
            url=database_url,
            echo=bool(Config.DATABASE_ECHO),
            # sqlite files and test runs get a fresh connection per session
            pooled=not (Config.is_testing() or database_url.startswith("sqlite")),
            pool_size=Config.DATABASE_POOL_SIZE,
            max_overflow=Config.DATABASE_MAX_OVERFLOW,
            pool_recycle=Config.DATABASE_POOL_RECYCLE,
            pool_timeout=Config.DATABASE_POOL_TIMEOUT,
            statement_timeout_ms=Config.DATABASE_STATEMENT_TIMEOUT_MS,
        )

    @property
    def scheme(self) -> str:
        return self.url.split(":", 1)[0]

    @property
    def is_postgres(self) -> bool:
        return self.scheme.startswith("postgresql")

    def engine_kwargs(self) -> Dict[str, Any]:
        if not self.pooled:
            return {"echo": self.echo, "poolclass": NullPool}
        return {
            "echo": self.echo,
            "pool_size": self.pool_size,
            "max_overflow": self.max_overflow,
            "pool_recycle": self.pool_recycle,
            "pool_timeout": self.pool_timeout,
            "pool_pre_ping": True,
        }


class DatabaseService:
    """
    Class-level holder of the engine and session factory.

    Lifecycle: `initialize()` / `shutdown()`, both idempotent.
    Sessions: `get_session()` (no commit), `get_transaction()` (atomic),
    `join_transaction(session)` (reuse the caller's unit of work).
    Writers of one user's rows: `user_lock(user_id)` around the transaction.
    """

    _engine: Optional[AsyncEngine] = None
    _session_factory: Optional[async_sessionmaker[AsyncSession]] = None
    _settings: Optional[_EngineSettings] = None
    _init_lock: asyncio.Lock = asyncio.Lock()
    _user_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @classmethod
    async def initialize(cls, url: Optional[str] = None) -> None:
        """
        Create the engine for `url` (default `Config.DATABASE_URL`).

        Raises:
            ConfigurationError: the configured DATABASE_URL has no async driver
            DatabaseInitializationError: bad URL or engine creation failed
        """
        async with cls._init_lock:
            if cls._engine is not None:
                return

            settings = _EngineSettings.from_config(url)
            try:
                engine = create_async_engine(settings.url, **settings.engine_kwargs())
            except Exception as exc:
                logger.error(
                    "Database engine creation failed",
                    extra={"url_scheme": settings.scheme, "error_type": type(exc).__name__},
                    exc_info=True,
                )
                raise DatabaseInitializationError(
                    f"Database initialization failed: {exc}"
                ) from exc

            cls._engine = engine
            cls._session_factory = async_sessionmaker(
                bind=engine, class_=AsyncSession, expire_on_commit=False
            )
            cls._settings = settings
            logger.info(
                "DatabaseService initialized",
                extra={**Config.get_config_summary(), "pooled": settings.pooled},
            )

    @classmethod
    async def shutdown(cls) -> None:
        async with cls._init_lock:
            engine = cls._engine
            cls._engine = None
            cls._session_factory = None
            cls._settings = None
            if engine is not None:
                await engine.dispose()
                logger.info("DatabaseService shut down")

    @classmethod
    def is_initialized(cls) -> bool:
        return cls._engine is not None

    @classmethod
    def _require_engine(cls) -> AsyncEngine:
        if cls._engine is None or cls._session_factory is None:
            raise DatabaseNotInitializedError()
        return cls._engine

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    @classmethod
    async def create_all(cls) -> None:
        from arise.core.database.base import Base
        import arise.database.models  # noqa: F401  (registers the mappers)

        async with cls._require_engine().begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Schema created", extra={"table_count": len(Base.metadata.tables)})

    @classmethod
    async def drop_all(cls) -> None:
        from arise.core.database.base import Base
        import arise.database.models  # noqa: F401

        async with cls._require_engine().begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        logger.info("Schema dropped")

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    @classmethod
    async def health_check(cls) -> bool:
        """`SELECT 1` round trip; False when uninitialized or unreachable."""
        if cls._engine is None:
            return False
        start = time.perf_counter()
        try:
            async with cls._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except (OperationalError, DBAPIError, OSError) as exc:
            logger.warning(
                "Database health check failed",
                extra={"error": str(exc), "error_type": type(exc).__name__},
            )
            return False
        logger.debug("Database health check passed", extra={"duration_ms": _elapsed_ms(start)})
        return True

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    @classmethod
    async def _prepare(cls, session: AsyncSession) -> None:
        settings = cls._settings
        if settings is not None and settings.is_postgres:
            await session.execute(
                text(f"SET LOCAL statement_timeout = {int(settings.statement_timeout_ms)}")
            )

    @classmethod
    @asynccontextmanager
    async def get_session(cls) -> AsyncGenerator[AsyncSession, None]:
        """Session without automatic commit, for reads."""
        cls._require_engine()
        async with cls._session_factory() as session:
            await cls._prepare(session)
            yield session

    @classmethod
    @asynccontextmanager
    async def get_transaction(cls) -> AsyncGenerator[AsyncSession, None]:
        """
        Session inside one atomic transaction.

        >>> async with DatabaseService.get_transaction() as session:
        ...     user = await repo.get(session, user_id, for_update=True)
        ...     user.total_xp += 100
        """
        cls._require_engine()
        start = time.perf_counter()
        async with cls._session_factory() as session:
            try:
                await cls._prepare(session)
                yield session
                await session.commit()
            except (OperationalError, DBAPIError) as exc:
                await session.rollback()
                logger.error(
                    "Transaction failed in the database; rolled back",
                    extra={"error_type": type(exc).__name__, "duration_ms": _elapsed_ms(start)},
                    exc_info=True,
                )
                raise
            except BaseException as exc:
                await session.rollback()
                logger.debug(
                    "Transaction rolled back",
                    extra={"error_type": type(exc).__name__, "duration_ms": _elapsed_ms(start)},
                )
                raise
            logger.debug("Transaction committed", extra={"duration_ms": _elapsed_ms(start)})

    @classmethod
    @asynccontextmanager
    async def join_transaction(
        cls, session: Optional[AsyncSession] = None
    ) -> AsyncGenerator[AsyncSession, None]:
        """
        Run inside the caller's transaction when `session` is given,
        otherwise open a new one. Whoever opened the transaction commits it.
        """
        if session is not None:
            yield session
            return
        async with cls.get_transaction() as owned:
            yield owned

    @classmethod
    @asynccontextmanager
    async def user_lock(cls, user_id: str) -> AsyncGenerator[None, None]:
        """
        Serialize one user's read-modify-write units of work in this process.

        Take it before opening the transaction and hold it until the commit,
        so the next holder reads what the previous one wrote. Reentrant
        within a task: a service holding the lock can call another service
        that takes it again. On PostgreSQL the `FOR UPDATE` row lock already
        serializes writers and this is a no-op.

        >>> async with DatabaseService.user_lock(user_id):
        ...     async with DatabaseService.get_transaction() as session:
        ...         ...
        """
        held = _held_user_locks.get()
        settings = cls._settings
        if user_id in held or (settings is not None and settings.is_postgres):
            yield
            return

        lock = cls._user_locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            cls._user_locks[user_id] = lock

        start = time.perf_counter()
        async with lock:
            wait_ms = _elapsed_ms(start)
            if wait_ms >= 100:
                logger.debug(
                    "Waited for user lock",
                    extra={"user_id": user_id, "duration_ms": wait_ms},
                )
            token = _held_user_locks.set(held | {user_id})
            try:
                yield
            finally:
                _held_user_locks.reset(token)
