"""
Generic async repository over one mapped model.

Repositories hold queries only. They never commit: the session they are
handed belongs to a transaction opened by a service. Pass
`for_update=True` on the reads that precede a read-modify-write (user
totals, quest status, daily counters).

    class DailyLogRepository(BaseRepository[DailyLog]):
        async def for_day(self, session, user_id, day, for_update=False):
            return await self.find_one_where(
                session,
                DailyLog.user_id == user_id,
                DailyLog.log_date == day,
                for_update=for_update,
            )
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Generic, List, Optional, Sequence, Type, TypeVar

from sqlalchemy import Select, func, select

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy import ColumnElement
    from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T")


class BaseRepository(Generic[T]):
    def __init__(self, model_class: Type[T], logger: Logger) -> None:
        self.model_class = model_class
        self.log = logger

    @property
    def _model(self) -> str:
        return self.model_class.__name__

    def _select(
        self,
        conditions: Sequence[ColumnElement[bool]],
        order_by: Optional[Sequence[Any]],
        for_update: bool,
    ) -> Select:
        stmt = select(self.model_class).where(*conditions)
        if order_by:
            stmt = stmt.order_by(*order_by)
        if for_update:
            stmt = stmt.with_for_update()
        return stmt

    async def get(
        self, session: AsyncSession, id_value: Any, for_update: bool = False
    ) -> Optional[T]:
        """Row by primary key, optionally locked."""
        stmt = self._select(
            [self.model_class.id == id_value],  # type: ignore[attr-defined]
            None,
            for_update,
        )
        instance = (await session.execute(stmt)).scalar_one_or_none()
        self.log.debug(
            f"{self._model} get",
            extra={"model": self._model, "id": id_value, "found": instance is not None},
        )
        return instance

    async def find_one_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        order_by: Optional[Sequence[Any]] = None,
        for_update: bool = False,
    ) -> Optional[T]:
        """
        One matching row. With `order_by` the first row of that ordering is
        returned; without it more than one match raises MultipleResultsFound.
        """
        stmt = self._select(conditions, order_by, for_update)
        result = await session.execute(stmt.limit(1) if order_by else stmt)
        instance = result.scalars().first() if order_by else result.scalar_one_or_none()
        self.log.debug(
            f"{self._model} find_one",
            extra={"model": self._model, "found": instance is not None, "locked": for_update},
        )
        return instance

    async def find_many_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        order_by: Optional[Sequence[Any]] = None,
        for_update: bool = False,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[T]:
        stmt = self._select(conditions, order_by, for_update)
        if limit is not None:
            stmt = stmt.limit(limit)
        if offset:
            stmt = stmt.offset(offset)
        instances = list((await session.execute(stmt)).scalars().all())
        self.log.debug(
            f"{self._model} find_many",
            extra={"model": self._model, "found_count": len(instances), "limit": limit},
        )
        return instances

    async def count(self, session: AsyncSession, *conditions: ColumnElement[bool]) -> int:
        stmt = select(func.count()).select_from(self.model_class).where(*conditions)
        return int((await session.execute(stmt)).scalar_one())

    async def exists(self, session: AsyncSession, *conditions: ColumnElement[bool]) -> bool:
        return await self.count(session, *conditions) > 0

    def add(self, session: AsyncSession, instance: T) -> T:
        session.add(instance)
        self.log.debug(f"{self._model} added", extra={"model": self._model})
        return instance

    async def delete(self, session: AsyncSession, instance: T) -> None:
        await session.delete(instance)
        self.log.debug(
            f"{self._model} deleted",
            extra={"model": self._model, "id": getattr(instance, "id", None)},
        )

    async def flush(self, session: AsyncSession) -> None:
        """Flush so database-generated ids are assigned."""
        await session.flush()
