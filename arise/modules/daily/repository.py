"""Data access for per-day aggregates."""

from __future__ import annotations

from datetime import date
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from arise.database.models import DailyLog
from arise.modules.shared.base_repository import BaseRepository


class DailyLogRepository(BaseRepository[DailyLog]):
    async def for_day(
        self,
        session: AsyncSession,
        user_id: str,
        log_date: date,
        for_update: bool = False,
    ) -> Optional[DailyLog]:
        return await self.find_one_where(
            session,
            DailyLog.user_id == user_id,
            DailyLog.log_date == log_date,
            for_update=for_update,
        )

    async def recent(self, session: AsyncSession, user_id: str, limit: int) -> List[DailyLog]:
        """Newest first."""
        return await self.find_many_where(
            session,
            DailyLog.user_id == user_id,
            order_by=(DailyLog.log_date.desc(),),
            limit=limit,
        )
