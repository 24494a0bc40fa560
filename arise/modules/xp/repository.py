"""Data access for the XP ledger. Insert and read only: events are never updated."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from arise.database.models import XPEvent
from arise.modules.shared.base_repository import BaseRepository


class XPEventRepository(BaseRepository[XPEvent]):
    async def latest_for_user(self, session: AsyncSession, user_id: str) -> Optional[XPEvent]:
        """Most recent event of a user; ties on `created_at` go to the higher id."""
        return await self.find_one_where(
            session,
            XPEvent.user_id == user_id,
            order_by=(XPEvent.created_at.desc(), XPEvent.id.desc()),
        )

    async def timeline(
        self,
        session: AsyncSession,
        user_id: str,
        limit: int,
        offset: int = 0,
    ) -> List[XPEvent]:
        return await self.find_many_where(
            session,
            XPEvent.user_id == user_id,
            order_by=(XPEvent.created_at.desc(), XPEvent.id.desc()),
            limit=limit,
            offset=offset,
        )

    async def chain_for_user(self, session: AsyncSession, user_id: str) -> List[XPEvent]:
        """All events of a user, oldest first (chain order)."""
        return await self.find_many_where(
            session,
            XPEvent.user_id == user_id,
            order_by=(XPEvent.created_at.asc(), XPEvent.id.asc()),
        )

    async def between(
        self,
        session: AsyncSession,
        user_id: str,
        start: datetime,
        end: datetime,
    ) -> List[XPEvent]:
        """Events with `start <= created_at < end`, oldest first."""
        return await self.find_many_where(
            session,
            XPEvent.user_id == user_id,
            XPEvent.created_at >= start,
            XPEvent.created_at < end,
            order_by=(XPEvent.created_at.asc(), XPEvent.id.asc()),
        )
