"""Data access for quest templates and per-day quest logs."""

from __future__ import annotations

from datetime import date
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from arise.database.models import QuestLog, QuestStatus, QuestTemplate
from arise.modules.shared.base_repository import BaseRepository


class QuestTemplateRepository(BaseRepository[QuestTemplate]):
    async def active_core(self, session: AsyncSession) -> List[QuestTemplate]:
        return await self.find_many_where(
            session,
            QuestTemplate.is_active.is_(True),
            QuestTemplate.is_core.is_(True),
            order_by=(QuestTemplate.id,),
        )

    async def count_active_core(self, session: AsyncSession) -> int:
        return await self.count(
            session,
            QuestTemplate.is_active.is_(True),
            QuestTemplate.is_core.is_(True),
        )


class QuestLogRepository(BaseRepository[QuestLog]):
    async def get_for_user(
        self,
        session: AsyncSession,
        quest_log_id: int,
        user_id: str,
        for_update: bool = False,
    ) -> Optional[QuestLog]:
        """A quest log only if it belongs to `user_id`."""
        return await self.find_one_where(
            session,
            QuestLog.id == quest_log_id,
            QuestLog.user_id == user_id,
            for_update=for_update,
        )

    async def for_day(self, session: AsyncSession, user_id: str, quest_date: date) -> List[QuestLog]:
        return await self.find_many_where(
            session,
            QuestLog.user_id == user_id,
            QuestLog.quest_date == quest_date,
            order_by=(QuestLog.id,),
        )

    async def active_for_day(
        self, session: AsyncSession, user_id: str, quest_date: date
    ) -> List[QuestLog]:
        return await self.find_many_where(
            session,
            QuestLog.user_id == user_id,
            QuestLog.quest_date == quest_date,
            QuestLog.status == QuestStatus.ACTIVE,
            order_by=(QuestLog.id,),
        )

    async def for_template(
        self,
        session: AsyncSession,
        user_id: str,
        template_id: int,
        quest_date: date,
    ) -> Optional[QuestLog]:
        return await self.find_one_where(
            session,
            QuestLog.user_id == user_id,
            QuestLog.template_id == template_id,
            QuestLog.quest_date == quest_date,
        )

    async def expire_active(self, session: AsyncSession, user_id: str, quest_date: date) -> int:
        """Mark every still-ACTIVE log of a day EXPIRED; returns the row count."""
        stmt = (
            update(QuestLog)
            .where(
                QuestLog.user_id == user_id,
                QuestLog.quest_date == quest_date,
                QuestLog.status == QuestStatus.ACTIVE,
            )
            .values(status=QuestStatus.EXPIRED)
            .execution_options(synchronize_session="fetch")
        )
        result = await session.execute(stmt)
        expired = result.rowcount or 0

        self.log.debug(
            "Repository.expire_active: QuestLog",
            extra={"user_id": user_id, "quest_date": quest_date.isoformat(), "expired": expired},
        )
        return expired
