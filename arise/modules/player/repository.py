"""Data access for the per-user progression row."""

from __future__ import annotations

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from arise.database.models import UserProgression
from arise.modules.shared.base_repository import BaseRepository


class UserProgressionRepository(BaseRepository[UserProgression]):
    async def get_by_user_id(
        self,
        session: AsyncSession,
        user_id: str,
        for_update: bool = False,
    ) -> Optional[UserProgression]:
        return await self.find_one_where(
            session,
            UserProgression.user_id == user_id,
            for_update=for_update,
        )
