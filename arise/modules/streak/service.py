"""
Streak Service
==============

Recomputes consecutive-day counters from daily aggregates and stores them
on the user row. Invoked by the quest orchestrator after every completion
or reset and by the daily rollover.

A streak day is a day whose core quests were all completed. The walk
itself is the pure `count_streak`; this service loads the rows, resolves
"today" in the user's timezone and persists the result.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING, Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from arise.core.clock import local_date
from arise.core.database.service import DatabaseService
from arise.core.event.types import EventName
from arise.core.logging.logger import get_logger
from arise.core.validation.input_validator import InputValidator
from arise.database.models import DailyLog, UserProgression
from arise.domain.progression.streak import (
    DayRecord,
    StreakCount,
    count_streak,
    days_until_next_tier,
    streak_bonus,
)
from arise.modules.daily.repository import DailyLogRepository
from arise.modules.player.repository import UserProgressionRepository
from arise.modules.shared.base_service import BaseService
from arise.modules.shared.exceptions import NotFoundError

if TYPE_CHECKING:
    from logging import Logger

    from arise.core.clock import Clock
    from arise.core.config.manager import ConfigManager
    from arise.core.event.bus import EventBus


@dataclass(frozen=True)
class StreakInfo:
    current_streak: int
    longest_streak: int
    perfect_streak: int
    bonus_tier: str
    bonus_percent: int
    streak_start_date: Optional[date]
    days_until_next_tier: Optional[int]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
            "perfect_streak": self.perfect_streak,
            "bonus_tier": self.bonus_tier,
            "bonus_percent": self.bonus_percent,
            "streak_start_date": (
                self.streak_start_date.isoformat() if self.streak_start_date else None
            ),
            "days_until_next_tier": self.days_until_next_tier,
        }


def _to_record(log: DailyLog) -> DayRecord:
    return DayRecord(
        log_date=log.log_date,
        core_quests_total=log.core_quests_total,
        core_quests_completed=log.core_quests_completed,
        is_perfect_day=log.is_perfect_day,
        is_closed=log.closed_at is not None,
    )


class StreakService(BaseService):
    """
    Public Methods
    --------------
    - calculate_streak() -> Walk daily logs without writing
    - update_user_streak() -> Recompute and store current/longest/perfect
    - get_streak_info() -> Stored counters plus tier information
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        clock: Optional[Clock] = None,
    ) -> None:
        super().__init__(config_manager, event_bus, logger, clock)
        self._users = UserProgressionRepository(
            model_class=UserProgression,
            logger=get_logger(f"{__name__}.UserProgressionRepository"),
        )
        self._daily_logs = DailyLogRepository(
            model_class=DailyLog,
            logger=get_logger(f"{__name__}.DailyLogRepository"),
        )

    async def _count(self, session: AsyncSession, user: UserProgression) -> StreakCount:
        lookback = int(self.get_config("progression.streak.lookback_days", 365))
        logs = await self._daily_logs.recent(session, user.user_id, lookback)
        today = local_date(self.clock.now(), user.timezone)
        return count_streak((_to_record(log) for log in logs), today)

    async def calculate_streak(
        self, user_id: str, session: Optional[AsyncSession] = None
    ) -> StreakCount:
        user_id = InputValidator.validate_user_id(user_id)
        async with DatabaseService.join_transaction(session) as s:
            user = await self._users.get_by_user_id(s, user_id)
            if user is None:
                raise NotFoundError("User", user_id)
            return await self._count(s, user)

    async def update_user_streak(
        self, user_id: str, session: Optional[AsyncSession] = None
    ) -> StreakInfo:
        """
        Recompute streak counters and store them.

        `longest_streak` only ever grows.

        Raises:
            NotFoundError: If the user does not exist
        """
        user_id = InputValidator.validate_user_id(user_id)

        async with (
            DatabaseService.user_lock(user_id),
            DatabaseService.join_transaction(session) as s,
        ):
            user = await self._users.get_by_user_id(s, user_id, for_update=True)
            if user is None:
                raise NotFoundError("User", user_id)

            previous_streak = user.current_streak
            count = await self._count(s, user)

            user.current_streak = count.current_streak
            user.perfect_streak = count.perfect_streak
            user.longest_streak = max(user.longest_streak, count.current_streak)
            longest = user.longest_streak

        bonus = streak_bonus(count.current_streak)
        info = StreakInfo(
            current_streak=count.current_streak,
            longest_streak=longest,
            perfect_streak=count.perfect_streak,
            bonus_tier=bonus.tier.value,
            bonus_percent=bonus.percent,
            streak_start_date=count.streak_start_date,
            days_until_next_tier=days_until_next_tier(count.current_streak),
        )

        self.log.debug(
            "Streak recomputed",
            extra={
                "user_id": user_id,
                "previous_streak": previous_streak,
                "current_streak": info.current_streak,
                "perfect_streak": info.perfect_streak,
            },
        )

        if previous_streak != info.current_streak:
            await self.emit_event(
                EventName.STREAK_UPDATED,
                {
                    "user_id": user_id,
                    "previous_streak": previous_streak,
                    **info.to_dict(),
                },
            )

        return info

    async def get_streak_info(self, user_id: str) -> StreakInfo:
        """Stored counters; only the start date is recomputed."""
        user_id = InputValidator.validate_user_id(user_id)

        async with DatabaseService.get_session() as session:
            user = await self._users.get_by_user_id(session, user_id)
            if user is None:
                raise NotFoundError("User", user_id)
            count = await self._count(session, user)

        bonus = streak_bonus(user.current_streak)
        return StreakInfo(
            current_streak=user.current_streak,
            longest_streak=user.longest_streak,
            perfect_streak=user.perfect_streak,
            bonus_tier=bonus.tier.value,
            bonus_percent=bonus.percent,
            streak_start_date=count.streak_start_date,
            days_until_next_tier=days_until_next_tier(user.current_streak),
        )
