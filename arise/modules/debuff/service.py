"""
Debuff Service
==============

Missing too many core quests on a day applies a temporary XP penalty.
The penalty itself is the pure `debuff_modifier`; this service decides
when to apply it and stores `debuff_active_until` on the user row.

Config
------
- progression.debuff.penalty_percent (10)
- progression.debuff.duration_hours (24)
- progression.debuff.min_missed_core_quests (2)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from arise.core.clock import local_date
from arise.core.database.service import DatabaseService
from arise.core.event.types import EventName
from arise.core.logging.logger import get_logger
from arise.core.validation.input_validator import InputValidator
from arise.database.models import DailyLog, UserProgression
from arise.domain.progression.debuff import hours_remaining, is_debuff_active
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
class DebuffStatus:
    is_active: bool
    expires_at: Optional[datetime]
    hours_remaining: Optional[int]
    penalty_percent: int


@dataclass(frozen=True)
class DebuffCheck:
    applied: bool
    reason: str
    expires_at: Optional[datetime] = None


class DebuffService(BaseService):
    """
    Public Methods
    --------------
    - get_debuff_status() -> Current debuff state of a user
    - apply_debuff() -> Start a debuff now
    - check_and_apply_debuff() -> Apply if a day missed enough core quests
    - clear_expired_debuffs() -> Null out expired timestamps
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

    @property
    def penalty_percent(self) -> int:
        return int(self.get_config("progression.debuff.penalty_percent", 10))

    async def get_debuff_status(self, user_id: str) -> DebuffStatus:
        user_id = InputValidator.validate_user_id(user_id)
        async with DatabaseService.get_session() as session:
            user = await self._users.get_by_user_id(session, user_id)
            if user is None:
                raise NotFoundError("User", user_id)

        now = self.clock.now()
        if not is_debuff_active(user.debuff_active_until, now):
            return DebuffStatus(
                is_active=False, expires_at=None, hours_remaining=None, penalty_percent=0
            )
        return DebuffStatus(
            is_active=True,
            expires_at=user.debuff_active_until,
            hours_remaining=hours_remaining(user.debuff_active_until, now),
            penalty_percent=self.penalty_percent,
        )

    async def _apply(self, session: AsyncSession, user: UserProgression) -> datetime:
        now = self.clock.now()
        duration = int(self.get_config("progression.debuff.duration_hours", 24))
        expires_at = now + timedelta(hours=duration)
        user.debuff_active_until = expires_at

        today_log = await self._daily_logs.for_day(
            session, user.user_id, local_date(now, user.timezone), for_update=True
        )
        if today_log is not None:
            today_log.had_debuff = True
        return expires_at

    async def apply_debuff(
        self, user_id: str, session: Optional[AsyncSession] = None
    ) -> datetime:
        """
        Start a debuff lasting `duration_hours` from now.

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
            expires_at = await self._apply(s, user)

        self.log.info(
            "Debuff applied",
            extra={"user_id": user_id, "expires_at": expires_at.isoformat()},
        )
        await self.emit_event(
            EventName.DEBUFF_APPLIED,
            {
                "user_id": user_id,
                "expires_at": expires_at.isoformat(),
                "penalty_percent": self.penalty_percent,
            },
        )
        return expires_at

    async def check_and_apply_debuff(
        self,
        user_id: str,
        log_date: date,
        session: Optional[AsyncSession] = None,
    ) -> DebuffCheck:
        """Apply a debuff when `log_date` missed at least the configured number of core quests."""
        user_id = InputValidator.validate_user_id(user_id)
        min_missed = int(self.get_config("progression.debuff.min_missed_core_quests", 2))

        async with (
            DatabaseService.user_lock(user_id),
            DatabaseService.join_transaction(session) as s,
        ):
            daily_log = await self._daily_logs.for_day(s, user_id, log_date)
            if daily_log is None:
                return DebuffCheck(applied=False, reason="No daily log found")

            missed = daily_log.core_quests_total - daily_log.core_quests_completed
            if missed < min_missed:
                return DebuffCheck(
                    applied=False,
                    reason=f"Only missed {missed} core quests (min: {min_missed})",
                )

            user = await self._users.get_by_user_id(s, user_id, for_update=True)
            if user is None:
                raise NotFoundError("User", user_id)
            if is_debuff_active(user.debuff_active_until, self.clock.now()):
                return DebuffCheck(applied=False, reason="Debuff already active")

            expires_at = await self._apply(s, user)

        self.log.info(
            "Debuff applied for missed core quests",
            extra={"user_id": user_id, "missed": missed, "log_date": log_date.isoformat()},
        )
        await self.emit_event(
            EventName.DEBUFF_APPLIED,
            {
                "user_id": user_id,
                "expires_at": expires_at.isoformat(),
                "penalty_percent": self.penalty_percent,
                "missed_core_quests": missed,
            },
        )
        return DebuffCheck(
            applied=True, reason=f"Missed {missed} core quests", expires_at=expires_at
        )

    async def clear_expired_debuffs(self) -> int:
        """Clear every debuff whose expiry has passed; returns the row count."""
        now = self.clock.now()
        async with DatabaseService.get_transaction() as session:
            result = await session.execute(
                update(UserProgression)
                .where(UserProgression.debuff_active_until.is_not(None))
                .where(UserProgression.debuff_active_until <= now)
                .values(debuff_active_until=None)
                .execution_options(synchronize_session=False)
            )
            cleared = int(result.rowcount or 0)

        self.log.info("Expired debuffs cleared", extra={"count": cleared})
        return cleared
