"""
Daily Log Service
=================

Purpose
-------
Owns the per-day aggregate (`DailyLog`) and the daily rollover.

The quest services call `record_completion` / `revert_completion` inside
their own unit of work so counters, XP and the quest log always move
together. `close_day` is the explicit end-of-day step: it closes the log,
expires whatever is still ACTIVE, recomputes the streak and checks the
debuff rule.

Perfect day
-----------
A day is perfect when it has at least one core quest and every core quest
was completed. It is recomputed on every completion and reset, so
resetting a core quest always clears it.

Events
------
- day.closed
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING, Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from arise.core.clock import local_date
from arise.core.database.service import DatabaseService
from arise.core.event.types import EventName
from arise.core.logging.logger import LogContext, get_logger
from arise.core.validation.input_validator import InputValidator
from arise.database.models import DailyLog, QuestLog, QuestTemplate, UserProgression
from arise.domain.progression.level_curve import LevelProgress
from arise.modules.daily.repository import DailyLogRepository
from arise.modules.player.repository import UserProgressionRepository
from arise.modules.quest.repository import QuestLogRepository, QuestTemplateRepository
from arise.modules.shared.base_service import BaseService
from arise.modules.shared.exceptions import NotFoundError

if TYPE_CHECKING:
    from logging import Logger

    from arise.core.clock import Clock
    from arise.core.config.manager import ConfigManager
    from arise.core.event.bus import EventBus
    from arise.modules.debuff.service import DebuffService
    from arise.modules.streak.service import StreakService
    from arise.modules.xp.service import XPService


def serialize_daily_log(log: DailyLog) -> Dict[str, Any]:
    return {
        "user_id": log.user_id,
        "date": log.log_date.isoformat(),
        "core_quests_total": log.core_quests_total,
        "core_quests_completed": log.core_quests_completed,
        "bonus_quests_completed": log.bonus_quests_completed,
        "xp_earned": log.xp_earned,
        "is_perfect_day": log.is_perfect_day,
        "had_debuff": log.had_debuff,
        "closed_at": log.closed_at.isoformat() if log.closed_at else None,
    }


@dataclass(frozen=True)
class DaySummary:
    date: date
    day_number: int
    core_quests_completed: int
    core_quests_total: int
    bonus_quests_completed: int
    xp_earned: int
    is_perfect_day: bool
    expired_quests: int
    current_streak: int
    streak_bonus_percent: int
    debuff_applied: bool
    debuff_reason: str
    level: int
    level_progress: LevelProgress

    @property
    def streak_maintained(self) -> bool:
        return self.current_streak > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "day_number": self.day_number,
            "core_quests_completed": self.core_quests_completed,
            "core_quests_total": self.core_quests_total,
            "bonus_quests_completed": self.bonus_quests_completed,
            "xp_earned": self.xp_earned,
            "is_perfect_day": self.is_perfect_day,
            "expired_quests": self.expired_quests,
            "streak_maintained": self.streak_maintained,
            "current_streak": self.current_streak,
            "streak_bonus_percent": self.streak_bonus_percent,
            "debuff_applied": self.debuff_applied,
            "debuff_reason": self.debuff_reason,
            "level": self.level,
            "level_progress": self.level_progress.to_dict(),
        }


class DailyLogService(BaseService):
    """
    Public Methods
    --------------
    - get_daily_log() -> Aggregate for one day (today by default)
    - close_day() -> Daily rollover, returns a DaySummary

    Unit-of-work helpers (caller passes its session)
    ------------------------------------------------
    - ensure_daily_log()
    - record_completion() / revert_completion()
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        clock: Optional[Clock] = None,
        *,
        xp_service: Optional[XPService] = None,
        streak_service: Optional[StreakService] = None,
        debuff_service: Optional[DebuffService] = None,
    ) -> None:
        super().__init__(config_manager, event_bus, logger, clock)

        if xp_service is None:
            from arise.modules.xp.service import XPService

            xp_service = XPService(
                config_manager, event_bus, get_logger("arise.modules.xp.service"), self.clock
            )
        if streak_service is None:
            from arise.modules.streak.service import StreakService

            streak_service = StreakService(
                config_manager, event_bus, get_logger("arise.modules.streak.service"), self.clock
            )
        if debuff_service is None:
            from arise.modules.debuff.service import DebuffService

            debuff_service = DebuffService(
                config_manager, event_bus, get_logger("arise.modules.debuff.service"), self.clock
            )

        self.xp_service = xp_service
        self.streak_service = streak_service
        self.debuff_service = debuff_service

        self._users = UserProgressionRepository(
            model_class=UserProgression,
            logger=get_logger(f"{__name__}.UserProgressionRepository"),
        )
        self._daily_logs = DailyLogRepository(
            model_class=DailyLog,
            logger=get_logger(f"{__name__}.DailyLogRepository"),
        )
        self._templates = QuestTemplateRepository(
            model_class=QuestTemplate,
            logger=get_logger(f"{__name__}.QuestTemplateRepository"),
        )
        self._quest_logs = QuestLogRepository(
            model_class=QuestLog,
            logger=get_logger(f"{__name__}.QuestLogRepository"),
        )

    # ========================================================================
    # UNIT-OF-WORK HELPERS
    # ========================================================================

    async def ensure_daily_log(
        self, session: AsyncSession, user_id: str, log_date: date
    ) -> DailyLog:
        """Locked daily log for the day, created with the active core count if missing."""
        log = await self._daily_logs.for_day(session, user_id, log_date, for_update=True)
        if log is not None:
            return log

        log = DailyLog(
            user_id=user_id,
            log_date=log_date,
            core_quests_total=await self._templates.count_active_core(session),
            core_quests_completed=0,
            bonus_quests_completed=0,
            xp_earned=0,
            is_perfect_day=False,
            had_debuff=False,
        )
        self._daily_logs.add(session, log)
        await self._daily_logs.flush(session)
        return log

    @staticmethod
    def _refresh_perfect_day(log: DailyLog) -> None:
        log.is_perfect_day = (
            log.core_quests_total > 0 and log.core_quests_completed >= log.core_quests_total
        )

    async def record_completion(
        self,
        session: AsyncSession,
        user_id: str,
        log_date: date,
        *,
        is_core: bool,
        xp_earned: int,
    ) -> DailyLog:
        log = await self.ensure_daily_log(session, user_id, log_date)
        if is_core:
            log.core_quests_completed += 1
        else:
            log.bonus_quests_completed += 1
        log.xp_earned += xp_earned
        self._refresh_perfect_day(log)
        await self._daily_logs.flush(session)
        return log

    async def revert_completion(
        self,
        session: AsyncSession,
        user_id: str,
        log_date: date,
        *,
        is_core: bool,
        xp_removed: int,
    ) -> Optional[DailyLog]:
        """Undo one completion; counters and XP never go below zero."""
        log = await self._daily_logs.for_day(session, user_id, log_date, for_update=True)
        if log is None:
            return None

        if is_core:
            log.core_quests_completed = max(0, log.core_quests_completed - 1)
        else:
            log.bonus_quests_completed = max(0, log.bonus_quests_completed - 1)
        log.xp_earned = max(0, log.xp_earned - xp_removed)
        self._refresh_perfect_day(log)
        await self._daily_logs.flush(session)
        return log

    # ========================================================================
    # PUBLIC API
    # ========================================================================

    async def get_daily_log(
        self, user_id: str, log_date: Optional[date] = None
    ) -> Optional[Dict[str, Any]]:
        """The day's aggregate, or None when nothing was recorded that day."""
        user_id = InputValidator.validate_user_id(user_id)

        async with DatabaseService.get_session() as session:
            user = await self._users.get_by_user_id(session, user_id)
            if user is None:
                raise NotFoundError("User", user_id)
            log_date = log_date or local_date(self.clock.now(), user.timezone)
            log = await self._daily_logs.for_day(session, user_id, log_date)
            return serialize_daily_log(log) if log is not None else None

    async def close_day(self, user_id: str) -> DaySummary:
        """
        Daily rollover for the user's current local day.

        Closing twice is harmless: the close timestamp is kept and the
        summary is rebuilt from the stored aggregate.

        Raises:
            NotFoundError: If the user does not exist
        """
        async with LogContext(user_id=user_id, operation="close_day"):
            return await self._close_day(user_id)

    async def _close_day(self, user_id: str) -> DaySummary:
        user_id = InputValidator.validate_user_id(user_id)
        self.log_operation("close_day", user_id=user_id)

        async with DatabaseService.user_lock(user_id), DatabaseService.get_transaction() as s:
            user = await self._users.get_by_user_id(s, user_id, for_update=True)
            if user is None:
                raise NotFoundError("User", user_id)

            now = self.clock.now()
            today = local_date(now, user.timezone)

            log = await self.ensure_daily_log(s, user_id, today)
            if log.closed_at is None:
                log.closed_at = now

            expired = await self._quest_logs.expire_active(s, user_id, today)

            streak = await self.streak_service.update_user_streak(user_id, session=s)
            debuff = await self.debuff_service.check_and_apply_debuff(user_id, today, session=s)

            day_number = await self._daily_logs.count(
                s, DailyLog.user_id == user_id, DailyLog.log_date <= today
            )

            summary = DaySummary(
                date=today,
                day_number=max(1, day_number),
                core_quests_completed=log.core_quests_completed,
                core_quests_total=log.core_quests_total,
                bonus_quests_completed=log.bonus_quests_completed,
                xp_earned=log.xp_earned,
                is_perfect_day=log.is_perfect_day,
                expired_quests=expired,
                current_streak=streak.current_streak,
                streak_bonus_percent=streak.bonus_percent,
                debuff_applied=debuff.applied,
                debuff_reason=debuff.reason,
                level=user.level,
                level_progress=self.xp_service.progress_for(user.total_xp),
            )

        self.log.info(
            f"Day closed: {summary.core_quests_completed}/{summary.core_quests_total} core quests",
            extra={
                "user_id": user_id,
                "date": today.isoformat(),
                "expired_quests": expired,
                "current_streak": summary.current_streak,
                "debuff_applied": summary.debuff_applied,
            },
        )

        await self.emit_event(EventName.DAY_CLOSED, {"user_id": user_id, **summary.to_dict()})
        return summary
