"""
Quest Lifecycle Service
=======================

Undo paths for quest logs.

- `reset_quest` returns a COMPLETED quest to ACTIVE. The XP it credited is
  taken back with one MANUAL_ADJUSTMENT removal event, so the ledger keeps
  both the award and its reversal.
- `remove_quest` deletes a bonus quest the user activated but no longer
  wants. Core quests and completed quests cannot be removed.

Events
------
- quest.reset
- quest.removed
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from arise.core.database.service import DatabaseService
from arise.core.event.types import EventName
from arise.core.logging.logger import get_logger
from arise.core.validation.input_validator import InputValidator
from arise.database.models import QuestLog, QuestStatus, UserProgression, XPEventSource
from arise.modules.player.repository import UserProgressionRepository
from arise.modules.quest.repository import QuestLogRepository
from arise.modules.shared.base_service import BaseService
from arise.modules.shared.exceptions import (
    InvalidOperationError,
    InvalidStateError,
    NotFoundError,
)

if TYPE_CHECKING:
    from logging import Logger

    from arise.core.clock import Clock
    from arise.core.config.manager import ConfigManager
    from arise.core.event.bus import EventBus
    from arise.modules.daily.service import DailyLogService
    from arise.modules.streak.service import StreakService
    from arise.modules.xp.service import XPService


@dataclass(frozen=True)
class QuestResetResult:
    quest: QuestLog
    xp_removed: int
    new_level: int


class QuestLifecycleService(BaseService):
    """
    Public Methods
    --------------
    - reset_quest() -> COMPLETED back to ACTIVE, XP removed
    - remove_quest() -> Delete a non-core, non-completed quest log
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
        daily_log_service: Optional[DailyLogService] = None,
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
        if daily_log_service is None:
            from arise.modules.daily.service import DailyLogService

            daily_log_service = DailyLogService(
                config_manager,
                event_bus,
                get_logger("arise.modules.daily.service"),
                self.clock,
                xp_service=xp_service,
                streak_service=streak_service,
            )

        self.xp_service = xp_service
        self.streak_service = streak_service
        self.daily_log_service = daily_log_service

        self._users = UserProgressionRepository(
            model_class=UserProgression,
            logger=get_logger(f"{__name__}.UserProgressionRepository"),
        )
        self._quest_logs = QuestLogRepository(
            model_class=QuestLog,
            logger=get_logger(f"{__name__}.QuestLogRepository"),
        )

    async def _load(
        self, session: AsyncSession, quest_log_id: int, user_id: str
    ) -> Tuple[UserProgression, QuestLog]:
        """Lock the owner row, then the quest log (the order close_day locks in)."""
        owner = await self._users.get_by_user_id(session, user_id, for_update=True)
        quest = (
            await self._quest_logs.get_for_user(session, quest_log_id, user_id, for_update=True)
            if owner is not None
            else None
        )
        if quest is None:
            raise NotFoundError("QuestLog", quest_log_id)
        return owner, quest

    async def reset_quest(
        self,
        quest_log_id: int,
        user_id: str,
        session: Optional[AsyncSession] = None,
    ) -> QuestResetResult:
        """
        Undo a completion.

        Raises:
            NotFoundError: If the quest log does not exist for this user
            InvalidStateError: If the quest is not COMPLETED
        """
        quest_log_id = InputValidator.validate_id(quest_log_id, "quest_log_id")
        user_id = InputValidator.validate_user_id(user_id)

        self.log_operation("reset_quest", user_id=user_id, quest_log_id=quest_log_id)

        async with (
            DatabaseService.user_lock(user_id),
            DatabaseService.join_transaction(session) as s,
        ):
            owner, quest = await self._load(s, quest_log_id, user_id)
            if quest.status is not QuestStatus.COMPLETED:
                raise InvalidStateError(
                    "QuestLog", quest_log_id, quest.status.value, QuestStatus.COMPLETED.value
                )

            template = quest.template
            xp_to_remove = quest.xp_awarded or 0

            quest.status = QuestStatus.ACTIVE
            quest.current_value = 0
            quest.completion_percent = 0
            quest.completed_at = None
            quest.xp_awarded = None

            if xp_to_remove > 0:
                removal = await self.xp_service.create_xp_removal_event(
                    user_id,
                    XPEventSource.MANUAL_ADJUSTMENT,
                    xp_to_remove,
                    f"Quest reset: {template.name}",
                    source_id=str(quest.id),
                    session=s,
                )
                new_level = removal.new_level
            else:
                new_level = owner.level

            await self.daily_log_service.revert_completion(
                s,
                user_id,
                quest.quest_date,
                is_core=template.is_core,
                xp_removed=xp_to_remove,
            )
            streak = await self.streak_service.update_user_streak(user_id, session=s)
            await self._quest_logs.flush(s)

        self.log.info(
            f"Quest reset: {template.name} (-{xp_to_remove} XP)",
            extra={
                "user_id": user_id,
                "quest_log_id": quest_log_id,
                "xp_removed": xp_to_remove,
                "current_streak": streak.current_streak,
            },
        )
        await self.emit_event(
            EventName.QUEST_RESET,
            {
                "user_id": user_id,
                "quest_log_id": quest_log_id,
                "template_id": quest.template_id,
                "xp_removed": xp_to_remove,
            },
        )

        return QuestResetResult(quest=quest, xp_removed=xp_to_remove, new_level=new_level)

    async def remove_quest(self, quest_log_id: int, user_id: str) -> Dict[str, Any]:
        """
        Delete a bonus quest log.

        Raises:
            NotFoundError: If the quest log does not exist for this user
            InvalidOperationError: Core quest, or already completed
        """
        quest_log_id = InputValidator.validate_id(quest_log_id, "quest_log_id")
        user_id = InputValidator.validate_user_id(user_id)

        async with DatabaseService.user_lock(user_id), DatabaseService.get_transaction() as s:
            _, quest = await self._load(s, quest_log_id, user_id)
            template = quest.template

            if template.is_core:
                raise InvalidOperationError("remove_quest", "Core quests cannot be removed")
            if quest.status is QuestStatus.COMPLETED:
                raise InvalidOperationError(
                    "remove_quest",
                    "Cannot remove a completed quest. Reset it first if you want to remove it.",
                )

            template_id = quest.template_id
            await self._quest_logs.delete(s, quest)

        self.log.info(
            f"Quest removed: {template.name}",
            extra={"user_id": user_id, "quest_log_id": quest_log_id},
        )
        await self.emit_event(
            EventName.QUEST_REMOVED,
            {"user_id": user_id, "quest_log_id": quest_log_id, "template_id": template_id},
        )
        return {"removed": True, "message": f"Quest removed: {template.name}"}
