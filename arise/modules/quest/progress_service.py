"""
Quest Progress Service
======================

Purpose
-------
Turns a metric submission into quest progress. A single call evaluates the
quest's requirement, credits XP through the ledger, updates the day's
aggregate and recomputes the streak, all in one transaction: either every
effect lands or none does.

Completion rules
----------------
- Requirement met: COMPLETED, `base_xp` awarded ("Completed quest: {name}")
- Partial allowed and progress >= `min_partial_percent`: COMPLETED,
  `floor(base_xp * progress / 100)` awarded
  ("Partially completed quest: {name} (N%)")
- Otherwise the quest stays ACTIVE with updated progress only

The quest log stores the XP actually credited (after modifiers), which is
exactly what a later reset removes.

Events
------
- quest.completed (after commit of a standalone call)
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from arise.core.clock import local_date
from arise.core.database.service import DatabaseService
from arise.core.event.types import EventName
from arise.core.logging.logger import LogContext, get_logger
from arise.core.validation.input_validator import InputValidator
from arise.database.models import (
    QuestLog,
    QuestStatus,
    QuestTemplate,
    UserProgression,
    XPEventSource,
)
from arise.domain.models.base import DomainValidationError
from arise.domain.quests.requirements import (
    Requirement,
    current_value,
    evaluate,
    parse_requirement,
    required_metrics,
)
from arise.modules.player.repository import UserProgressionRepository
from arise.modules.quest.repository import QuestLogRepository
from arise.modules.shared.base_service import BaseService
from arise.modules.shared.exceptions import InvalidStateError, NotFoundError, ValidationError

if TYPE_CHECKING:
    from logging import Logger

    from arise.core.clock import Clock
    from arise.core.config.manager import ConfigManager
    from arise.core.event.bus import EventBus
    from arise.modules.daily.service import DailyLogService
    from arise.modules.streak.service import StreakService
    from arise.modules.xp.service import XPService


def serialize_quest_log(quest: QuestLog) -> Dict[str, Any]:
    template = quest.template
    return {
        "id": quest.id,
        "template_id": quest.template_id,
        "name": template.name,
        "description": template.description,
        "type": template.type.value,
        "category": template.category.value,
        "requirement": template.requirement,
        "base_xp": template.base_xp,
        "allow_partial": template.allow_partial,
        "min_partial_percent": template.min_partial_percent,
        "is_core": template.is_core,
        "status": quest.status.value,
        "current_value": quest.current_value,
        "target_value": quest.target_value,
        "completion_percent": quest.completion_percent,
        "completed_at": quest.completed_at.isoformat() if quest.completed_at else None,
        "xp_awarded": quest.xp_awarded,
        "quest_date": quest.quest_date.isoformat(),
    }


def template_requirement(template: QuestTemplate) -> Requirement:
    """Parse a stored requirement, surfacing corruption as a ValidationError."""
    try:
        return parse_requirement(template.requirement)
    except DomainValidationError as exc:
        raise ValidationError(exc.field or "requirement", str(exc)) from exc


@dataclass(frozen=True)
class QuestProgressResult:
    quest: QuestLog
    xp_awarded: int
    leveled_up: bool
    new_level: int

    @property
    def completed(self) -> bool:
        return self.quest.status is QuestStatus.COMPLETED


@dataclass(frozen=True)
class QuestEvaluationSummary:
    evaluated: int
    completed: int
    results: List[QuestProgressResult] = field(default_factory=list)


class QuestProgressService(BaseService):
    """
    Public Methods
    --------------
    - update_quest_progress() -> Evaluate one quest against metric data
    - evaluate_active_quests() -> Evaluate every ACTIVE quest of today that
      the data can speak to
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

    async def update_quest_progress(
        self,
        quest_log_id: int,
        user_id: str,
        data: Mapping[str, Any],
        session: Optional[AsyncSession] = None,
    ) -> QuestProgressResult:
        """
        Evaluate one quest log against submitted metrics.

        Raises:
            NotFoundError: If the quest log does not exist for this user
            InvalidStateError: If the quest is not ACTIVE (nothing is written)
            ValidationError: Malformed metric data
        """
        async with LogContext(
            user_id=user_id, quest_log_id=quest_log_id, operation="update_quest_progress"
        ):
            return await self._update_quest_progress(quest_log_id, user_id, data, session)

    async def _update_quest_progress(
        self,
        quest_log_id: int,
        user_id: str,
        data: Mapping[str, Any],
        session: Optional[AsyncSession],
    ) -> QuestProgressResult:
        quest_log_id = InputValidator.validate_id(quest_log_id, "quest_log_id")
        user_id = InputValidator.validate_user_id(user_id)
        data = InputValidator.validate_metric_data(data)

        self.log_operation(
            "update_quest_progress",
            user_id=user_id,
            quest_log_id=quest_log_id,
            metrics=sorted(data),
        )

        xp_awarded = 0
        leveled_up = False

        async with (
            DatabaseService.user_lock(user_id),
            DatabaseService.join_transaction(session) as s,
        ):
            # users before quest_logs, the order close_day locks in
            owner = await self._users.get_by_user_id(s, user_id, for_update=True)
            quest = (
                await self._quest_logs.get_for_user(s, quest_log_id, user_id, for_update=True)
                if owner is not None
                else None
            )
            if quest is None:
                raise NotFoundError("QuestLog", quest_log_id)
            if quest.status is not QuestStatus.ACTIVE:
                raise InvalidStateError(
                    "QuestLog", quest_log_id, quest.status.value, QuestStatus.ACTIVE.value
                )

            template = quest.template
            requirement = template_requirement(template)
            result = evaluate(requirement, data)
            progress = result.progress

            partial = (
                not result.met
                and template.allow_partial
                and progress >= template.min_partial_percent
            )
            completed = result.met or partial

            new_level = owner.level

            if completed:
                if partial:
                    award_amount = math.floor(template.base_xp * progress / 100)
                    description = (
                        f"Partially completed quest: {template.name} ({math.floor(progress)}%)"
                    )
                else:
                    award_amount = template.base_xp
                    description = f"Completed quest: {template.name}"

                award = await self.xp_service.create_xp_event(
                    user_id,
                    XPEventSource.QUEST_COMPLETION,
                    award_amount,
                    description,
                    source_id=str(quest.id),
                    session=s,
                )
                xp_awarded = award.final_amount
                leveled_up = award.leveled_up
                new_level = award.new_level

            quest.current_value = current_value(requirement, data, result)
            quest.completion_percent = progress

            if completed:
                quest.status = QuestStatus.COMPLETED
                quest.completed_at = self.clock.now()
                quest.xp_awarded = xp_awarded if xp_awarded > 0 else None

                await self.daily_log_service.record_completion(
                    s,
                    user_id,
                    quest.quest_date,
                    is_core=template.is_core,
                    xp_earned=xp_awarded,
                )
                await self.streak_service.update_user_streak(user_id, session=s)

            await self._quest_logs.flush(s)

        progress_result = QuestProgressResult(
            quest=quest,
            xp_awarded=xp_awarded,
            leveled_up=leveled_up,
            new_level=new_level,
        )

        if completed:
            self.log.info(
                f"Quest completed: {template.name} (+{xp_awarded} XP)",
                extra={
                    "user_id": user_id,
                    "quest_log_id": quest_log_id,
                    "progress": progress,
                    "partial": partial,
                    "xp_awarded": xp_awarded,
                },
            )
            await self.emit_event(
                EventName.QUEST_COMPLETED,
                {
                    "user_id": user_id,
                    "quest_log_id": quest_log_id,
                    "template_id": quest.template_id,
                    "is_core": template.is_core,
                    "partial": partial,
                    "xp_awarded": xp_awarded,
                    "leveled_up": leveled_up,
                    "new_level": new_level,
                },
            )
        else:
            self.log.debug(
                "Quest progress updated",
                extra={"user_id": user_id, "quest_log_id": quest_log_id, "progress": progress},
            )

        return progress_result

    async def evaluate_active_quests(
        self, user_id: str, data: Mapping[str, Any]
    ) -> QuestEvaluationSummary:
        """
        Run `update_quest_progress` for today's ACTIVE quests whose
        requirement metrics all appear in `data`.

        Each quest is its own unit of work; a failure on one quest is
        logged and does not roll back the others.
        """
        user_id = InputValidator.validate_user_id(user_id)
        data = InputValidator.validate_metric_data(data)

        async with DatabaseService.get_session() as session:
            user = await self._users.get_by_user_id(session, user_id)
            if user is None:
                raise NotFoundError("User", user_id)
            today = local_date(self.clock.now(), user.timezone)
            candidates = [
                quest.id
                for quest in await self._quest_logs.active_for_day(session, user_id, today)
                if required_metrics(template_requirement(quest.template)) <= data.keys()
            ]

        results: List[QuestProgressResult] = []
        for quest_log_id in candidates:
            try:
                results.append(await self.update_quest_progress(quest_log_id, user_id, data))
            except InvalidStateError as exc:
                # Completed concurrently between the scan and the update
                self.log.warning(
                    "Skipped quest during batch evaluation",
                    extra={"user_id": user_id, "quest_log_id": quest_log_id, "error": str(exc)},
                )

        summary = QuestEvaluationSummary(
            evaluated=len(results),
            completed=sum(1 for r in results if r.completed),
            results=results,
        )
        self.log.info(
            f"Evaluated {summary.evaluated} quests, {summary.completed} completed",
            extra={"user_id": user_id, "evaluated": summary.evaluated},
        )
        return summary
