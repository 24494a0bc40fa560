"""
Quest Catalog Service
=====================

Templates and the daily quest board.

Quest logs are created lazily: the first `get_today_quests` call of a
user's local day creates one ACTIVE log per active core template plus the
day's aggregate. Bonus quests are opted into with `activate_bonus_quest`.

Requirement trees are parsed on the way in, so only well-formed trees are
ever stored; the stored copy is the normalized form.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Union

from arise.core.clock import local_date
from arise.core.database.service import DatabaseService
from arise.core.event.types import EventName
from arise.core.logging.logger import get_logger
from arise.core.validation.input_validator import InputValidator
from arise.database.models import (
    QuestCategory,
    QuestLog,
    QuestStatus,
    QuestTemplate,
    QuestType,
    UserProgression,
)
from arise.domain.models.base import DomainValidationError
from arise.domain.quests.requirements import parse_requirement, target_value
from arise.modules.player.repository import UserProgressionRepository
from arise.modules.quest.progress_service import serialize_quest_log, template_requirement
from arise.modules.quest.repository import QuestLogRepository, QuestTemplateRepository
from arise.modules.shared.base_service import BaseService
from arise.modules.shared.exceptions import InvalidOperationError, NotFoundError, ValidationError

if TYPE_CHECKING:
    from logging import Logger

    from arise.core.clock import Clock
    from arise.core.config.manager import ConfigManager
    from arise.core.event.bus import EventBus
    from arise.modules.daily.service import DailyLogService


def serialize_template(template: QuestTemplate) -> Dict[str, Any]:
    return {
        "id": template.id,
        "name": template.name,
        "description": template.description,
        "type": template.type.value,
        "category": template.category.value,
        "requirement": template.requirement,
        "base_xp": template.base_xp,
        "allow_partial": template.allow_partial,
        "min_partial_percent": template.min_partial_percent,
        "is_core": template.is_core,
        "is_active": template.is_active,
        "owner_user_id": template.owner_user_id,
    }


class QuestCatalogService(BaseService):
    """
    Public Methods
    --------------
    - create_template() -> Validate and store a quest template
    - list_templates() -> Active templates visible to a user
    - get_today_quests() -> Today's quest logs, created on first access
    - activate_bonus_quest() -> Opt into a non-core template for today
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        clock: Optional[Clock] = None,
        *,
        daily_log_service: Optional[DailyLogService] = None,
    ) -> None:
        super().__init__(config_manager, event_bus, logger, clock)

        if daily_log_service is None:
            from arise.modules.daily.service import DailyLogService

            daily_log_service = DailyLogService(
                config_manager, event_bus, get_logger("arise.modules.daily.service"), self.clock
            )
        self.daily_log_service = daily_log_service

        self._users = UserProgressionRepository(
            model_class=UserProgression,
            logger=get_logger(f"{__name__}.UserProgressionRepository"),
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
    # TEMPLATES
    # ========================================================================

    async def create_template(
        self,
        name: str,
        category: Union[QuestCategory, str],
        requirement: Mapping[str, Any],
        base_xp: int,
        description: str = "",
        quest_type: Union[QuestType, str] = QuestType.DAILY,
        allow_partial: bool = False,
        min_partial_percent: Optional[int] = None,
        is_core: bool = False,
        owner_user_id: Optional[str] = None,
    ) -> QuestTemplate:
        """
        Raises:
            ValidationError: Bad field values or a malformed requirement tree
        """
        name = InputValidator.validate_string(name, "name", min_length=1, max_length=120)
        description = InputValidator.validate_string(description, "description", max_length=2000)
        category_enum = QuestCategory(
            InputValidator.validate_choice(category, "category", [c.value for c in QuestCategory])
        )
        type_enum = QuestType(
            InputValidator.validate_choice(quest_type, "quest_type", [t.value for t in QuestType])
        )
        base_xp = InputValidator.validate_positive_integer(base_xp, "base_xp")
        if min_partial_percent is None:
            min_partial_percent = int(
                self.get_config("progression.quests.default_min_partial_percent", 50)
            )
        min_partial_percent = InputValidator.validate_integer(
            min_partial_percent, "min_partial_percent", min_value=1, max_value=100
        )
        if owner_user_id is not None:
            owner_user_id = InputValidator.validate_user_id(owner_user_id, "owner_user_id")
            if is_core:
                raise ValidationError("is_core", "User-owned quests cannot be core quests")

        try:
            parsed = parse_requirement(requirement)
        except DomainValidationError as exc:
            raise ValidationError(exc.field or "requirement", str(exc)) from exc

        self.log_operation(
            "create_template", name=name, category=category_enum.value, is_core=is_core
        )

        async with DatabaseService.get_transaction() as s:
            template = QuestTemplate(
                name=name,
                description=description,
                type=type_enum,
                category=category_enum,
                requirement=parsed.to_dict(),
                base_xp=base_xp,
                allow_partial=bool(allow_partial),
                min_partial_percent=min_partial_percent,
                is_core=bool(is_core),
                is_active=True,
                owner_user_id=owner_user_id,
            )
            self._templates.add(s, template)
            await self._templates.flush(s)

        self.log.info(
            f"Quest template created: {name}",
            extra={"template_id": template.id, "base_xp": base_xp, "is_core": template.is_core},
        )
        return template

    async def list_templates(self, user_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Active shared templates, plus the user's own when `user_id` is given."""
        visible = QuestTemplate.owner_user_id.is_(None)
        if user_id is not None:
            user_id = InputValidator.validate_user_id(user_id)
            visible = visible | (QuestTemplate.owner_user_id == user_id)

        async with DatabaseService.get_session() as session:
            templates = await self._templates.find_many_where(
                session,
                QuestTemplate.is_active.is_(True),
                visible,
                order_by=(QuestTemplate.id,),
            )
            return [serialize_template(t) for t in templates]

    # ========================================================================
    # DAILY BOARD
    # ========================================================================

    async def get_today_quests(self, user_id: str) -> List[Dict[str, Any]]:
        """
        Today's quest logs in the user's timezone.

        Missing core logs are created on the way; the day's aggregate is
        created too and its core total follows the core logs of the day
        until the day is closed.

        Raises:
            NotFoundError: If the user does not exist
        """
        user_id = InputValidator.validate_user_id(user_id)

        async with DatabaseService.user_lock(user_id), DatabaseService.get_transaction() as s:
            user = await self._users.get_by_user_id(s, user_id)
            if user is None:
                raise NotFoundError("User", user_id)
            today = local_date(self.clock.now(), user.timezone)

            logs = await self._quest_logs.for_day(s, user_id, today)
            assigned = {log.template_id for log in logs}

            created = 0
            for template in await self._templates.active_core(s):
                if template.id in assigned:
                    continue
                quest = QuestLog(
                    user_id=user_id,
                    template_id=template.id,
                    template=template,
                    quest_date=today,
                    status=QuestStatus.ACTIVE,
                    current_value=0,
                    target_value=target_value(template_requirement(template)),
                    completion_percent=0,
                )
                self._quest_logs.add(s, quest)
                logs.append(quest)
                created += 1

            await self._quest_logs.flush(s)

            daily_log = await self.daily_log_service.ensure_daily_log(s, user_id, today)
            if daily_log.closed_at is None:
                daily_log.core_quests_total = sum(1 for log in logs if log.template.is_core)

            result = [serialize_quest_log(log) for log in logs]

        if created:
            self.log.info(
                f"Created {created} core quests for {today.isoformat()}",
                extra={"user_id": user_id, "date": today.isoformat(), "created": created},
            )
        return result

    async def activate_bonus_quest(self, user_id: str, template_id: int) -> Dict[str, Any]:
        """
        Add a non-core template to today's board.

        Raises:
            NotFoundError: Unknown, inactive or foreign template; unknown user
            InvalidOperationError: Core or weekly template, or already active today
        """
        user_id = InputValidator.validate_user_id(user_id)
        template_id = InputValidator.validate_id(template_id, "template_id")

        async with DatabaseService.user_lock(user_id), DatabaseService.get_transaction() as s:
            user = await self._users.get_by_user_id(s, user_id)
            if user is None:
                raise NotFoundError("User", user_id)

            template = await self._templates.get(s, template_id)
            if (
                template is None
                or not template.is_active
                or template.owner_user_id not in (None, user_id)
            ):
                raise NotFoundError("QuestTemplate", template_id)
            if template.is_core:
                raise InvalidOperationError(
                    "activate_bonus_quest", "Core quests are assigned automatically"
                )
            if template.type is QuestType.WEEKLY:
                raise InvalidOperationError(
                    "activate_bonus_quest", "Weekly quests cannot be activated as daily quests"
                )

            today = local_date(self.clock.now(), user.timezone)
            if await self._quest_logs.for_template(s, user_id, template_id, today) is not None:
                raise InvalidOperationError("activate_bonus_quest", "Quest already active")

            quest = QuestLog(
                user_id=user_id,
                template_id=template.id,
                template=template,
                quest_date=today,
                status=QuestStatus.ACTIVE,
                current_value=0,
                target_value=target_value(template_requirement(template)),
                completion_percent=0,
            )
            self._quest_logs.add(s, quest)
            await self._quest_logs.flush(s)
            result = serialize_quest_log(quest)

        self.log.info(
            f"Bonus quest activated: {template.name}",
            extra={"user_id": user_id, "template_id": template_id, "quest_log_id": result["id"]},
        )
        await self.emit_event(
            EventName.QUEST_ACTIVATED,
            {"user_id": user_id, "template_id": template_id, "quest_log_id": result["id"]},
        )
        return result
