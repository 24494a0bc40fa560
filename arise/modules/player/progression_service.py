"""
Player Progression Service
==========================

Purpose
-------
Creates and reads the per-user progression row. XP, level and streak
fields are written elsewhere (XP ledger, streak service); this service
only owns registration and the profile settings that feed the progression
rules: the user's timezone (day boundaries, weekend bonus) and the active
title.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

from arise.core.database.service import DatabaseService
from arise.core.event.types import EventName
from arise.core.logging.logger import get_logger
from arise.core.validation.input_validator import InputValidator
from arise.database.models import UserProgression
from arise.domain.progression.debuff import is_debuff_active
from arise.domain.progression.level_curve import xp_to_next_level
from arise.domain.progression.streak import streak_bonus
from arise.modules.player.repository import UserProgressionRepository
from arise.modules.shared.base_service import BaseService
from arise.modules.shared.exceptions import NotFoundError, ValidationError

if TYPE_CHECKING:
    from logging import Logger

    from arise.core.clock import Clock
    from arise.core.config.manager import ConfigManager
    from arise.core.event.bus import EventBus


class PlayerProgressionService(BaseService):
    """
    Public Methods
    --------------
    - register_user() -> Create the progression row
    - get_progression() -> Level, XP, streak and debuff snapshot
    - set_timezone() -> Change the IANA timezone
    - set_active_title() -> Equip or clear a title
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

    def _snapshot(self, user: UserProgression) -> Dict[str, Any]:
        progress = xp_to_next_level(
            user.total_xp,
            base_xp=int(self.get_config("progression.level_curve.base_xp", 100)),
            exponent=float(self.get_config("progression.level_curve.exponent", 1.5)),
        )
        bonus = streak_bonus(user.current_streak)
        return {
            "user_id": user.user_id,
            "timezone": user.timezone,
            "total_xp": user.total_xp,
            "level": user.level,
            "level_progress": progress.to_dict(),
            "current_streak": user.current_streak,
            "longest_streak": user.longest_streak,
            "perfect_streak": user.perfect_streak,
            "streak_tier": bonus.tier.value,
            "streak_bonus_percent": bonus.percent,
            "debuff_active": is_debuff_active(user.debuff_active_until, self.clock.now()),
            "debuff_active_until": (
                user.debuff_active_until.isoformat() if user.debuff_active_until else None
            ),
            "active_title_id": user.active_title_id,
        }

    # ========================================================================
    # PUBLIC API - Read Operations
    # ========================================================================

    async def get_progression(self, user_id: str) -> Dict[str, Any]:
        """
        Raises:
            NotFoundError: If the user does not exist
        """
        user_id = InputValidator.validate_user_id(user_id)
        async with DatabaseService.get_session() as session:
            user = await self._users.get_by_user_id(session, user_id)
            if user is None:
                raise NotFoundError("User", user_id)
            return self._snapshot(user)

    # ========================================================================
    # PUBLIC API - Write Operations
    # ========================================================================

    async def register_user(self, user_id: str, timezone: str = "UTC") -> Dict[str, Any]:
        """
        Create a progression row at level 1 with 0 XP.

        Raises:
            ValidationError: Duplicate user or invalid timezone
        """
        user_id = InputValidator.validate_user_id(user_id)
        timezone = InputValidator.validate_timezone(timezone)

        self.log_operation("register_user", user_id=user_id, timezone=timezone)

        async with DatabaseService.get_transaction() as session:
            if await self._users.exists(session, UserProgression.user_id == user_id):
                raise ValidationError("user_id", f"User {user_id} already exists")

            user = UserProgression(
                user_id=user_id,
                timezone=timezone,
                total_xp=0,
                level=1,
                current_streak=0,
                longest_streak=0,
                perfect_streak=0,
            )
            self._users.add(session, user)
            await self._users.flush(session)
            snapshot = self._snapshot(user)

        self.log.info(f"User registered: {user_id}", extra={"user_id": user_id})
        await self.emit_event(EventName.USER_REGISTERED, {"user_id": user_id, "timezone": timezone})
        return snapshot

    async def set_timezone(self, user_id: str, timezone: str) -> Dict[str, Any]:
        user_id = InputValidator.validate_user_id(user_id)
        timezone = InputValidator.validate_timezone(timezone)

        async with (
            DatabaseService.user_lock(user_id),
            DatabaseService.get_transaction() as session,
        ):
            user = await self._users.get_by_user_id(session, user_id, for_update=True)
            if user is None:
                raise NotFoundError("User", user_id)
            old_timezone = user.timezone
            user.timezone = timezone
            snapshot = self._snapshot(user)

        self.log.info(
            "Timezone updated",
            extra={"user_id": user_id, "old_timezone": old_timezone, "new_timezone": timezone},
        )
        return snapshot

    async def set_active_title(self, user_id: str, title_id: Optional[str]) -> Dict[str, Any]:
        """Equip a title; None clears it."""
        user_id = InputValidator.validate_user_id(user_id)
        if title_id is not None:
            title_id = InputValidator.validate_string(
                title_id, "title_id", min_length=1, max_length=64
            )

        async with (
            DatabaseService.user_lock(user_id),
            DatabaseService.get_transaction() as session,
        ):
            user = await self._users.get_by_user_id(session, user_id, for_update=True)
            if user is None:
                raise NotFoundError("User", user_id)
            user.active_title_id = title_id
            snapshot = self._snapshot(user)

        await self.emit_event(EventName.TITLE_CHANGED, {"user_id": user_id, "title_id": title_id})
        return snapshot
