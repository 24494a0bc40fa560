"""
XP Ledger Service
=================

Purpose
-------
Single writer of XP. Every change to a user's total goes through an
append-only, hash-chained `XPEvent`, written in the same transaction as
the user's cached `total_xp`/`level`.

Award pipeline (`create_xp_event`)
----------------------------------
1. Lock the user row (SELECT ... FOR UPDATE, plus the per-user lock on
   SQLite) and derive the current level from the stored total. Callers
   that pass their own `session` hold `DatabaseService.user_lock(user_id)`
   until their commit.
2. Derive modifiers: streak tier bonus, active debuff penalty, weekend
   bonus (Saturday/Sunday in the user's timezone).
3. Merge with caller-supplied modifiers (caller first), order bonuses
   before penalties, fold with a floor after every step, clamp at zero.
4. Compute new total and level.
5. Chain to the user's most recent event and persist the event, its
   modifier rows and the user's new totals.

Removals (`create_xp_removal_event`) skip modifiers and clamp the total
at zero.

Events
------
- xp.awarded / xp.removed
- progression.level_up / progression.level_down

Read models
-----------
Timeline, per-event modifier breakdown, level progress, per-day totals in
the user's timezone, weekend bonus status and chain verification.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from arise.core.clock import day_bounds_utc, is_weekend, local_date, resolve_timezone
from arise.core.database.service import DatabaseService
from arise.core.event.types import EventName
from arise.core.logging.logger import get_logger
from arise.core.validation.input_validator import InputValidator
from arise.database.models import UserProgression, XPEvent, XPEventModifier, XPEventSource
from arise.domain.models.base import DomainValidationError
from arise.domain.progression.debuff import debuff_modifier
from arise.domain.progression.hash_chain import (
    ChainVerification,
    compute_event_hash,
    truncate_to_millis,
    verify_chain,
)
from arise.domain.progression.level_curve import LevelProgress, level_for_xp, xp_to_next_level
from arise.domain.progression.modifiers import (
    ModifierKind,
    XPModifierSpec,
    apply_modifiers,
    replay_modifiers,
)
from arise.domain.progression.streak import streak_bonus
from arise.modules.player.repository import UserProgressionRepository
from arise.modules.shared.base_service import BaseService
from arise.modules.shared.exceptions import NotFoundError, ValidationError
from arise.modules.xp.repository import XPEventRepository

if TYPE_CHECKING:
    from logging import Logger

    from arise.core.clock import Clock
    from arise.core.config.manager import ConfigManager
    from arise.core.event.bus import EventBus

ModifierInput = Union[XPModifierSpec, Mapping[str, Any]]


@dataclass(frozen=True)
class XPAwardResult:
    event: XPEvent
    previous_level: int
    new_level: int
    leveled_up: bool

    @property
    def final_amount(self) -> int:
        return self.event.final_amount


@dataclass(frozen=True)
class XPRemovalResult:
    event: XPEvent
    previous_level: int
    new_level: int

    @property
    def level_changed(self) -> bool:
        return self.new_level != self.previous_level


def serialize_event(event: XPEvent) -> Dict[str, Any]:
    return {
        "id": event.id,
        "user_id": event.user_id,
        "source": event.source.value,
        "source_id": event.source_id,
        "base_amount": event.base_amount,
        "final_amount": event.final_amount,
        "level_before": event.level_before,
        "level_after": event.level_after,
        "total_xp_before": event.total_xp_before,
        "total_xp_after": event.total_xp_after,
        "hash": event.hash,
        "previous_hash": event.previous_hash,
        "description": event.description,
        "created_at": event.created_at.isoformat(),
        "modifiers": [
            {
                "type": m.type.value,
                "multiplier": str(m.multiplier),
                "description": m.description,
                "order": m.order_index,
            }
            for m in event.modifiers
        ],
    }


class XPService(BaseService):
    """
    Append-only XP ledger.

    Public Methods
    --------------
    - create_xp_event() -> Award XP through the modifier pipeline
    - create_xp_removal_event() -> Subtract XP without modifiers
    - get_xp_timeline() -> Events, newest first
    - get_event_breakdown() -> One event with its running modifier amounts
    - get_level_progress() -> Position inside the current level
    - get_xp_for_date() / get_today_summary() -> Per-day totals
    - get_weekend_bonus_status() -> Whether the weekend bonus applies now
    - verify_user_chain() -> Recompute and check the hash chain
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
        self._xp_events = XPEventRepository(
            model_class=XPEvent,
            logger=get_logger(f"{__name__}.XPEventRepository"),
        )

    # ========================================================================
    # CONFIG
    # ========================================================================

    def _curve_params(self) -> Dict[str, Any]:
        return {
            "base_xp": int(self.get_config("progression.level_curve.base_xp", 100)),
            "exponent": float(self.get_config("progression.level_curve.exponent", 1.5)),
        }

    def level_for(self, total_xp: int) -> int:
        return level_for_xp(total_xp, **self._curve_params())

    def progress_for(self, total_xp: int) -> LevelProgress:
        return xp_to_next_level(total_xp, **self._curve_params())

    def _weekend_percent(self) -> int:
        if not self.get_config("progression.weekend_bonus.enabled", True):
            return 0
        return int(self.get_config("progression.weekend_bonus.percent", 10))

    # ========================================================================
    # MODIFIERS
    # ========================================================================

    @staticmethod
    def _coerce_modifiers(modifiers: Optional[Iterable[ModifierInput]]) -> List[XPModifierSpec]:
        specs: List[XPModifierSpec] = []
        for raw in modifiers or ():
            if isinstance(raw, XPModifierSpec):
                specs.append(raw)
                continue
            try:
                specs.append(
                    XPModifierSpec.of(
                        raw["type"],
                        raw["multiplier"],
                        str(raw.get("description", "")),
                    )
                )
            except KeyError as exc:
                raise ValidationError("modifiers", f"modifier is missing '{exc.args[0]}'") from exc
            except DomainValidationError as exc:
                raise ValidationError(exc.field or "modifiers", str(exc)) from exc
        return specs

    def derive_modifiers(self, user: UserProgression) -> List[XPModifierSpec]:
        """Modifiers implied by the user's own state at the current instant."""
        now = self.clock.now()
        derived: List[XPModifierSpec] = []

        bonus = streak_bonus(user.current_streak)
        if bonus.percent > 0:
            derived.append(
                XPModifierSpec(
                    kind=ModifierKind.STREAK_BONUS,
                    multiplier=Decimal(100 + bonus.percent) / Decimal(100),
                    description=(
                        f"{bonus.tier.value.capitalize()} streak bonus "
                        f"({user.current_streak} days)"
                    ),
                )
            )

        debuff = debuff_modifier(
            user.debuff_active_until,
            now,
            int(self.get_config("progression.debuff.penalty_percent", 10)),
        )
        if debuff.has_debuff:
            derived.append(
                XPModifierSpec(
                    kind=ModifierKind.DEBUFF_PENALTY,
                    multiplier=debuff.multiplier,
                    description=debuff.description,
                )
            )

        weekend_percent = self._weekend_percent()
        if weekend_percent > 0 and is_weekend(now, user.timezone):
            derived.append(
                XPModifierSpec(
                    kind=ModifierKind.WEEKEND_BONUS,
                    multiplier=Decimal(100 + weekend_percent) / Decimal(100),
                    description=f"Weekend bonus (+{weekend_percent}% XP)",
                )
            )

        return derived

    # ========================================================================
    # PUBLIC API - Write Operations
    # ========================================================================

    @staticmethod
    def _parse_source(source: Union[XPEventSource, str]) -> XPEventSource:
        try:
            return XPEventSource(source)
        except ValueError as exc:
            raise ValidationError("source", f"Unknown XP source '{source}'") from exc

    async def _load_user_locked(self, session: AsyncSession, user_id: str) -> UserProgression:
        user = await self._users.get_by_user_id(session, user_id, for_update=True)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    async def _append_event(
        self,
        session: AsyncSession,
        user: UserProgression,
        *,
        source: XPEventSource,
        source_id: Optional[str],
        base_amount: int,
        final_amount: int,
        new_total: int,
        description: str,
        modifier_rows: List[XPEventModifier],
    ) -> XPEvent:
        """Chain, persist and apply one event to the locked user row."""
        created_at = truncate_to_millis(self.clock.now())
        previous = await self._xp_events.latest_for_user(session, user.user_id)
        previous_hash = previous.hash if previous is not None else None
        # Chain order is (created_at, id); never stamp an event before its predecessor
        if previous is not None and previous.created_at > created_at:
            created_at = previous.created_at

        current_xp = user.total_xp
        level_before = self.level_for(current_xp)
        level_after = self.level_for(new_total)

        event = XPEvent(
            user_id=user.user_id,
            source=source,
            source_id=source_id,
            base_amount=base_amount,
            final_amount=final_amount,
            level_before=level_before,
            level_after=level_after,
            total_xp_before=current_xp,
            total_xp_after=new_total,
            hash=compute_event_hash(
                user.user_id, base_amount, final_amount, previous_hash, created_at
            ),
            previous_hash=previous_hash,
            description=description,
            created_at=created_at,
            modifiers=modifier_rows,
        )
        self._xp_events.add(session, event)

        user.total_xp = new_total
        user.level = level_after

        await self._xp_events.flush(session)
        return event

    async def create_xp_event(
        self,
        user_id: str,
        source: Union[XPEventSource, str],
        base_amount: int,
        description: str,
        source_id: Optional[str] = None,
        modifiers: Optional[Iterable[ModifierInput]] = None,
        session: Optional[AsyncSession] = None,
    ) -> XPAwardResult:
        """
        Award XP through the modifier pipeline.

        Negative base amounts are accepted for corrective entries; the
        credited amount is clamped at zero either way.

        Raises:
            NotFoundError: If the user does not exist
            ValidationError: Malformed input (bad source, modifier, amount type)
        """
        user_id = InputValidator.validate_user_id(user_id)
        base_amount = InputValidator.validate_integer(base_amount, "base_amount")
        source_enum = self._parse_source(source)
        caller_modifiers = self._coerce_modifiers(modifiers)

        self.log_operation(
            "create_xp_event",
            user_id=user_id,
            source=source_enum.value,
            base_amount=base_amount,
        )

        async with DatabaseService.user_lock(user_id):
            async with DatabaseService.join_transaction(session) as s:
                user = await self._load_user_locked(s, user_id)
                previous_level = self.level_for(user.total_xp)

                result = apply_modifiers(
                    base_amount, caller_modifiers + self.derive_modifiers(user)
                )
                new_total = user.total_xp + result.final_amount

                event = await self._append_event(
                    s,
                    user,
                    source=source_enum,
                    source_id=source_id,
                    base_amount=base_amount,
                    final_amount=result.final_amount,
                    new_total=new_total,
                    description=description,
                    modifier_rows=[
                        XPEventModifier(
                            type=applied.kind,
                            multiplier=applied.multiplier,
                            description=applied.description,
                            order_index=applied.order_index,
                        )
                        for applied in result.applied
                    ],
                )

        new_level = event.level_after
        leveled_up = new_level > previous_level

        self.log.info(
            f"XP awarded: +{event.final_amount} XP ({base_amount} base)",
            extra={
                "user_id": user_id,
                "source": source_enum.value,
                "event_id": event.id,
                "base_amount": base_amount,
                "final_amount": event.final_amount,
                "modifier_count": len(result.applied),
                "new_total_xp": event.total_xp_after,
                "new_level": new_level,
            },
        )

        await self.emit_event(
            EventName.XP_AWARDED,
            {
                "user_id": user_id,
                "event_id": event.id,
                "source": source_enum.value,
                "source_id": source_id,
                "base_amount": base_amount,
                "final_amount": event.final_amount,
                "total_xp": event.total_xp_after,
            },
        )
        if leveled_up:
            await self.emit_event(
                EventName.LEVEL_UP,
                {
                    "user_id": user_id,
                    "old_level": previous_level,
                    "new_level": new_level,
                    "levels_gained": new_level - previous_level,
                },
            )

        return XPAwardResult(
            event=event,
            previous_level=previous_level,
            new_level=new_level,
            leveled_up=leveled_up,
        )

    async def create_xp_removal_event(
        self,
        user_id: str,
        source: Union[XPEventSource, str],
        amount: int,
        description: str,
        source_id: Optional[str] = None,
        session: Optional[AsyncSession] = None,
    ) -> XPRemovalResult:
        """
        Subtract XP without modifiers.

        The event stores `-amount` as both base and final amount; the user's
        total never drops below zero.

        Raises:
            ValidationError: If amount <= 0 (checked before any write)
            NotFoundError: If the user does not exist
        """
        user_id = InputValidator.validate_user_id(user_id)
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValidationError(
                "amount", f"Amount must be a positive integer (it is subtracted), got {amount}"
            )
        source_enum = self._parse_source(source)

        self.log_operation(
            "create_xp_removal_event",
            user_id=user_id,
            source=source_enum.value,
            amount=amount,
        )

        async with DatabaseService.user_lock(user_id):
            async with DatabaseService.join_transaction(session) as s:
                user = await self._load_user_locked(s, user_id)
                previous_level = self.level_for(user.total_xp)

                event = await self._append_event(
                    s,
                    user,
                    source=source_enum,
                    source_id=source_id,
                    base_amount=-amount,
                    final_amount=-amount,
                    new_total=max(0, user.total_xp - amount),
                    description=description,
                    modifier_rows=[],
                )

        new_level = event.level_after

        self.log.info(
            f"XP removed: -{amount} XP",
            extra={
                "user_id": user_id,
                "source": source_enum.value,
                "event_id": event.id,
                "amount": amount,
                "new_total_xp": event.total_xp_after,
                "new_level": new_level,
            },
        )

        await self.emit_event(
            EventName.XP_REMOVED,
            {
                "user_id": user_id,
                "event_id": event.id,
                "source": source_enum.value,
                "source_id": source_id,
                "amount": amount,
                "total_xp": event.total_xp_after,
            },
        )
        if new_level < previous_level:
            await self.emit_event(
                EventName.LEVEL_DOWN,
                {
                    "user_id": user_id,
                    "old_level": previous_level,
                    "new_level": new_level,
                },
            )

        return XPRemovalResult(event=event, previous_level=previous_level, new_level=new_level)

    # ========================================================================
    # PUBLIC API - Read Operations
    # ========================================================================

    async def _get_user(self, session: AsyncSession, user_id: str) -> UserProgression:
        user = await self._users.get_by_user_id(session, user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    async def get_xp_timeline(
        self,
        user_id: str,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        """Events newest first, each with its ordered modifiers."""
        user_id = InputValidator.validate_user_id(user_id)
        max_limit = int(self.get_config("progression.timeline.max_limit", 200))
        if limit is None:
            limit = int(self.get_config("progression.timeline.default_limit", 50))
        limit = InputValidator.validate_positive_integer(limit, "limit", max_value=max_limit)
        offset = InputValidator.validate_non_negative_integer(offset, "offset")

        async with DatabaseService.get_session() as session:
            await self._get_user(session, user_id)
            events = await self._xp_events.timeline(session, user_id, limit, offset)
            return [serialize_event(event) for event in events]

    async def get_event_breakdown(self, event_id: int, user_id: str) -> Dict[str, Any]:
        """
        One event with the running amount after each stored modifier.

        Raises:
            NotFoundError: If the event does not exist for this user
        """
        event_id = InputValidator.validate_id(event_id, "event_id")
        user_id = InputValidator.validate_user_id(user_id)

        async with DatabaseService.get_session() as session:
            event = await self._xp_events.find_one_where(
                session,
                XPEvent.id == event_id,
                XPEvent.user_id == user_id,
            )
            if event is None:
                raise NotFoundError("XPEvent", event_id)

            steps = replay_modifiers(
                event.base_amount,
                [(m.multiplier, m.type.value, m.description) for m in event.modifiers],
            )
            return {
                "event": serialize_event(event),
                "base_amount": event.base_amount,
                "steps": steps,
                "final_amount": event.final_amount,
            }

    async def get_level_progress(self, user_id: str) -> LevelProgress:
        user_id = InputValidator.validate_user_id(user_id)
        async with DatabaseService.get_session() as session:
            user = await self._get_user(session, user_id)
            return self.progress_for(user.total_xp)

    async def get_xp_for_date(self, user_id: str, day: Optional[date] = None) -> Dict[str, Any]:
        """
        XP credited during one calendar day in the user's timezone.

        Sums are computed in Python so arbitrarily large amounts stay exact
        on every backend.
        """
        user_id = InputValidator.validate_user_id(user_id)

        async with DatabaseService.get_session() as session:
            user = await self._get_user(session, user_id)
            day = day or local_date(self.clock.now(), user.timezone)
            start, end = day_bounds_utc(day, user.timezone)
            events = await self._xp_events.between(session, user_id, start, end)

        by_source: Dict[str, int] = {}
        for event in events:
            by_source[event.source.value] = by_source.get(event.source.value, 0) + event.final_amount

        return {
            "user_id": user_id,
            "date": day.isoformat(),
            "timezone": user.timezone,
            "total_xp": sum(event.final_amount for event in events),
            "event_count": len(events),
            "by_source": by_source,
        }

    async def get_today_summary(self, user_id: str) -> Dict[str, Any]:
        summary = await self.get_xp_for_date(user_id)
        summary["level_progress"] = (await self.get_level_progress(user_id)).to_dict()
        return summary

    async def get_weekend_bonus_status(self, user_id: str) -> Dict[str, Any]:
        user_id = InputValidator.validate_user_id(user_id)
        async with DatabaseService.get_session() as session:
            user = await self._get_user(session, user_id)

        percent = self._weekend_percent()
        now = self.clock.now()
        active = percent > 0 and is_weekend(now, user.timezone)
        return {
            "active": active,
            "percent": percent if active else 0,
            "timezone": user.timezone,
            "local_day": now.astimezone(resolve_timezone(user.timezone)).strftime("%A"),
        }

    async def verify_user_chain(self, user_id: str) -> ChainVerification:
        """Recompute every hash of a user's chain, oldest first."""
        user_id = InputValidator.validate_user_id(user_id)
        async with DatabaseService.get_session() as session:
            await self._get_user(session, user_id)
            events = await self._xp_events.chain_for_user(session, user_id)

        verification = verify_chain(events)
        if not verification.valid:
            self.log.error(
                "XP hash chain verification failed",
                extra={
                    "user_id": user_id,
                    "broken_at": verification.broken_at,
                    "reason": verification.reason,
                },
            )
        return verification
