"""
ServiceContainer: builds the eight progression services once and hands out
the shared instances.

Construction order follows the collaborator graph:

    xp, streak, debuff, player_progression      (no collaborators)
    daily_log       <- xp, streak, debuff
    quest_progress  <- xp, streak, daily_log
    quest_lifecycle <- xp, streak, daily_log
    quest_catalog   <- daily_log

so a single XP ledger instance serves every caller. The database engine
is not the container's business; `DatabaseService.initialize()` runs
before the first service call.

    container = ServiceContainer(ConfigManager, event_bus, logger)
    await container.initialize()
    await container.quest_progress.update_quest_progress(log_id, user_id, data)
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple

from arise.core.database.service import DatabaseService
from arise.core.logging.logger import get_logger
from arise.modules.daily import DailyLogService
from arise.modules.debuff import DebuffService
from arise.modules.player import PlayerProgressionService
from arise.modules.quest import (
    QuestCatalogService,
    QuestLifecycleService,
    QuestProgressService,
)
from arise.modules.streak import StreakService
from arise.modules.xp import XPService

if TYPE_CHECKING:
    from logging import Logger

    from arise.core.clock import Clock
    from arise.core.config.manager import ConfigManager
    from arise.core.event.bus import EventBus

# (name, class, {constructor kwarg: service name})
_BUILD_PLAN: Tuple[Tuple[str, type, Dict[str, str]], ...] = (
    ("xp", XPService, {}),
    ("streak", StreakService, {}),
    ("debuff", DebuffService, {}),
    ("player_progression", PlayerProgressionService, {}),
    (
        "daily_log",
        DailyLogService,
        {"xp_service": "xp", "streak_service": "streak", "debuff_service": "debuff"},
    ),
    (
        "quest_progress",
        QuestProgressService,
        {"xp_service": "xp", "streak_service": "streak", "daily_log_service": "daily_log"},
    ),
    (
        "quest_lifecycle",
        QuestLifecycleService,
        {"xp_service": "xp", "streak_service": "streak", "daily_log_service": "daily_log"},
    ),
    ("quest_catalog", QuestCatalogService, {"daily_log_service": "daily_log"}),
)


class ServiceContainer:
    """Service properties raise RuntimeError outside initialize()..shutdown()."""

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        clock: Optional[Clock] = None,
    ) -> None:
        self._config_manager = config_manager
        self._event_bus = event_bus
        self._logger = logger
        self._clock = clock
        self._services: Dict[str, Any] = {}
        self._initialized = False
        self._init_seconds: Optional[float] = None

    async def initialize(self) -> None:
        if self._initialized:
            self._logger.warning("ServiceContainer already initialized")
            return

        start = time.perf_counter()
        services: Dict[str, Any] = {}
        for name, service_cls, wiring in _BUILD_PLAN:
            try:
                services[name] = service_cls(
                    config_manager=self._config_manager,
                    event_bus=self._event_bus,
                    logger=get_logger(f"{service_cls.__module__}.{service_cls.__name__}"),
                    clock=self._clock,
                    **{kwarg: services[dep] for kwarg, dep in wiring.items()},
                )
            except Exception:
                self._logger.critical(f"Failed to build service '{name}'", exc_info=True)
                raise

        self._services = services
        self._initialized = True
        self._init_seconds = round(time.perf_counter() - start, 3)
        self._logger.info(
            "Service container initialized",
            extra={"service_count": len(services), "init_seconds": self._init_seconds},
        )

    async def shutdown(self) -> None:
        if not self._initialized:
            return
        self._initialized = False
        self._services = {}
        self._logger.info("Service container shut down")

    async def health_check(self) -> Dict[str, Any]:
        return {
            "initialized": self._initialized,
            "service_count": len(self._services),
            "all_services_available": self._initialized
            and len(self._services) == len(_BUILD_PLAN),
            "database": await DatabaseService.health_check(),
            "init_seconds": self._init_seconds,
        }

    def _get(self, name: str) -> Any:
        if not self._initialized:
            raise RuntimeError("ServiceContainer not initialized. Call initialize() first.")
        return self._services[name]

    @property
    def xp(self) -> XPService:
        return self._get("xp")

    @property
    def streak(self) -> StreakService:
        return self._get("streak")

    @property
    def debuff(self) -> DebuffService:
        return self._get("debuff")

    @property
    def daily_log(self) -> DailyLogService:
        return self._get("daily_log")

    @property
    def player_progression(self) -> PlayerProgressionService:
        return self._get("player_progression")

    @property
    def quest_catalog(self) -> QuestCatalogService:
        return self._get("quest_catalog")

    @property
    def quest_progress(self) -> QuestProgressService:
        return self._get("quest_progress")

    @property
    def quest_lifecycle(self) -> QuestLifecycleService:
        return self._get("quest_lifecycle")
