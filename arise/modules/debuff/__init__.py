"""Debuff Module: temporary XP penalty for missed core quests."""

from .service import DebuffCheck, DebuffService, DebuffStatus

__all__ = ["DebuffService", "DebuffStatus", "DebuffCheck"]
