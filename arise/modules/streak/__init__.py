"""Streak Module: consecutive-day counters stored on the user row."""

from .service import StreakInfo, StreakService

__all__ = ["StreakService", "StreakInfo"]
