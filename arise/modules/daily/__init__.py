"""Daily Module: per-day aggregates and the daily rollover."""

from .service import DailyLogService, DaySummary

__all__ = ["DailyLogService", "DaySummary"]
