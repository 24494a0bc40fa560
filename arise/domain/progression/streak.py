"""
Streak bonus table and the consecutive-day walk.

Tiers (inclusive lower bounds):

    0-6   none    0%
    7-13  bronze  10%
    14-29 silver  15%
    30+   gold    25%

Comparisons are plain numeric `>=`, so 7.0 is bronze and 6.999 is not.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Optional, Sequence, Tuple, Union

Number = Union[int, float]


class StreakTier(str, enum.Enum):
    NONE = "none"
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"


# Highest threshold first
STREAK_TIERS: Tuple[Tuple[int, StreakTier, int], ...] = (
    (30, StreakTier.GOLD, 25),
    (14, StreakTier.SILVER, 15),
    (7, StreakTier.BRONZE, 10),
)


@dataclass(frozen=True)
class StreakBonus:
    tier: StreakTier
    percent: int

    @property
    def multiplier_percent(self) -> int:
        return 100 + self.percent


def streak_bonus(consecutive_days: Number) -> StreakBonus:
    """
    Bonus tier for a consecutive-day count.

    Example:
        >>> streak_bonus(6)
        StreakBonus(tier=<StreakTier.NONE: 'none'>, percent=0)
        >>> streak_bonus(14).percent
        15
    """
    for threshold, tier, percent in STREAK_TIERS:
        if consecutive_days >= threshold:
            return StreakBonus(tier=tier, percent=percent)
    return StreakBonus(tier=StreakTier.NONE, percent=0)


def days_until_next_tier(consecutive_days: Number) -> Optional[int]:
    """Whole days until the next tier unlocks; None once gold is reached."""
    for threshold, _tier, _percent in reversed(STREAK_TIERS):
        if consecutive_days < threshold:
            return int(threshold - max(0, int(consecutive_days)))
    return None


@dataclass(frozen=True)
class DayRecord:
    """One daily log as seen by the streak walk."""

    log_date: date
    core_quests_total: int
    core_quests_completed: int
    is_perfect_day: bool = False
    is_closed: bool = False

    @property
    def is_complete(self) -> bool:
        return self.core_quests_total > 0 and (
            self.core_quests_completed >= self.core_quests_total
        )


@dataclass(frozen=True)
class StreakCount:
    current_streak: int
    perfect_streak: int
    streak_start_date: Optional[date]


def count_streak(day_records: Iterable[DayRecord], today: date) -> StreakCount:
    """
    Count the current streak from daily records.

    Records may arrive in any order; they are walked newest first. A day
    counts when every core quest was completed. A missing calendar day or
    an incomplete day ends the streak. Today's record is skipped while the
    day is still open and unfinished, so a streak is not lost before the
    user had the chance to play.

    The perfect streak is the run of consecutive perfect days at the head
    of the current streak.
    """
    records: Sequence[DayRecord] = sorted(
        (r for r in day_records if r.log_date <= today),
        key=lambda r: r.log_date,
        reverse=True,
    )

    streak = 0
    perfect = 0
    perfect_run_open = True
    start: Optional[date] = None
    expected: Optional[date] = None

    for record in records:
        if record.log_date == today and not record.is_complete and not record.is_closed:
            continue

        if expected is None:
            # The newest counted day must be today or yesterday
            if (today - record.log_date).days > 1:
                break
        elif record.log_date != expected:
            break

        if not record.is_complete:
            break

        streak += 1
        start = record.log_date
        expected = record.log_date - timedelta(days=1)

        if perfect_run_open and record.is_perfect_day:
            perfect += 1
        else:
            perfect_run_open = False

    return StreakCount(
        current_streak=streak,
        perfect_streak=perfect,
        streak_start_date=start,
    )
