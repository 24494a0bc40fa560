"""
Level curve: cumulative XP to level and back.

Purpose
-------
Pure calculation functions for the progression curve. Level is a derived
cache of total XP, so every function here is deterministic and takes
its curve parameters explicitly.

Curve
-----
    threshold(1) = 0
    threshold(L) = sum(floor(base_xp * k ** exponent) for k in 1..L-1)

With the defaults (base_xp=100, exponent=1.5):

    level 2 at 100 XP, level 3 at 382 XP, level 4 at 901 XP

A total exactly on a threshold belongs to the higher level. Level 1 is
the floor: zero or negative XP is level 1.

Usage
-----
    from arise.domain.progression.level_curve import level_for_xp, xp_to_next_level

    level_for_xp(382)            # 3
    xp_to_next_level(500).progress_percent
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List

DEFAULT_BASE_XP = 100
DEFAULT_EXPONENT = 1.5


@dataclass(frozen=True)
class LevelBounds:
    """Cumulative XP at which a level starts and the next level starts."""

    xp_for_this_level: int
    xp_for_next_level: int


@dataclass(frozen=True)
class LevelProgress:
    """Position of a total XP value inside its level."""

    current_level: int
    total_xp: int
    xp_for_current_level: int
    xp_for_next_level: int
    xp_progress: int
    xp_required: int
    xp_remaining: int
    progress_percent: int

    def to_dict(self) -> dict:
        return {
            "current_level": self.current_level,
            "total_xp": self.total_xp,
            "xp_for_current_level": self.xp_for_current_level,
            "xp_for_next_level": self.xp_for_next_level,
            "xp_progress": self.xp_progress,
            "xp_required": self.xp_required,
            "xp_remaining": self.xp_remaining,
            "progress_percent": self.progress_percent,
        }


def xp_for_level_step(
    level: int,
    base_xp: int = DEFAULT_BASE_XP,
    exponent: float = DEFAULT_EXPONENT,
) -> int:
    """
    XP needed to go from `level` to `level + 1`.

    Example:
        >>> xp_for_level_step(1)
        100
        >>> xp_for_level_step(2)
        282
    """
    if level < 1:
        return 0
    return int(math.floor(base_xp * (level ** exponent)))


def compute_level_threshold(
    level: int,
    base_xp: int = DEFAULT_BASE_XP,
    exponent: float = DEFAULT_EXPONENT,
) -> int:
    """
    Total cumulative XP required to reach `level`.

    Levels below 2 need no XP.

    Example:
        >>> compute_level_threshold(2)
        100
        >>> compute_level_threshold(3)
        382
    """
    total = 0
    for k in range(1, level):
        total += xp_for_level_step(k, base_xp, exponent)
    return total


def level_for_xp(
    total_xp: int,
    base_xp: int = DEFAULT_BASE_XP,
    exponent: float = DEFAULT_EXPONENT,
) -> int:
    """
    Level for a cumulative XP total.

    Walks the curve step by step, so the cost is proportional to the level
    reached (levels grow roughly with the 2/5 power of XP).
    """
    if total_xp <= 0 or base_xp <= 0:
        return 1

    level = 1
    threshold = 0
    while True:
        step = xp_for_level_step(level, base_xp, exponent)
        if threshold + step > total_xp:
            return level
        threshold += step
        level += 1


def xp_bounds_for_level(
    level: int,
    base_xp: int = DEFAULT_BASE_XP,
    exponent: float = DEFAULT_EXPONENT,
) -> LevelBounds:
    """Cumulative XP where `level` starts and where the next level starts."""
    level = max(1, level)
    start = compute_level_threshold(level, base_xp, exponent)
    return LevelBounds(
        xp_for_this_level=start,
        xp_for_next_level=start + xp_for_level_step(level, base_xp, exponent),
    )


def xp_to_next_level(
    total_xp: int,
    base_xp: int = DEFAULT_BASE_XP,
    exponent: float = DEFAULT_EXPONENT,
) -> LevelProgress:
    """
    Progress within the current level.

    All fields agree with `level_for_xp`. `progress_percent` is an integer
    in [0, 100], truncated rather than rounded so 100 is only reported once
    the level is actually reached.
    """
    clamped = max(0, total_xp)
    level = level_for_xp(clamped, base_xp, exponent)
    bounds = xp_bounds_for_level(level, base_xp, exponent)

    span = bounds.xp_for_next_level - bounds.xp_for_this_level
    progress = clamped - bounds.xp_for_this_level
    percent = (progress * 100) // span if span > 0 else 0

    return LevelProgress(
        current_level=level,
        total_xp=total_xp,
        xp_for_current_level=bounds.xp_for_this_level,
        xp_for_next_level=bounds.xp_for_next_level,
        xp_progress=progress,
        xp_required=span,
        xp_remaining=max(0, bounds.xp_for_next_level - clamped),
        progress_percent=max(0, min(100, percent)),
    )


def level_thresholds(
    max_level: int = 20,
    base_xp: int = DEFAULT_BASE_XP,
    exponent: float = DEFAULT_EXPONENT,
) -> List[dict]:
    """
    Threshold table for display.

    Example:
        >>> level_thresholds(3)
        [{'level': 1, 'total_xp': 0, 'xp_to_next': 100},
         {'level': 2, 'total_xp': 100, 'xp_to_next': 282},
         {'level': 3, 'total_xp': 382, 'xp_to_next': 519}]
    """
    rows: List[dict] = []
    total = 0
    for level in range(1, max_level + 1):
        step = xp_for_level_step(level, base_xp, exponent)
        rows.append({"level": level, "total_xp": total, "xp_to_next": step})
        total += step
    return rows
