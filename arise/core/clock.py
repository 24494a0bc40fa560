"""
Clock and timezone helpers.

Services never call `datetime.now()` directly; they ask their injected
`Clock`. Tests swap in `FixedClock` to pin "now" to a known instant
(a Saturday for the weekend bonus, midnight edges for day rollover).

All instants are timezone-aware UTC. A user's IANA timezone is only used
to answer calendar questions: which local date is it, is it the weekend,
and where does that local day start and end in UTC.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from arise.core.logging.logger import get_logger

logger = get_logger(__name__)


class Clock:
    """System clock returning aware UTC datetimes."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """Clock pinned to a given instant; `advance()` moves it forward."""

    def __init__(self, instant: datetime) -> None:
        self._instant = ensure_utc(instant)

    def now(self) -> datetime:
        return self._instant

    def set(self, instant: datetime) -> None:
        self._instant = ensure_utc(instant)

    def advance(self, **delta: float) -> datetime:
        self._instant = self._instant + timedelta(**delta)
        return self._instant


def ensure_utc(value: datetime) -> datetime:
    """Aware UTC datetime; naive values are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_valid_timezone(name: Optional[str]) -> bool:
    if not name:
        return False
    if name == "UTC":
        return True
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def resolve_timezone(name: Optional[str]) -> tzinfo:
    """
    Resolve an IANA timezone name.

    Unknown or empty names fall back to UTC with a warning so a bad stored
    value never blocks an XP award.
    """
    if not name or name == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(
            "Unknown timezone, falling back to UTC",
            extra={"timezone": name},
        )
        return timezone.utc


def local_date(instant: datetime, tz_name: Optional[str]) -> date:
    """Calendar date of `instant` in the given timezone."""
    return ensure_utc(instant).astimezone(resolve_timezone(tz_name)).date()


def is_weekend(instant: datetime, tz_name: Optional[str]) -> bool:
    """True when `instant` falls on a Saturday or Sunday in `tz_name`."""
    return local_date(instant, tz_name).weekday() >= 5


def day_bounds_utc(day: date, tz_name: Optional[str]) -> Tuple[datetime, datetime]:
    """
    UTC half-open interval [start, end) covering local calendar day `day`.

    DST transitions are handled by ZoneInfo, so a local day may be 23 or
    25 hours long.
    """
    tz = resolve_timezone(tz_name)
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)
