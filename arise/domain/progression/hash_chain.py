"""
Per-user hash chain over XP events.

Each event hash is SHA-256 over

    "{user_id}:{base_amount}:{final_amount}:{previous_hash or 'genesis'}:{timestamp}"

where `timestamp` is the event's creation instant as UTC ISO-8601 with
millisecond precision and a `Z` suffix (`2026-01-18T23:00:00.000Z`). The
format is fixed: changing it makes historical chains unverifiable.

A user's first event stores `previous_hash = None`; the literal `genesis`
only appears inside the hash input.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

GENESIS = "genesis"


def truncate_to_millis(value: datetime) -> datetime:
    """Drop sub-millisecond precision so stored and hashed instants agree."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def format_timestamp(value: datetime) -> str:
    """UTC ISO-8601 with milliseconds and a `Z` suffix."""
    value = truncate_to_millis(value)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def compute_event_hash(
    user_id: str,
    base_amount: int,
    final_amount: int,
    previous_hash: Optional[str],
    timestamp: datetime,
) -> str:
    data = (
        f"{user_id}:{int(base_amount)}:{int(final_amount)}:"
        f"{previous_hash or GENESIS}:{format_timestamp(timestamp)}"
    )
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class ChainVerification:
    valid: bool
    checked: int
    broken_at: Optional[Any] = None
    reason: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "checked": self.checked,
            "broken_at": self.broken_at,
            "reason": self.reason,
        }


def verify_chain(events: Iterable[Any]) -> ChainVerification:
    """
    Verify a user's events, oldest first.

    Each event needs `id`, `user_id`, `base_amount`, `final_amount`,
    `previous_hash`, `hash` and `created_at` attributes. Verification stops
    at the first event whose link or recomputed hash disagrees.
    """
    previous: Optional[str] = None
    checked = 0

    for event in events:
        if event.previous_hash != previous:
            return ChainVerification(
                valid=False,
                checked=checked,
                broken_at=event.id,
                reason="previous_hash does not match the preceding event",
            )

        expected = compute_event_hash(
            event.user_id,
            event.base_amount,
            event.final_amount,
            event.previous_hash,
            event.created_at,
        )
        if expected != event.hash:
            return ChainVerification(
                valid=False,
                checked=checked,
                broken_at=event.id,
                reason="stored hash does not match recomputed hash",
            )

        previous = event.hash
        checked += 1

    return ChainVerification(valid=True, checked=checked)
