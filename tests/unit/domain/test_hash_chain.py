"""
Unit Tests for the XP Event Hash Chain
======================================

Test Coverage
-------------
- Timestamp format (UTC, milliseconds, Z suffix)
- Hash input layout and genesis handling
- Chain verification: valid, tampered amount, broken link
"""

import hashlib
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from arise.domain.progression.hash_chain import (
    compute_event_hash,
    format_timestamp,
    truncate_to_millis,
    verify_chain,
)

T0 = datetime(2026, 1, 18, 23, 0, 0, 123456, tzinfo=timezone.utc)


@dataclass(frozen=True)
class Event:
    id: int
    user_id: str
    base_amount: int
    final_amount: int
    previous_hash: Optional[str]
    hash: str
    created_at: datetime


def build_chain(amounts):
    events = []
    previous = None
    for index, (base, final) in enumerate(amounts):
        created_at = T0 + timedelta(seconds=index)
        digest = compute_event_hash("user-1", base, final, previous, created_at)
        events.append(Event(index + 1, "user-1", base, final, previous, digest, created_at))
        previous = digest
    return events


@pytest.mark.unit
@pytest.mark.domain
class TestTimestampFormat:
    def test_millisecond_precision_with_z(self):
        assert format_timestamp(T0) == "2026-01-18T23:00:00.123Z"

    def test_converts_to_utc(self):
        plus_two = timezone(timedelta(hours=2))
        local = datetime(2026, 1, 19, 1, 0, 0, tzinfo=plus_two)

        assert format_timestamp(local) == "2026-01-18T23:00:00.000Z"

    def test_naive_read_as_utc(self):
        assert format_timestamp(datetime(2026, 1, 18, 23, 0)) == "2026-01-18T23:00:00.000Z"

    def test_truncate_drops_microseconds(self):
        assert truncate_to_millis(T0).microsecond == 123000


@pytest.mark.unit
@pytest.mark.domain
class TestComputeEventHash:
    def test_genesis_input_layout(self):
        expected = hashlib.sha256(
            b"user-1:100:115:genesis:2026-01-18T23:00:00.123Z"
        ).hexdigest()

        assert compute_event_hash("user-1", 100, 115, None, T0) == expected

    def test_previous_hash_changes_digest(self):
        first = compute_event_hash("user-1", 100, 100, None, T0)

        assert compute_event_hash("user-1", 100, 100, first, T0) != first

    def test_sub_millisecond_difference_ignored(self):
        later = T0 + timedelta(microseconds=500)

        assert compute_event_hash("u", 1, 1, None, T0) == compute_event_hash("u", 1, 1, None, later)


@pytest.mark.unit
@pytest.mark.domain
class TestVerifyChain:
    def test_empty_chain_is_valid(self):
        result = verify_chain([])

        assert result.valid is True
        assert result.checked == 0

    def test_valid_chain(self):
        result = verify_chain(build_chain([(100, 100), (100, 115), (50, 45)]))

        assert result.valid is True
        assert result.checked == 3
        assert result.to_dict()["broken_at"] is None

    def test_tampered_amount_detected(self):
        # Arrange
        events = build_chain([(100, 100), (100, 115), (50, 45)])
        events[1] = replace(events[1], final_amount=9999)

        # Act
        result = verify_chain(events)

        # Assert
        assert result.valid is False
        assert result.broken_at == 2
        assert result.checked == 1
        assert "recomputed" in result.reason

    def test_broken_link_detected(self):
        events = build_chain([(100, 100), (100, 115)])
        events[1] = replace(events[1], previous_hash="0" * 64)

        result = verify_chain(events)

        assert result.valid is False
        assert result.broken_at == 2
        assert "previous_hash" in result.reason

    def test_first_event_must_not_link(self):
        events = build_chain([(100, 100)])
        events[0] = replace(events[0], previous_hash="genesis")

        assert verify_chain(events).valid is False
