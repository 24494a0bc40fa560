"""Async engine, sessions and the ORM base shared by every model."""

from arise.core.database.base import (
    Base,
    IdMixin,
    Multiplier,
    TimestampMixin,
    UTCDateTime,
    XPAmount,
    utcnow,
)
from arise.core.database.service import DatabaseService

__all__ = [
    "Base",
    "DatabaseService",
    "IdMixin",
    "Multiplier",
    "TimestampMixin",
    "UTCDateTime",
    "XPAmount",
    "utcnow",
]
