"""
XP Module
=========

- XPService: append-only, hash-chained XP ledger and its read models
"""

from .service import XPAwardResult, XPRemovalResult, XPService, serialize_event

__all__ = ["XPService", "XPAwardResult", "XPRemovalResult", "serialize_event"]
