"""
Building blocks shared by the service modules: the service and repository
bases plus the domain error hierarchy.
"""

from __future__ import annotations

from .base_repository import BaseRepository
from .base_service import BaseService
from .exceptions import (
    AriseDomainException,
    InvalidOperationError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
    get_error_severity,
    is_transient_error,
    should_alert,
)

__all__ = [
    "AriseDomainException",
    "BaseRepository",
    "BaseService",
    "InvalidOperationError",
    "InvalidStateError",
    "NotFoundError",
    "ValidationError",
    "get_error_severity",
    "is_transient_error",
    "should_alert",
]
