"""
Error base and infrastructure errors.

`AriseError` is the common root: every error ARISE raises carries a
message, structured `details`, an `ErrorSeverity`, a retryable flag and a
stable `error_code`, so a caller can log or map any of them without
knowing which layer raised it.

Two branches hang off it:

- infrastructure (this module): the process is misconfigured or the
  database is unusable;
- domain (`arise.modules.shared.exceptions`): a request broke a
  progression rule.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    DEBUG = "debug"
    INFO = "info"  # expected rejections such as bad input
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"  # process cannot work


class AriseError(Exception):
    """Root of every ARISE error."""

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[ErrorSeverity] = None,
        is_retryable: Optional[bool] = None,
        error_code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = dict(details or {})
        self.severity = severity or self.DEFAULT_SEVERITY
        self.is_retryable = self.DEFAULT_RETRYABLE if is_retryable is None else is_retryable
        self.error_code = error_code or type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": type(self).__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
        }

    def __str__(self) -> str:
        if not self.details:
            return f"[{self.error_code}] {self.message}"
        return f"[{self.error_code}] {self.message} | Details: {self.details}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, details={self.details!r})"


class AriseInfrastructureException(AriseError):
    """The environment ARISE runs in is broken; no user action fixes it."""


class ConfigurationError(AriseInfrastructureException):
    DEFAULT_SEVERITY = ErrorSeverity.CRITICAL

    def __init__(self, config_key: str, message: str) -> None:
        self.config_key = config_key
        super().__init__(
            f"Configuration error for {config_key}: {message}",
            details={"config_key": config_key},
            error_code="CONFIG_ERROR",
        )


class DatabaseError(AriseInfrastructureException):
    """Engine or session could not be provided."""

    DEFAULT_SEVERITY = ErrorSeverity.CRITICAL


class DatabaseInitializationError(DatabaseError):
    def __init__(self, message: str) -> None:
        super().__init__(message, error_code="DATABASE_INIT_FAILED")


class DatabaseNotInitializedError(DatabaseError):
    def __init__(self) -> None:
        super().__init__(
            "DatabaseService.initialize() must run before sessions are requested",
            error_code="DATABASE_NOT_INITIALIZED",
        )
