"""
Domain errors raised by ARISE services.

All of them are raised before anything is committed: a call that fails
with one of these leaves users, quest logs and the XP ledger as they were.
Callers map them to responses; none is fatal to the process.
"""

from __future__ import annotations

from typing import Any, Optional

from arise.core.exceptions import AriseError, ErrorSeverity


class AriseDomainException(AriseError):
    """A request broke a progression rule."""

    DEFAULT_SEVERITY = ErrorSeverity.INFO


class NotFoundError(AriseDomainException):
    """
    A user, quest log, template or XP event does not exist, or does not
    belong to the user asking for it.
    """

    def __init__(self, resource_type: str, identifier: Optional[Any] = None) -> None:
        self.resource_type = resource_type
        self.identifier = identifier
        suffix = f": {identifier}" if identifier is not None else ""
        super().__init__(
            f"{resource_type} not found{suffix}",
            details={"resource_type": resource_type, "identifier": identifier},
            error_code=f"{resource_type.upper()}_NOT_FOUND",
        )


class InvalidStateError(AriseDomainException):
    """
    The resource exists but its status does not allow the operation,
    e.g. progress submitted for a COMPLETED quest log.
    """

    def __init__(
        self,
        resource_type: str,
        identifier: Any,
        current_state: str,
        expected_state: str,
    ) -> None:
        self.resource_type = resource_type
        self.identifier = identifier
        self.current_state = current_state
        self.expected_state = expected_state
        super().__init__(
            f"{resource_type} {identifier} is {current_state}, expected {expected_state}",
            details={
                "resource_type": resource_type,
                "identifier": identifier,
                "current_state": current_state,
                "expected_state": expected_state,
            },
            error_code=f"INVALID_{resource_type.upper()}_STATE",
        )


class ValidationError(AriseDomainException):
    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.validation_message = message
        super().__init__(
            f"Validation error for {field}: {message}",
            details={"field": field, "validation_message": message},
            error_code=f"VALIDATION_{field.upper()}",
        )


class InvalidOperationError(AriseDomainException):
    """A rule other than a status check forbids the action (removing a core quest)."""

    def __init__(self, action: str, reason: str) -> None:
        self.action = action
        self.reason = reason
        super().__init__(
            f"Invalid operation '{action}': {reason}",
            details={"action": action, "reason": reason},
            error_code=f"INVALID_{action.upper()}",
        )


def is_transient_error(exc: BaseException) -> bool:
    return isinstance(exc, AriseError) and exc.is_retryable


def get_error_severity(exc: BaseException) -> ErrorSeverity:
    if isinstance(exc, AriseError):
        return exc.severity
    return ErrorSeverity.ERROR


def should_alert(exc: BaseException) -> bool:
    """ERROR and CRITICAL failures page someone; rule violations do not."""
    return get_error_severity(exc) in (ErrorSeverity.ERROR, ErrorSeverity.CRITICAL)
