"""
Shared pieces for the pure domain packages.

The level curve, streak table, modifier chain and requirement language
know nothing about sessions or services. Bad input raises
`DomainValidationError`; services turn it into `ValidationError` with the
same field name.
"""

from __future__ import annotations

from typing import Optional


class DomainValidationError(Exception):
    """A domain value was rejected. `field` names the offending input when known."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


def validate_range(value: float, min_val: float, max_val: float, field_name: str) -> None:
    """
    Raises:
        DomainValidationError: `value` is outside [min_val, max_val]
    """
    if not (min_val <= value <= max_val):
        raise DomainValidationError(
            f"{field_name} must be between {min_val} and {max_val}, got {value}",
            field=field_name,
        )
