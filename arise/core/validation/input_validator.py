"""
Boundary checks for arguments entering the service layer.

Each `InputValidator` method returns the normalized value (stripped ids,
canonical enum spelling, ints from integral floats) or raises
`ValidationError` naming the field. Status rules and ledger invariants are
the services' job; requirement trees go through `parse_requirement`.
Rejections are logged at debug level with the raw value's repr.
"""

from __future__ import annotations

import re
import sys
from typing import Any, Dict, Mapping, NoReturn, Optional, Sequence, Union

from arise.core.clock import is_valid_timezone
from arise.core.logging.logger import get_logger
from arise.modules.shared.exceptions import ValidationError

logger = get_logger(__name__)

USER_ID_MAX_LENGTH = 64
_USER_ID_PATTERN = re.compile(r"^[A-Za-z0-9_.:@-]+$")


def _describe(value: Any) -> str:
    # repr of a huge int is slow, and refused past the int-to-str digit limit
    if isinstance(value, int) and value.bit_length() > 256:
        return f"<int of {value.bit_length()} bits>"
    return repr(value)[:200]


def _raise_validation_error(field_name: str, value: Any, message: str) -> NoReturn:
    """Log and raise a ValidationError."""
    logger.debug(
        "Input validation failed",
        extra={
            "field_name": field_name,
            "raw_value": _describe(value),
            "reason": message,
        },
    )
    raise ValidationError(field_name, message)


class InputValidator:
    """
    Stateless input validation.

    All methods return the validated (and normalized) value on success and
    raise ValidationError on failure.
    """

    # =========================================================================
    # INTEGER VALIDATION
    # =========================================================================

    @staticmethod
    def validate_integer(
        value: Any,
        field_name: str,
        min_value: Optional[int] = None,
        max_value: Optional[int] = None,
    ) -> int:
        """Validate an integer with optional inclusive bounds."""
        if value is None:
            _raise_validation_error(field_name, value, "Value is required")
        if isinstance(value, bool):
            _raise_validation_error(field_name, value, "Must be a whole number, got a boolean")
        if isinstance(value, float) and not value.is_integer():
            _raise_validation_error(field_name, value, f"Must be a whole number, got '{value}'")

        try:
            int_value = int(value)
        except (ValueError, TypeError, OverflowError):
            _raise_validation_error(
                field_name,
                value,
                f"Must be a whole number, got '{value}'",
            )

        if min_value is not None and int_value < min_value:
            _raise_validation_error(field_name, int_value, f"Must be at least {min_value}")
        if max_value is not None and int_value > max_value:
            _raise_validation_error(field_name, int_value, f"Cannot exceed {max_value}")

        return int_value

    @staticmethod
    def validate_positive_integer(
        value: Any,
        field_name: str,
        max_value: Optional[int] = None,
    ) -> int:
        """Strictly positive integer (>= 1)."""
        return InputValidator.validate_integer(value, field_name, min_value=1, max_value=max_value)

    @staticmethod
    def validate_non_negative_integer(
        value: Any,
        field_name: str,
        max_value: Optional[int] = None,
    ) -> int:
        """Non-negative integer (>= 0)."""
        return InputValidator.validate_integer(value, field_name, min_value=0, max_value=max_value)

    @staticmethod
    def validate_id(value: Any, field_name: str = "id") -> int:
        """Database surrogate id."""
        return InputValidator.validate_positive_integer(value, field_name, max_value=2**63 - 1)

    # =========================================================================
    # IDENTITY VALIDATION
    # =========================================================================

    @staticmethod
    def validate_user_id(value: Any, field_name: str = "user_id") -> str:
        """
        External user identifier: 1-64 characters from [A-Za-z0-9_.:@-].
        """
        if not isinstance(value, str):
            _raise_validation_error(field_name, value, "Must be a string")
        user_id = value.strip()
        if not user_id:
            _raise_validation_error(field_name, value, "Value is required")
        if len(user_id) > USER_ID_MAX_LENGTH:
            _raise_validation_error(
                field_name, value, f"Cannot exceed {USER_ID_MAX_LENGTH} characters"
            )
        if not _USER_ID_PATTERN.match(user_id):
            _raise_validation_error(field_name, value, "Contains invalid characters")
        return user_id

    @staticmethod
    def validate_timezone(value: Any, field_name: str = "timezone") -> str:
        """IANA timezone name known to zoneinfo."""
        if not isinstance(value, str) or not is_valid_timezone(value.strip()):
            _raise_validation_error(field_name, value, f"Unknown timezone '{value}'")
        return value.strip()

    # =========================================================================
    # STRING VALIDATION
    # =========================================================================

    @staticmethod
    def validate_string(
        value: Any,
        field_name: str,
        min_length: Optional[int] = None,
        max_length: Optional[int] = None,
    ) -> str:
        """Stripped string with optional length bounds."""
        if value is None:
            _raise_validation_error(field_name, value, "Value is required")

        str_value = str(value).strip()

        if min_length is not None and len(str_value) < min_length:
            _raise_validation_error(
                field_name, str_value, f"Must be at least {min_length} characters"
            )
        if max_length is not None and len(str_value) > max_length:
            _raise_validation_error(
                field_name, str_value, f"Cannot exceed {max_length} characters"
            )
        return str_value

    @staticmethod
    def validate_choice(value: Any, field_name: str, valid_choices: Sequence[str]) -> str:
        """
        One of `valid_choices`, matched case-insensitively.

        Returns the choice as spelled in `valid_choices`.
        """
        str_value = str(value).strip()
        by_lower = {choice.lower(): choice for choice in valid_choices}

        if str_value.lower() not in by_lower:
            choices_str = ", ".join(sorted(valid_choices))
            _raise_validation_error(
                field_name,
                value,
                f"Invalid choice '{value}'. Must be one of: {choices_str}",
            )
        return by_lower[str_value.lower()]

    # =========================================================================
    # METRIC DATA VALIDATION
    # =========================================================================

    @staticmethod
    def validate_metric_data(
        value: Any,
        field_name: str = "data",
    ) -> Dict[str, Union[int, float, bool]]:
        """
        Flat map of metric name to number or boolean.

        Non-finite numbers, integers beyond float range and nested values
        are rejected; missing metrics are the evaluator's concern, not an
        error.
        """
        if not isinstance(value, Mapping):
            _raise_validation_error(field_name, value, "Must be an object of metric values")

        data: Dict[str, Union[int, float, bool]] = {}
        for key, metric in value.items():
            if not isinstance(key, str) or not key:
                _raise_validation_error(field_name, key, "Metric names must be non-empty strings")
            if isinstance(metric, bool):
                data[key] = metric
            elif isinstance(metric, (int, float)):
                # NaN fails the comparison too
                if not abs(metric) <= sys.float_info.max:
                    _raise_validation_error(f"{field_name}.{key}", metric, "Must be a finite number")
                data[key] = metric
            else:
                _raise_validation_error(
                    f"{field_name}.{key}", metric, "Must be a number or boolean"
                )
        return data
