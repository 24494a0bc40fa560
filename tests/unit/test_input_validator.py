"""
Unit Tests for InputValidator
=============================

Test Coverage
-------------
- Integer and id validation (booleans and fractions rejected)
- User ids and IANA timezones
- Strings and case-insensitive choices
- Metric data maps
"""

import pytest

from arise.core.validation.input_validator import InputValidator
from arise.modules.shared.exceptions import ValidationError


@pytest.mark.unit
class TestIntegers:
    @pytest.mark.parametrize("value, expected", [(5, 5), ("7", 7), (3.0, 3)])
    def test_accepts_whole_numbers(self, value, expected):
        assert InputValidator.validate_integer(value, "amount") == expected

    @pytest.mark.parametrize("value", [None, True, 2.5, "abc", float("nan")])
    def test_rejects_non_integers(self, value):
        with pytest.raises(ValidationError) as exc_info:
            InputValidator.validate_integer(value, "amount")

        assert exc_info.value.field == "amount"

    def test_bounds(self):
        with pytest.raises(ValidationError, match="at least 1"):
            InputValidator.validate_positive_integer(0, "amount")
        with pytest.raises(ValidationError, match="Cannot exceed 10"):
            InputValidator.validate_integer(11, "amount", max_value=10)

    def test_huge_positive_integer_allowed(self):
        assert InputValidator.validate_positive_integer(10**40, "amount") == 10**40

    def test_id_limited_to_bigint(self):
        with pytest.raises(ValidationError):
            InputValidator.validate_id(2**63)


@pytest.mark.unit
class TestIdentity:
    def test_user_id_stripped(self):
        assert InputValidator.validate_user_id("  oauth:1234  ") == "oauth:1234"

    @pytest.mark.parametrize("value", ["", "   ", "has space", "x" * 65, 42, None])
    def test_user_id_rejected(self, value):
        with pytest.raises(ValidationError):
            InputValidator.validate_user_id(value)

    @pytest.mark.parametrize("value", ["UTC", "Europe/Berlin", "America/New_York"])
    def test_timezone_accepted(self, value):
        assert InputValidator.validate_timezone(value) == value

    @pytest.mark.parametrize("value", ["Mars/Olympus", "", None, "../etc/passwd"])
    def test_timezone_rejected(self, value):
        with pytest.raises(ValidationError):
            InputValidator.validate_timezone(value)


@pytest.mark.unit
class TestStringsAndChoices:
    def test_string_length(self):
        with pytest.raises(ValidationError):
            InputValidator.validate_string("  ", "name", min_length=1)

        assert InputValidator.validate_string(" Walk ", "name", max_length=10) == "Walk"

    def test_choice_case_insensitive(self):
        assert InputValidator.validate_choice("movement", "category", ["MOVEMENT", "STRENGTH"]) == "MOVEMENT"

    def test_choice_rejected(self):
        with pytest.raises(ValidationError, match="Must be one of"):
            InputValidator.validate_choice("sleep", "category", ["MOVEMENT"])


@pytest.mark.unit
class TestMetricData:
    def test_valid_map(self):
        data = {"steps": 12000, "distance_km": 8.5, "workout_done": True}

        assert InputValidator.validate_metric_data(data) == data

    @pytest.mark.parametrize(
        "data",
        [
            ["steps"],
            {"steps": "lots"},
            {"steps": float("inf")},
            {"steps": float("nan")},
            {"steps": 10**400},
            {"steps": -(10**400)},
            {"nested": {"value": 1}},
            {"": 1},
        ],
    )
    def test_rejected(self, data):
        with pytest.raises(ValidationError):
            InputValidator.validate_metric_data(data)
