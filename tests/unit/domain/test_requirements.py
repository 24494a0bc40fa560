"""
Unit Tests for Quest Requirements
=================================

Test Coverage
-------------
- Parsing: valid trees, unknown types and operators, bad fields
- Numeric, boolean and compound evaluation
- Missing metrics, zero targets and values beyond float range
- Metric discovery and the values stored on quest logs
"""

import pytest

from arise.domain.models.base import DomainValidationError
from arise.domain.quests.requirements import (
    BooleanRequirement,
    Combinator,
    Comparison,
    CompoundRequirement,
    NumericRequirement,
    RequirementParseError,
    current_value,
    evaluate,
    parse_requirement,
    required_metrics,
    target_value,
)

STEPS = {"type": "numeric", "metric": "steps", "operator": "gte", "value": 10000}
WORKOUT = {"type": "boolean", "metric": "workout_done", "expected": True}


def compound(operator, *children):
    return {"type": "compound", "operator": operator, "requirements": list(children)}


@pytest.mark.unit
@pytest.mark.domain
class TestParseRequirement:
    def test_numeric(self):
        parsed = parse_requirement(STEPS)

        assert parsed == NumericRequirement("steps", Comparison.GTE, 10000)

    def test_boolean(self):
        assert parse_requirement(WORKOUT) == BooleanRequirement("workout_done", True)

    def test_nested_compound(self):
        parsed = parse_requirement(compound("or", STEPS, compound("and", WORKOUT, STEPS)))

        assert isinstance(parsed, CompoundRequirement)
        assert parsed.operator is Combinator.OR
        assert isinstance(parsed.requirements[1], CompoundRequirement)

    def test_to_dict_round_trip(self):
        raw = compound("and", STEPS, WORKOUT)

        assert parse_requirement(raw).to_dict() == raw

    @pytest.mark.parametrize(
        "raw, field",
        [
            ({"type": "ratio", "metric": "x"}, "requirement.type"),
            ({**STEPS, "operator": "approx"}, "requirement.operator"),
            ({**STEPS, "value": "10000"}, "requirement.value"),
            ({**STEPS, "value": True}, "requirement.value"),
            ({**STEPS, "value": float("inf")}, "requirement.value"),
            ({**STEPS, "value": float("nan")}, "requirement.value"),
            ({**STEPS, "value": 10**400}, "requirement.value"),
            ({"type": "numeric", "operator": "gte", "value": 1}, "requirement.metric"),
            ({**WORKOUT, "metric": "  "}, "requirement.metric"),
            ({**WORKOUT, "expected": "yes"}, "requirement.expected"),
            (compound("xor", STEPS), "requirement.operator"),
            (compound("and"), "requirement.requirements"),
        ],
    )
    def test_rejects_malformed(self, raw, field):
        with pytest.raises(RequirementParseError) as exc_info:
            parse_requirement(raw)

        assert exc_info.value.field == field

    def test_error_path_points_at_nested_child(self):
        raw = compound("and", STEPS, {"type": "unknown"})

        with pytest.raises(RequirementParseError) as exc_info:
            parse_requirement(raw)

        assert exc_info.value.field == "requirement.requirements[1].type"

    def test_non_mapping_rejected(self):
        with pytest.raises(DomainValidationError):
            parse_requirement(["steps"])


@pytest.mark.unit
@pytest.mark.domain
class TestNumericEvaluation:
    def test_met(self):
        result = evaluate(parse_requirement(STEPS), {"steps": 12000})

        assert result.met is True
        assert result.progress == 100.0
        assert result.target == 10000

    def test_partial_progress(self):
        result = evaluate(parse_requirement(STEPS), {"steps": 7500})

        assert result.met is False
        assert result.progress == 75.0

    def test_missing_metric_reads_as_zero(self):
        result = evaluate(parse_requirement(STEPS), {})

        assert result.met is False
        assert result.progress == 0.0

    @pytest.mark.parametrize("operator, value, met", [
        ("lte", 2000, True),
        ("lte", 2001, False),
        ("eq", 2000, True),
        ("gt", 2000, False),
        ("lt", 1999, True),
    ])
    def test_operators(self, operator, value, met):
        requirement = parse_requirement(
            {"type": "numeric", "metric": "calories", "operator": operator, "value": 2000}
        )

        assert evaluate(requirement, {"calories": value}).met is met

    def test_zero_target(self):
        requirement = parse_requirement(
            {"type": "numeric", "metric": "sugar", "operator": "eq", "value": 0}
        )

        assert evaluate(requirement, {"sugar": 0}).progress == 100.0
        assert evaluate(requirement, {"sugar": 5}).progress == 0.0

    def test_boolean_value_for_numeric_metric_reads_as_zero(self):
        assert evaluate(parse_requirement(STEPS), {"steps": True}).progress == 0.0

    def test_metric_beyond_float_range(self):
        result = evaluate(parse_requirement(STEPS), {"steps": 10**400})

        assert result.met is True
        assert result.progress == 100.0

    def test_negative_metric_beyond_float_range(self):
        result = evaluate(parse_requirement(STEPS), {"steps": -(10**400)})

        assert result.met is False
        assert result.progress == 0.0


@pytest.mark.unit
@pytest.mark.domain
class TestBooleanAndCompound:
    def test_boolean_met_and_missing(self):
        requirement = parse_requirement(WORKOUT)

        assert evaluate(requirement, {"workout_done": True}).progress == 100.0
        assert evaluate(requirement, {}).met is False

    def test_boolean_expecting_false(self):
        requirement = parse_requirement({**WORKOUT, "expected": False})

        assert evaluate(requirement, {}).met is True

    def test_and_averages_progress(self):
        requirement = parse_requirement(compound("and", STEPS, WORKOUT))

        result = evaluate(requirement, {"steps": 5000, "workout_done": True})

        assert result.met is False
        assert result.progress == 75.0

    def test_or_takes_best_child(self):
        requirement = parse_requirement(compound("or", STEPS, WORKOUT))

        result = evaluate(requirement, {"steps": 5000, "workout_done": True})

        assert result.met is True
        assert result.progress == 100.0


@pytest.mark.unit
@pytest.mark.domain
class TestLogValues:
    def test_required_metrics_walks_tree(self):
        requirement = parse_requirement(
            compound("and", STEPS, compound("or", WORKOUT, {**STEPS, "metric": "km"}))
        )

        assert required_metrics(requirement) == {"steps", "workout_done", "km"}

    def test_target_and_current_value(self):
        numeric = parse_requirement(STEPS)
        boolean = parse_requirement(WORKOUT)
        data = {"steps": 4200, "workout_done": True}

        assert target_value(numeric) == 10000
        assert target_value(boolean) == 1
        assert current_value(numeric, data, evaluate(numeric, data)) == 4200
        assert current_value(boolean, data, evaluate(boolean, data)) == 1
