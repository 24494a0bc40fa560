"""
Quest requirement language.

Purpose
-------
A quest template stores its completion rule as a small JSON tree. This
module parses that tree into a closed set of immutable node types at the
storage boundary and evaluates it against a flat metric map.

Node types
----------
- numeric:  {"type": "numeric", "metric": "steps", "operator": "gte", "value": 10000}
- boolean:  {"type": "boolean", "metric": "workout_done", "expected": true}
- compound: {"type": "compound", "operator": "and", "requirements": [...]}

Evaluation
----------
- numeric: met by comparison; progress = min(value / target, 1) * 100
- boolean: met when the value equals `expected`; progress 0 or 100
- compound and: all children met; progress = mean of children
- compound or: any child met; progress = max of children

Missing metrics read as 0 (numeric) or False (boolean) and never raise.
Unknown node types and operators are rejected by `parse_requirement`.
"""

from __future__ import annotations

import enum
import math
import sys
from dataclasses import dataclass
from fractions import Fraction
from typing import Any, Dict, Mapping, Set, Tuple, Union

from arise.domain.models.base import DomainValidationError

MetricValue = Union[int, float, bool]
MetricData = Mapping[str, MetricValue]


def is_storable_number(value: Any) -> bool:
    """int or float whose magnitude a float column can hold; NaN and inf are not."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return abs(value) <= sys.float_info.max


class RequirementParseError(DomainValidationError):
    """Raised when a stored requirement tree is malformed."""


class Comparison(str, enum.Enum):
    GTE = "gte"
    LTE = "lte"
    EQ = "eq"
    GT = "gt"
    LT = "lt"

    def compare(self, value: float, target: float) -> bool:
        if self is Comparison.GTE:
            return value >= target
        if self is Comparison.LTE:
            return value <= target
        if self is Comparison.EQ:
            return value == target
        if self is Comparison.GT:
            return value > target
        return value < target


class Combinator(str, enum.Enum):
    AND = "and"
    OR = "or"


@dataclass(frozen=True)
class NumericRequirement:
    metric: str
    operator: Comparison
    value: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "numeric",
            "metric": self.metric,
            "operator": self.operator.value,
            "value": self.value,
        }


@dataclass(frozen=True)
class BooleanRequirement:
    metric: str
    expected: bool

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "boolean", "metric": self.metric, "expected": self.expected}


@dataclass(frozen=True)
class CompoundRequirement:
    operator: Combinator
    requirements: Tuple["Requirement", ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "compound",
            "operator": self.operator.value,
            "requirements": [child.to_dict() for child in self.requirements],
        }


Requirement = Union[NumericRequirement, BooleanRequirement, CompoundRequirement]


@dataclass(frozen=True)
class RequirementResult:
    met: bool
    progress: float
    target: float


# =========================================================================
# PARSING
# =========================================================================


def _require_field(raw: Mapping[str, Any], key: str, path: str) -> Any:
    if key not in raw or raw[key] is None:
        raise RequirementParseError(f"{path}: missing '{key}'", field=f"{path}.{key}")
    return raw[key]


def _parse_metric(raw: Mapping[str, Any], path: str) -> str:
    metric = _require_field(raw, "metric", path)
    if not isinstance(metric, str) or not metric.strip():
        raise RequirementParseError(
            f"{path}: 'metric' must be a non-empty string", field=f"{path}.metric"
        )
    return metric


def parse_requirement(raw: Any, path: str = "requirement") -> Requirement:
    """
    Parse a stored requirement mapping into a typed tree.

    Raises:
        RequirementParseError: unknown type or operator, missing or
            mistyped fields, empty compound list
    """
    if isinstance(raw, (NumericRequirement, BooleanRequirement, CompoundRequirement)):
        return raw
    if not isinstance(raw, Mapping):
        raise RequirementParseError(f"{path}: expected an object", field=path)

    kind = raw.get("type")

    if kind == "numeric":
        metric = _parse_metric(raw, path)
        try:
            operator = Comparison(_require_field(raw, "operator", path))
        except ValueError as exc:
            raise RequirementParseError(
                f"{path}: unknown numeric operator '{raw.get('operator')}'",
                field=f"{path}.operator",
            ) from exc
        value = _require_field(raw, "value", path)
        if not is_storable_number(value):
            raise RequirementParseError(
                f"{path}: 'value' must be a finite number", field=f"{path}.value"
            )
        return NumericRequirement(metric=metric, operator=operator, value=value)

    if kind == "boolean":
        metric = _parse_metric(raw, path)
        expected = _require_field(raw, "expected", path)
        if not isinstance(expected, bool):
            raise RequirementParseError(
                f"{path}: 'expected' must be a boolean", field=f"{path}.expected"
            )
        return BooleanRequirement(metric=metric, expected=expected)

    if kind == "compound":
        try:
            operator = Combinator(_require_field(raw, "operator", path))
        except ValueError as exc:
            raise RequirementParseError(
                f"{path}: unknown compound operator '{raw.get('operator')}'",
                field=f"{path}.operator",
            ) from exc
        children = _require_field(raw, "requirements", path)
        if not isinstance(children, (list, tuple)) or not children:
            raise RequirementParseError(
                f"{path}: 'requirements' must be a non-empty list",
                field=f"{path}.requirements",
            )
        return CompoundRequirement(
            operator=operator,
            requirements=tuple(
                parse_requirement(child, f"{path}.requirements[{index}]")
                for index, child in enumerate(children)
            ),
        )

    raise RequirementParseError(f"{path}: unknown requirement type '{kind}'", field=f"{path}.type")


# =========================================================================
# EVALUATION
# =========================================================================


def _numeric_value(data: MetricData, metric: str) -> float:
    value = data.get(metric, 0)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    if isinstance(value, float) and not math.isfinite(value):
        return 0
    return value


def evaluate(requirement: Requirement, data: MetricData) -> RequirementResult:
    """Evaluate a parsed requirement tree against metric data."""
    if isinstance(requirement, NumericRequirement):
        value = _numeric_value(data, requirement.metric)
        target = requirement.value
        met = requirement.operator.compare(value, target)

        if target == 0:
            progress = 100.0 if met else 0.0
        else:
            # exact ratio; metric values may exceed float range
            ratio = Fraction(value) / Fraction(target)
            progress = float(min(max(ratio, 0), 1) * 100)

        return RequirementResult(met=met, progress=progress, target=target)

    if isinstance(requirement, BooleanRequirement):
        value = data.get(requirement.metric, False)
        met = isinstance(value, bool) and value == requirement.expected
        return RequirementResult(met=met, progress=100.0 if met else 0.0, target=1)

    if isinstance(requirement, CompoundRequirement):
        results = [evaluate(child, data) for child in requirement.requirements]
        if requirement.operator is Combinator.AND:
            return RequirementResult(
                met=all(r.met for r in results),
                progress=sum(r.progress for r in results) / len(results),
                target=100,
            )
        return RequirementResult(
            met=any(r.met for r in results),
            progress=max(r.progress for r in results),
            target=100,
        )

    raise TypeError(f"Unsupported requirement node: {type(requirement).__name__}")


def required_metrics(requirement: Requirement) -> Set[str]:
    """Metric names a requirement tree reads."""
    if isinstance(requirement, (NumericRequirement, BooleanRequirement)):
        return {requirement.metric}
    metrics: Set[str] = set()
    for child in requirement.requirements:
        metrics |= required_metrics(child)
    return metrics


def target_value(requirement: Requirement) -> float:
    """Target stored on a quest log: the numeric value, else 1."""
    if isinstance(requirement, NumericRequirement):
        return requirement.value
    return 1


def current_value(requirement: Requirement, data: MetricData, result: RequirementResult) -> float:
    """Value stored on a quest log: the metric for numeric rules, else 1/0."""
    if isinstance(requirement, NumericRequirement):
        return _numeric_value(data, requirement.metric)
    return 1 if result.met else 0
