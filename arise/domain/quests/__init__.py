from arise.domain.quests.requirements import (
    BooleanRequirement,
    Combinator,
    Comparison,
    CompoundRequirement,
    NumericRequirement,
    Requirement,
    RequirementParseError,
    RequirementResult,
    evaluate,
    parse_requirement,
    required_metrics,
)

__all__ = [
    "BooleanRequirement",
    "Combinator",
    "Comparison",
    "CompoundRequirement",
    "NumericRequirement",
    "Requirement",
    "RequirementParseError",
    "RequirementResult",
    "evaluate",
    "parse_requirement",
    "required_metrics",
]
