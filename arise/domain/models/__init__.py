from arise.domain.models.base import DomainValidationError, validate_range

__all__ = ["DomainValidationError", "validate_range"]
