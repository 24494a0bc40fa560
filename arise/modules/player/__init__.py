"""Player Module: registration and progression profile settings."""

from .progression_service import PlayerProgressionService

__all__ = ["PlayerProgressionService"]
