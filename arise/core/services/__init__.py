"""Service wiring."""

from arise.core.services.container import ServiceContainer

__all__ = ["ServiceContainer"]
