"""
Quest Module
============

Services
--------
- QuestCatalogService: templates and the lazily created daily board
- QuestProgressService: evaluate metrics, award XP, update the day
- QuestLifecycleService: reset and remove quest logs

All multi-step mutations share one transaction with the XP ledger.
"""

from .catalog_service import QuestCatalogService
from .lifecycle_service import QuestLifecycleService, QuestResetResult
from .progress_service import (
    QuestEvaluationSummary,
    QuestProgressResult,
    QuestProgressService,
)

__all__ = [
    "QuestCatalogService",
    "QuestProgressService",
    "QuestLifecycleService",
    "QuestProgressResult",
    "QuestEvaluationSummary",
    "QuestResetResult",
]
