"""
Duplicate detection and merge engine.

Public entry point is DuplicateService; the finder, planner and executor are
exported for callers that do their own validation.
"""

from services.listings.duplicates.errors import (
    DuplicateEngineError,
    EntityNotFoundError,
    InvalidInputError,
    MergeConflictError,
    MergeContext,
    MergeError,
    MergeStep,
    MergeStepError,
    MergeTimeoutError,
)
from services.listings.duplicates.executor import MergeExecutor
from services.listings.duplicates.finder import DuplicateFinder
from services.listings.duplicates.planner import MergePlanner
from services.listings.duplicates.service import DuplicateService
from services.listings.duplicates.similarity import score
from services.listings.duplicates.sql_repository import SqlEntityRepository
from services.listings.duplicates.types import (
    DuplicateGroup,
    DuplicatePair,
    EntityKind,
    FindDuplicatesResponse,
    MergePreview,
    MergeResult,
    MergeWarning,
    RelationshipCounts,
    WarningCode,
)

__all__ = [
    "DuplicateEngineError",
    "EntityNotFoundError",
    "InvalidInputError",
    "MergeConflictError",
    "MergeContext",
    "MergeError",
    "MergeStep",
    "MergeStepError",
    "MergeTimeoutError",
    "MergeExecutor",
    "DuplicateFinder",
    "MergePlanner",
    "DuplicateService",
    "score",
    "SqlEntityRepository",
    "DuplicateGroup",
    "DuplicatePair",
    "EntityKind",
    "FindDuplicatesResponse",
    "MergePreview",
    "MergeResult",
    "MergeWarning",
    "RelationshipCounts",
    "WarningCode",
]
