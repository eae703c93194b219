"""
Conflict-aware import of backup data sets into the live library.

This package detects conflicts between an incoming data set and the
library, resolves them according to an ImportStrategy, and commits the
result atomically.
"""

from bookvault.merge.conflict import (
    BookConflict,
    ConflictDetector,
    ConflictInfo,
    ListNameConflict,
    MatchType,
)
from bookvault.merge.importer import (
    ImportOrchestrator,
    ImportResult,
    ImportState,
    ImportStateError,
    ImportSummary,
    PendingImport,
)
from bookvault.merge.resolver import MergeResolver, ResolutionPlan
from bookvault.merge.strategy import (
    DEFAULT_STRATEGY,
    BookAction,
    BookResolution,
    CommentMerge,
    FieldMerge,
    ImportStrategy,
    ListAction,
)

__all__ = [
    "BookAction",
    "BookConflict",
    "BookResolution",
    "CommentMerge",
    "ConflictDetector",
    "ConflictInfo",
    "DEFAULT_STRATEGY",
    "FieldMerge",
    "ImportOrchestrator",
    "ImportResult",
    "ImportState",
    "ImportStateError",
    "ImportStrategy",
    "ImportSummary",
    "ListAction",
    "ListNameConflict",
    "MatchType",
    "MergeResolver",
    "PendingImport",
    "ResolutionPlan",
]
