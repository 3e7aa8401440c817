"""Data models for matching, reconciliation and import review."""

from .records import NormalizedRecord, RecordSource, MatchAnalysis
from .conflicts import (
    ConflictType,
    ConflictSeverity,
    ConflictReason,
    ConflictDetectionLevel,
    ReviewDecision,
    ConflictInfo,
    ImportReviewItem,
    ImportAnalysisSummary,
    ImportAnalysisResult,
    DuplicateExclusion,
    DuplicateGroup,
)
from .reconciliation import (
    ItemType,
    MatchMethod,
    ReconciliationStatus,
    ReconciliationItem,
    ReconciliationResult,
    ReconciliationRun,
    ReconciliationStatistics,
    BalanceCheck,
    FinalizeResult,
    BulkApproveResult,
)

__all__ = [
    "NormalizedRecord",
    "RecordSource",
    "MatchAnalysis",
    "ConflictType",
    "ConflictSeverity",
    "ConflictReason",
    "ConflictDetectionLevel",
    "ReviewDecision",
    "ConflictInfo",
    "ImportReviewItem",
    "ImportAnalysisSummary",
    "ImportAnalysisResult",
    "DuplicateExclusion",
    "DuplicateGroup",
    "ItemType",
    "MatchMethod",
    "ReconciliationStatus",
    "ReconciliationItem",
    "ReconciliationResult",
    "ReconciliationRun",
    "ReconciliationStatistics",
    "BalanceCheck",
    "FinalizeResult",
    "BulkApproveResult",
]
