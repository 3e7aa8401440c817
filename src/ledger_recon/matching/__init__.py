"""Matching, scoring and conflict classification."""

from .similarity import similarity
from .confidence import ConfidenceCalculator, calculate_confidence, analyze_match
from .rules import (
    ConflictRule,
    ExactDuplicateRule,
    TransferConflictRule,
    ManualEntryRule,
    PotentialDuplicateRule,
)
from .classifier import ConflictClassifier, suggest_resolution
from .engine import ReconciliationMatcher, run_reconciliation_match
from .planner import ImportReviewPlanner, analyze_import_candidates
from .duplicates import DuplicateScanner

__all__ = [
    "similarity",
    "ConfidenceCalculator",
    "calculate_confidence",
    "analyze_match",
    "ConflictRule",
    "ExactDuplicateRule",
    "TransferConflictRule",
    "ManualEntryRule",
    "PotentialDuplicateRule",
    "ConflictClassifier",
    "suggest_resolution",
    "ReconciliationMatcher",
    "run_reconciliation_match",
    "ImportReviewPlanner",
    "analyze_import_candidates",
    "DuplicateScanner",
]
