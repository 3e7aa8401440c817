"""Transaction matching, reconciliation and import conflict detection."""

__version__ = "0.1.0"

from .matching.confidence import calculate_confidence, analyze_match
from .matching.engine import run_reconciliation_match
from .matching.planner import analyze_import_candidates

__all__ = [
    "__version__",
    "calculate_confidence",
    "analyze_match",
    "run_reconciliation_match",
    "analyze_import_candidates",
]
