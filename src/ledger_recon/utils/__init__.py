"""Utility modules."""

from .exceptions import (
    ReconciliationError,
    InvalidArgumentError,
    InvalidStateError,
    UnbalancedReconciliationError,
    MatchingCancelled,
    ConfigurationError,
    RecordLoadError,
    ReportGenerationError,
)
from .logging_config import setup_logging

__all__ = [
    "ReconciliationError",
    "InvalidArgumentError",
    "InvalidStateError",
    "UnbalancedReconciliationError",
    "MatchingCancelled",
    "ConfigurationError",
    "RecordLoadError",
    "ReportGenerationError",
    "setup_logging",
]
