"""Custom exceptions for the matching and reconciliation engine."""

from decimal import Decimal


class ReconciliationError(Exception):
    """Base exception for ledger matching errors."""

    pass


class InvalidArgumentError(ReconciliationError):
    """Missing or mismatched identifiers supplied by the caller."""

    pass


class InvalidStateError(ReconciliationError):
    """Operation requested against an item or run in the wrong state."""

    pass


class UnbalancedReconciliationError(ReconciliationError):
    """Finalization attempted on an unbalanced reconciliation without force."""

    def __init__(self, balance_difference: Decimal):
        self.balance_difference = balance_difference
        super().__init__(
            f"Reconciliation is not balanced (difference {balance_difference}); "
            "use force to finalize anyway"
        )


class MatchingCancelled(ReconciliationError):
    """A matching pass was cancelled by the caller before completion."""

    pass


class ConfigurationError(ReconciliationError):
    """Error in configuration."""

    pass


class RecordLoadError(ReconciliationError):
    """Error loading normalized records from a file."""

    pass


class ReportGenerationError(ReconciliationError):
    """Error generating Excel report."""

    pass
