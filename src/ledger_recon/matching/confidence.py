"""
Composite confidence scoring between a ledger transaction and an external record.
"""

from decimal import Decimal

from ..models.records import MatchAnalysis, NormalizedRecord
from .comparators import AMOUNT_EPSILON, amount_difference, days_apart
from .similarity import similarity

AMOUNT_WEIGHT = 0.4
DATE_WEIGHT = 0.3
DESCRIPTION_WEIGHT = 0.3

# Description similarity above which the analysis reports the descriptions as similar
DESCRIPTION_SIMILAR_THRESHOLD = 0.5

DEFAULT_DATE_WINDOW_DAYS = 3


class ConfidenceCalculator:
    """
    Weighted amount/date/description scorer.

    Amount contributes 40%, date 30% and description 30%. Each term decays
    linearly to zero: the amount term with the relative difference, the date
    term over the date window.
    """

    def __init__(self, date_window_days: float = DEFAULT_DATE_WINDOW_DAYS):
        """
        Initialize the calculator.

        Args:
            date_window_days: Days apart at which the date term reaches zero
        """
        if date_window_days <= 0:
            raise ValueError("date_window_days must be positive")
        self.date_window_days = date_window_days

    def amount_score(self, ledger: NormalizedRecord, external: NormalizedRecord) -> float:
        larger = max(abs(ledger.amount), abs(external.amount), AMOUNT_EPSILON)
        relative = amount_difference(ledger, external) / larger
        return max(0.0, 1.0 - float(relative))

    def date_score(self, ledger: NormalizedRecord, external: NormalizedRecord) -> float:
        return max(0.0, 1.0 - days_apart(ledger, external) / self.date_window_days)

    def calculate_confidence(
        self, ledger: NormalizedRecord, external: NormalizedRecord
    ) -> float:
        """
        Score how likely two records describe the same transaction.

        Args:
            ledger: Ledger transaction
            external: Bank or other external record

        Returns:
            Confidence between 0.0 and 1.0, rounded to 4 places
        """
        score = (
            AMOUNT_WEIGHT * self.amount_score(ledger, external)
            + DATE_WEIGHT * self.date_score(ledger, external)
            + DESCRIPTION_WEIGHT * similarity(ledger.description, external.description)
        )
        return round(min(1.0, max(0.0, score)), 4)

    def analyze_match(
        self, ledger: NormalizedRecord, external: NormalizedRecord
    ) -> MatchAnalysis:
        """Break a comparison down into the signals shown next to a match."""
        amount_diff = amount_difference(ledger, external)
        date_diff = abs((ledger.date.date() - external.date.date()).days)
        description_score = similarity(ledger.description, external.description)

        return MatchAnalysis(
            amount_match=amount_diff < AMOUNT_EPSILON,
            date_match=date_diff == 0,
            description_similar=description_score > DESCRIPTION_SIMILAR_THRESHOLD,
            amount_difference=amount_diff,
            date_difference_in_days=date_diff,
            description_similarity_score=round(description_score, 4),
            ledger_amount=ledger.amount,
            external_amount=external.amount,
            ledger_date=ledger.date,
            external_date=external.date,
            ledger_description=ledger.description,
            external_description=external.description,
        )


_default_calculator = ConfidenceCalculator()


def calculate_confidence(ledger: NormalizedRecord, external: NormalizedRecord) -> float:
    """Confidence with the default 3-day date window."""
    return _default_calculator.calculate_confidence(ledger, external)


def analyze_match(ledger: NormalizedRecord, external: NormalizedRecord) -> MatchAnalysis:
    return _default_calculator.analyze_match(ledger, external)


def describe_match(analysis: MatchAnalysis, confidence: float) -> str:
    """
    Human readable reason for a match.

    Args:
        analysis: Analysis of the matched pair
        confidence: Confidence of the match (0.0-1.0)

    Returns:
        Text such as "Matched on: amount, date (confidence: 87%)"
    """
    fields = []
    if analysis.amount_match:
        fields.append("amount")
    if analysis.date_difference_in_days <= 1:
        fields.append("date")
    if analysis.description_similarity_score >= 0.7:
        fields.append("description")

    reason = f"Matched on: {', '.join(fields)}" if fields else "Partial match"
    return f"{reason} (confidence: {confidence:.0%})"
