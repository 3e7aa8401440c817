"""
Field comparators shared by the reconciliation and import-review paths.

All predicates are pure; tolerances are passed by the call site because
reconciliation and import review use different defaults.
"""

from decimal import Decimal

from ..models.records import NormalizedRecord
from .similarity import similarity

# Amount differences below this are treated as equal
AMOUNT_EPSILON = Decimal("0.01")

# Relative amount difference still considered "similar"
RELATIVE_AMOUNT_TOLERANCE = Decimal("0.05")

DEFAULT_DATE_TOLERANCE_DAYS = 3
DEFAULT_AMOUNT_TOLERANCE = Decimal("0.01")
DEFAULT_DESCRIPTION_THRESHOLD = 0.8

SECONDS_PER_DAY = 86400


def days_apart(r1: NormalizedRecord, r2: NormalizedRecord) -> float:
    """Absolute distance between the two record timestamps, in (fractional) days."""
    return abs((r1.date - r2.date).total_seconds()) / SECONDS_PER_DAY


def amount_difference(r1: NormalizedRecord, r2: NormalizedRecord) -> Decimal:
    return abs(r1.amount - r2.amount)


def same_amount_and_date(
    r1: NormalizedRecord,
    r2: NormalizedRecord,
    date_tolerance_days: float = DEFAULT_DATE_TOLERANCE_DAYS,
) -> bool:
    """Amounts equal to the cent and dates within the tolerance (inclusive)."""
    return (
        amount_difference(r1, r2) < AMOUNT_EPSILON
        and days_apart(r1, r2) <= date_tolerance_days
    )


def is_similar_amount(
    a: Decimal, b: Decimal, amount_tolerance: Decimal = DEFAULT_AMOUNT_TOLERANCE
) -> bool:
    """Absolute difference within tolerance, or within 5% of the larger magnitude."""
    diff = abs(a - b)
    if diff <= Decimal(str(amount_tolerance)):
        return True

    larger = max(abs(a), abs(b))
    if larger == 0:
        return False
    return diff / larger <= RELATIVE_AMOUNT_TOLERANCE


def similar_amount_near_date(
    r1: NormalizedRecord,
    r2: NormalizedRecord,
    amount_tolerance: Decimal = DEFAULT_AMOUNT_TOLERANCE,
    date_tolerance_days: float = DEFAULT_DATE_TOLERANCE_DAYS,
) -> bool:
    return (
        is_similar_amount(r1.amount, r2.amount, amount_tolerance)
        and days_apart(r1, r2) <= date_tolerance_days
    )


def similar_description(
    d1: str, d2: str, threshold: float = DEFAULT_DESCRIPTION_THRESHOLD
) -> bool:
    return similarity(d1, d2) >= threshold
