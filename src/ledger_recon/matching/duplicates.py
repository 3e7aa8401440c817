"""
Duplicate detection within the existing ledger.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterable, Optional
import logging

from ..config import DuplicateScanSettings
from ..models.conflicts import DuplicateExclusion, DuplicateGroup
from ..models.records import NormalizedRecord
from .comparators import RELATIVE_AMOUNT_TOLERANCE
from .similarity import similarity

logger = logging.getLogger(__name__)


class DuplicateScanner:
    """
    Groups existing ledger transactions that look like duplicates of each other.

    Each unprocessed transaction collects every other transaction that passes
    the date and amount filters and scores at least the minimum confidence.
    Transactions end up in at most one group.
    """

    def __init__(self, settings: Optional[DuplicateScanSettings] = None):
        """
        Initialize the scanner.

        Args:
            settings: Duplicate scan settings (defaults used when omitted)
        """
        self.settings = settings or DuplicateScanSettings()
        self.amount_tolerance = Decimal(str(self.settings.amount_tolerance))

    def scan(
        self,
        records: Iterable[NormalizedRecord],
        exclusions: Iterable[DuplicateExclusion] = (),
        as_of: Optional[datetime] = None,
    ) -> list[DuplicateGroup]:
        """
        Find duplicate groups among ledger records.

        Args:
            records: Existing ledger records
            exclusions: Groups the user dismissed as not duplicates
            as_of: End of the lookback window (defaults to now)

        Returns:
            Groups ordered by highest confidence, then absolute amount
        """
        as_of = as_of or datetime.now()
        cutoff = as_of - timedelta(days=self.settings.lookback_days)
        window = [r for r in records if r.date >= cutoff]
        exclusions = list(exclusions)

        logger.info(
            f"Scanning {len(window)} ledger records for duplicates "
            f"since {cutoff:%Y-%m-%d}"
        )

        groups: list[DuplicateGroup] = []
        processed: set[int] = set()

        for index, source in enumerate(window):
            if index in processed:
                continue

            matches = self._find_duplicates(index, source, window)
            if not matches:
                continue

            members = [source] + [window[i] for i, _ in matches]
            group = DuplicateGroup(
                records=members,
                highest_confidence=max(confidence for _, confidence in matches),
                confidences={window[i].source_id: confidence for i, confidence in matches},
            )

            if any(exclusion.covers(group.transaction_ids) for exclusion in exclusions):
                logger.debug(f"Suppressed excluded group {group.transaction_ids}")
            else:
                groups.append(group)

            # Members of an excluded group are still consumed
            processed.add(index)
            processed.update(i for i, _ in matches)

        groups.sort(key=lambda g: (-g.highest_confidence, -g.total_amount))

        logger.info(f"Found {len(groups)} duplicate group(s)")
        return groups

    def _find_duplicates(
        self,
        source_index: int,
        source: NormalizedRecord,
        window: list[NormalizedRecord],
    ) -> list[tuple[int, float]]:
        matches: list[tuple[int, float]] = []

        for index, candidate in enumerate(window):
            if index == source_index:
                continue
            if self.settings.same_account_only and candidate.account_id != source.account_id:
                continue
            if _calendar_days_apart(source, candidate) > self.settings.date_tolerance_days:
                continue

            amount_diff = abs(source.amount - candidate.amount)
            if (
                amount_diff > self.amount_tolerance
                and amount_diff > abs(source.amount) * RELATIVE_AMOUNT_TOLERANCE
            ):
                continue

            confidence = self.score(source, candidate)
            if confidence >= self.settings.min_confidence:
                matches.append((index, confidence))

        matches.sort(key=lambda m: m[1], reverse=True)
        return matches

    def score(self, source: NormalizedRecord, candidate: NormalizedRecord) -> float:
        """Duplicate confidence between two ledger records, clamped to [0, 1]."""
        score = Decimal("0")

        amount_diff = abs(source.amount - candidate.amount)
        if amount_diff <= self.amount_tolerance:
            score += Decimal("0.4")
        elif amount_diff <= abs(source.amount) * RELATIVE_AMOUNT_TOLERANCE:
            score += Decimal("0.2")

        days = _calendar_days_apart(source, candidate)
        if days == 0:
            score += Decimal("0.3")
        elif days <= self.settings.date_tolerance_days:
            score += Decimal("0.2")

        description_score = similarity(source.description, candidate.description)
        if description_score > 0.9:
            score += Decimal("0.2")
        elif description_score > 0.7:
            score += Decimal("0.15")
        elif description_score > 0.5:
            score += Decimal("0.1")

        if source.account_id == candidate.account_id:
            score += Decimal("0.1")

        if source.external_id and candidate.external_id and source.external_id != candidate.external_id:
            score -= Decimal("0.3")

        return float(max(Decimal("0"), min(Decimal("1"), score)))


def _calendar_days_apart(r1: NormalizedRecord, r2: NormalizedRecord) -> int:
    return abs((r1.date.date() - r2.date.date()).days)
