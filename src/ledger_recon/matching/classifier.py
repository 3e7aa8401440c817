"""
Conflict classification for import candidates.
"""

from typing import Iterable, Optional
import logging

from ..config import ImportReviewSettings
from ..models.conflicts import (
    ConflictInfo,
    ConflictType,
    DuplicateExclusion,
    ReviewDecision,
)
from ..models.records import NormalizedRecord
from .rules import ConflictRule, default_rules

logger = logging.getLogger(__name__)


class ConflictClassifier:
    """
    Classifies an import candidate against existing ledger records.

    Rules are evaluated in a fixed order and the first rule that fires
    decides the conflict type for a pair.
    """

    def __init__(
        self,
        options: Optional[ImportReviewSettings] = None,
        rules: Optional[list[ConflictRule]] = None,
    ):
        """
        Initialize the classifier.

        Args:
            options: Import review settings (defaults used when omitted)
            rules: Conflict rules in precedence order
        """
        self.options = options or ImportReviewSettings()
        self.rules = rules if rules is not None else default_rules()

    def classify(
        self, candidate: NormalizedRecord, existing: NormalizedRecord
    ) -> Optional[ConflictInfo]:
        """
        Classify a single (candidate, existing) pair.

        Args:
            candidate: Import candidate
            existing: Existing ledger record

        Returns:
            ConflictInfo from the first rule that fires, or None
        """
        for rule in self.rules:
            match = rule.evaluate(candidate, existing, self.options)
            if match is not None:
                return rule.build_conflict(existing, match)
        return None

    def detect_conflicts(
        self,
        candidate: NormalizedRecord,
        existing_records: Iterable[NormalizedRecord],
        exclusions: Iterable[DuplicateExclusion] = (),
    ) -> list[ConflictInfo]:
        """
        Classify a candidate against every existing record.

        Existing records paired with the candidate by a stored exclusion are
        left out of the comparison entirely.

        Args:
            candidate: Import candidate
            existing_records: Existing ledger records in the relevant window
            exclusions: Pairs the user has marked as not duplicates

        Returns:
            Conflicts ordered by confidence, highest first
        """
        exclusions = list(exclusions)
        conflicts: list[ConflictInfo] = []

        for existing in existing_records:
            if is_excluded(candidate, existing, exclusions):
                logger.debug(
                    f"Skipping excluded pair: {candidate.source_id} / {existing.source_id}"
                )
                continue

            conflict = self.classify(candidate, existing)
            if conflict is not None:
                conflicts.append(conflict)

        conflicts.sort(key=lambda c: c.confidence_score, reverse=True)
        return conflicts

    def suggest_initial_decision(
        self, candidate: NormalizedRecord, conflicts: list[ConflictInfo]
    ) -> ReviewDecision:
        """
        Suggest what to do with a candidate given its ordered conflicts.

        Never suggests Import when any conflict exists, and never suggests
        MergeWithExisting.
        """
        if not conflicts:
            return ReviewDecision.IMPORT

        top = conflicts[0]
        if top.type == ConflictType.EXACT_DUPLICATE:
            return ReviewDecision.SKIP
        if top.confidence_score >= self.options.skip_confidence:
            return ReviewDecision.SKIP
        return ReviewDecision.PENDING


def is_excluded(
    candidate: NormalizedRecord,
    existing: NormalizedRecord,
    exclusions: list[DuplicateExclusion],
) -> bool:
    """True when a stored exclusion covers both records' ids."""
    if candidate.source_id is None or existing.source_id is None:
        return False
    if candidate.source_id == existing.source_id:
        return False
    ids = {candidate.source_id, existing.source_id}
    return any(exclusion.covers(ids) for exclusion in exclusions)


def suggest_resolution(conflict: ConflictInfo) -> ReviewDecision:
    """
    Per-conflict resolution hint shown next to each conflict.

    This never changes the item-level decision.
    """
    confidence = conflict.confidence_score

    if conflict.type == ConflictType.EXACT_DUPLICATE:
        return ReviewDecision.SKIP
    if conflict.type == ConflictType.TRANSFER_CONFLICT:
        return ReviewDecision.SKIP if confidence > 80 else ReviewDecision.PENDING
    if conflict.type == ConflictType.MANUAL_ENTRY_CONFLICT:
        return (
            ReviewDecision.MERGE_WITH_EXISTING if confidence > 75 else ReviewDecision.PENDING
        )
    if confidence > 70:
        return ReviewDecision.SKIP
    if confidence < 40:
        return ReviewDecision.IMPORT
    return ReviewDecision.PENDING
