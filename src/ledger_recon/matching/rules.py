"""
Conflict rules for import review.
Each rule recognises one kind of conflict between an import candidate and
an existing ledger record.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from ..config import ImportReviewSettings
from ..models.conflicts import (
    ConflictInfo,
    ConflictReason,
    ConflictSeverity,
    ConflictType,
)
from ..models.records import NormalizedRecord, RecordSource
from .comparators import (
    AMOUNT_EPSILON,
    days_apart,
    same_amount_and_date,
    similar_amount_near_date,
    similar_description,
)
from .similarity import similarity

EXACT_DUPLICATE_CONFIDENCE = 95
TRANSFER_CONFLICT_CONFIDENCE = 85
MANUAL_ENTRY_CONFIDENCE = 75
POTENTIAL_DUPLICATE_SCALE = 70

EXACT_DESCRIPTION_THRESHOLD = 0.95
TRANSFER_DATE_TOLERANCE_DAYS = 1


@dataclass(frozen=True)
class RuleMatch:
    """What a rule records when it fires."""

    confidence_score: int
    match_score: float
    reasons: frozenset[ConflictReason]
    message: str


class ConflictRule(ABC):
    """Abstract base class for conflict rules."""

    conflict_type: ConflictType

    @abstractmethod
    def evaluate(
        self,
        candidate: NormalizedRecord,
        existing: NormalizedRecord,
        options: ImportReviewSettings,
    ) -> Optional[RuleMatch]:
        """
        Check whether the candidate conflicts with the existing record.

        Args:
            candidate: Import candidate
            existing: Existing ledger record
            options: Import review settings

        Returns:
            RuleMatch if the rule fires, otherwise None
        """
        pass

    def build_conflict(self, existing: NormalizedRecord, match: RuleMatch) -> ConflictInfo:
        """Turn a rule match into a ConflictInfo; a fired rule always carries a reason."""
        assert match.reasons, f"{self.conflict_type.value} rule fired without a reason"

        return ConflictInfo(
            type=self.conflict_type,
            severity=ConflictSeverity.from_confidence(match.confidence_score),
            confidence_score=match.confidence_score,
            match_score=match.match_score,
            reasons=match.reasons,
            conflicting_record=existing,
            message=match.message,
        )


def _same_identifier(a: Optional[str], b: Optional[str]) -> bool:
    return bool(a) and bool(b) and a == b


class ExactDuplicateRule(ConflictRule):
    """
    Same external id, same reference number, or same amount on the same day
    with a near-identical description.
    """

    conflict_type = ConflictType.EXACT_DUPLICATE

    def evaluate(
        self,
        candidate: NormalizedRecord,
        existing: NormalizedRecord,
        options: ImportReviewSettings,
    ) -> Optional[RuleMatch]:
        reasons: set[ConflictReason] = set()

        if _same_identifier(candidate.external_id, existing.external_id):
            reasons.add(ConflictReason.SAME_EXTERNAL_ID)
        if _same_identifier(candidate.reference_number, existing.reference_number):
            reasons.add(ConflictReason.SAME_REFERENCE_NUMBER)
        if same_amount_and_date(candidate, existing, 0) and similar_description(
            candidate.description, existing.description, EXACT_DESCRIPTION_THRESHOLD
        ):
            reasons.add(ConflictReason.SAME_AMOUNT_AND_DATE)

        if not reasons:
            return None

        if ConflictReason.SAME_EXTERNAL_ID in reasons:
            message = "Transaction with same external reference ID already exists"
        elif ConflictReason.SAME_REFERENCE_NUMBER in reasons:
            message = "Transaction with same reference number already exists"
        else:
            message = "Transaction with same amount, date and description already exists"

        return RuleMatch(
            confidence_score=EXACT_DUPLICATE_CONFIDENCE,
            match_score=1.0,
            reasons=frozenset(reasons),
            message=message,
        )


class TransferConflictRule(ConflictRule):
    """The existing record is a transfer leg mirroring the candidate amount."""

    conflict_type = ConflictType.TRANSFER_CONFLICT

    def evaluate(
        self,
        candidate: NormalizedRecord,
        existing: NormalizedRecord,
        options: ImportReviewSettings,
    ) -> Optional[RuleMatch]:
        if not options.enable_transfer_detection or not existing.is_transfer:
            return None

        # Opposite-signed amounts cancel out
        if abs(candidate.amount + existing.amount) >= AMOUNT_EPSILON:
            return None

        days = days_apart(candidate, existing)
        if days > TRANSFER_DATE_TOLERANCE_DAYS:
            return None

        return RuleMatch(
            confidence_score=TRANSFER_CONFLICT_CONFIDENCE,
            match_score=0.9,
            reasons=frozenset({ConflictReason.TRANSFER_DESTINATION_EXISTS}),
            message=f"Transfer with same amount already exists ({int(days)} days apart)",
        )


class ManualEntryRule(ConflictRule):
    """The existing record was typed in by hand and looks like the same transaction."""

    conflict_type = ConflictType.MANUAL_ENTRY_CONFLICT

    def evaluate(
        self,
        candidate: NormalizedRecord,
        existing: NormalizedRecord,
        options: ImportReviewSettings,
    ) -> Optional[RuleMatch]:
        if existing.source != RecordSource.MANUAL:
            return None

        tolerance = options.conflict_detection_level.manual_entry_tolerance_days
        if not same_amount_and_date(candidate, existing, tolerance):
            return None

        return RuleMatch(
            confidence_score=MANUAL_ENTRY_CONFIDENCE,
            match_score=similarity(candidate.description, existing.description),
            reasons=frozenset({ConflictReason.MANUAL_ENTRY_MATCH}),
            message="Manually entered transaction with same amount and date already exists",
        )


class PotentialDuplicateRule(ConflictRule):
    """Close amount near the same date, scored by description similarity."""

    conflict_type = ConflictType.POTENTIAL_DUPLICATE

    def evaluate(
        self,
        candidate: NormalizedRecord,
        existing: NormalizedRecord,
        options: ImportReviewSettings,
    ) -> Optional[RuleMatch]:
        amount_tolerance = Decimal(str(options.amount_tolerance))
        date_tolerance = options.date_tolerance_days

        threshold = options.description_threshold

        score = similarity(candidate.description, existing.description)
        exact_amount_and_date = same_amount_and_date(candidate, existing, date_tolerance)
        near = similar_amount_near_date(
            candidate, existing, amount_tolerance, date_tolerance
        )

        if not (near or (exact_amount_and_date and score >= threshold)):
            return None

        reasons = {
            ConflictReason.SAME_AMOUNT_AND_DATE
            if exact_amount_and_date
            else ConflictReason.SIMILAR_AMOUNT_NEAR_DATE
        }
        if score >= threshold:
            reasons.add(ConflictReason.SIMILAR_DESCRIPTION)

        if exact_amount_and_date:
            message = "Same amount and date"
        else:
            message = "Similar amount and date"
        if candidate.description.strip() and existing.description.strip():
            message += f" - {score:.0%} description match"
        else:
            message += " - empty description"

        confidence = int(
            (Decimal(str(score)) * POTENTIAL_DUPLICATE_SCALE).quantize(
                Decimal("1"), rounding=ROUND_HALF_UP
            )
        )

        return RuleMatch(
            confidence_score=confidence,
            match_score=score,
            reasons=frozenset(reasons),
            message=message,
        )


def default_rules() -> list[ConflictRule]:
    """Rules in precedence order; the first one that fires wins."""
    return [
        ExactDuplicateRule(),
        TransferConflictRule(),
        ManualEntryRule(),
        PotentialDuplicateRule(),
    ]
