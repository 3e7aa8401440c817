"""Data models for import conflict detection and review."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Hashable, Iterable, Optional

from .records import NormalizedRecord


class ConflictType(Enum):
    """Relationship between an import candidate and an existing record."""

    EXACT_DUPLICATE = "ExactDuplicate"
    TRANSFER_CONFLICT = "TransferConflict"
    MANUAL_ENTRY_CONFLICT = "ManualEntryConflict"
    POTENTIAL_DUPLICATE = "PotentialDuplicate"


class ConflictSeverity(Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"

    @classmethod
    def from_confidence(cls, confidence: int) -> "ConflictSeverity":
        """Severity depends only on the 0-100 confidence, never on the conflict type."""
        if confidence > 80:
            return cls.HIGH
        if confidence > 50:
            return cls.MEDIUM
        return cls.LOW


class ConflictReason(Enum):
    """Evidence recorded when a conflict rule fires."""

    SAME_EXTERNAL_ID = "SameExternalId"
    SAME_REFERENCE_NUMBER = "SameReferenceNumber"
    SAME_AMOUNT_AND_DATE = "SameAmountAndDate"
    SIMILAR_AMOUNT_NEAR_DATE = "SimilarAmountNearDate"
    SIMILAR_DESCRIPTION = "SimilarDescription"
    TRANSFER_DESTINATION_EXISTS = "TransferDestinationExists"
    MANUAL_ENTRY_MATCH = "ManualEntryMatch"


class ReviewDecision(Enum):
    """What to do with an import candidate."""

    IMPORT = "Import"
    SKIP = "Skip"
    MERGE_WITH_EXISTING = "MergeWithExisting"
    PENDING = "Pending"


class ConflictDetectionLevel(Enum):
    """How eagerly manual entries are treated as conflicting."""

    STRICT = "strict"
    MODERATE = "moderate"
    RELAXED = "relaxed"

    @property
    def manual_entry_tolerance_days(self) -> int:
        return {"strict": 1, "moderate": 2, "relaxed": 3}[self.value]


@dataclass(frozen=True)
class ConflictInfo:
    """A detected conflict between one candidate and one existing record."""

    type: ConflictType
    severity: ConflictSeverity
    confidence_score: int  # 0-100
    match_score: float  # 0.0 to 1.0
    reasons: frozenset[ConflictReason]
    conflicting_record: Optional[NormalizedRecord] = None
    message: str = ""


@dataclass
class ImportReviewItem:
    """One import candidate together with its ranked conflicts."""

    id: str
    candidate: NormalizedRecord
    conflicts: list[ConflictInfo] = field(default_factory=list)
    review_decision: ReviewDecision = ReviewDecision.PENDING
    is_processed: bool = False

    @property
    def top_conflict(self) -> Optional[ConflictInfo]:
        return self.conflicts[0] if self.conflicts else None

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)

    def has_conflict_type(self, conflict_type: ConflictType) -> bool:
        return any(c.type == conflict_type for c in self.conflicts)

    def override_decision(self, decision: ReviewDecision) -> None:
        """Apply a user decision; merging is only reachable through this path."""
        self.review_decision = decision


@dataclass(frozen=True)
class ImportAnalysisSummary:
    """Aggregate counts over one import analysis pass."""

    total_candidates: int = 0
    clean_imports: int = 0
    exact_duplicates: int = 0
    potential_duplicates: int = 0
    transfer_conflicts: int = 0
    manual_conflicts: int = 0
    requires_review: int = 0

    @classmethod
    def from_review_items(cls, items: list[ImportReviewItem]) -> "ImportAnalysisSummary":
        """Tally the given review items; never re-runs classification."""
        return cls(
            total_candidates=len(items),
            clean_imports=sum(1 for i in items if not i.has_conflicts),
            exact_duplicates=sum(
                1 for i in items if i.has_conflict_type(ConflictType.EXACT_DUPLICATE)
            ),
            potential_duplicates=sum(
                1
                for i in items
                if i.has_conflict_type(ConflictType.POTENTIAL_DUPLICATE)
                and not i.has_conflict_type(ConflictType.EXACT_DUPLICATE)
            ),
            transfer_conflicts=sum(
                1 for i in items if i.has_conflict_type(ConflictType.TRANSFER_CONFLICT)
            ),
            manual_conflicts=sum(
                1 for i in items if i.has_conflict_type(ConflictType.MANUAL_ENTRY_CONFLICT)
            ),
            requires_review=sum(
                1 for i in items if i.review_decision == ReviewDecision.PENDING
            ),
        )


@dataclass
class ImportAnalysisResult:
    """Result of analyzing a batch of import candidates."""

    review_items: list[ImportReviewItem]
    summary: ImportAnalysisSummary
    analysis_notes: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    analyzed_at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class DuplicateExclusion:
    """A user's decision that a set of transactions are not duplicates of each other."""

    transaction_ids: frozenset

    @classmethod
    def of(cls, ids: Iterable[Hashable]) -> "DuplicateExclusion":
        return cls(transaction_ids=frozenset(ids))

    def covers(self, ids: Iterable[Hashable]) -> bool:
        """True when every given id is part of this exclusion."""
        wanted = set(ids)
        return bool(wanted) and wanted <= self.transaction_ids


@dataclass
class DuplicateGroup:
    """Existing ledger transactions that look like duplicates of one another."""

    records: list[NormalizedRecord]
    highest_confidence: float
    confidences: dict = field(default_factory=dict)

    @property
    def transaction_ids(self) -> list:
        return [r.source_id for r in self.records]

    @property
    def total_amount(self):
        return abs(self.records[0].amount) if self.records else 0
