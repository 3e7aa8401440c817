"""
Import review planning.
Runs conflict classification for every import candidate and summarises the
outcome for review.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from typing import Iterable, Optional
import logging
import threading

from ..config import ImportReviewSettings
from ..models.conflicts import (
    ConflictType,
    DuplicateExclusion,
    ImportAnalysisResult,
    ImportAnalysisSummary,
    ImportReviewItem,
)
from ..models.records import NormalizedRecord
from ..utils.exceptions import MatchingCancelled
from .classifier import ConflictClassifier

logger = logging.getLogger(__name__)

HIGH_CONFIDENCE_NOTE_THRESHOLD = 90
LARGE_AMOUNT = 100000
MAX_AGE_YEARS = 5


class ImportReviewPlanner:
    """Builds one review item per import candidate."""

    def __init__(self, options: Optional[ImportReviewSettings] = None):
        """
        Initialize the planner.

        Args:
            options: Import review settings (defaults used when omitted)
        """
        self.options = options or ImportReviewSettings()
        self.classifier = ConflictClassifier(self.options)

    def analyze(
        self,
        candidates: Iterable[NormalizedRecord],
        existing_window: Iterable[NormalizedRecord],
        exclusions: Iterable[DuplicateExclusion] = (),
        cancel_event: Optional[threading.Event] = None,
        now: Optional[datetime] = None,
    ) -> ImportAnalysisResult:
        """
        Analyze a batch of import candidates.

        Args:
            candidates: Parsed records proposed for import
            existing_window: Existing ledger records for the same account and date range
            exclusions: Stored "not a duplicate" decisions
            cancel_event: Set by the caller to abandon the analysis
            now: Reference time for date sanity warnings

        Returns:
            Review items, their summary, notes and warnings

        Raises:
            MatchingCancelled: If cancel_event was set during the analysis
        """
        candidates = list(candidates)
        existing = list(existing_window)
        exclusions = list(exclusions)
        now = now or datetime.now()

        if not candidates:
            logger.warning("Import analysis received no candidates")
            return ImportAnalysisResult(
                review_items=[],
                summary=ImportAnalysisSummary(),
                analysis_notes=["No transactions found in the import data"],
                warnings=["Import appears to be empty or no valid transactions were found"],
            )

        logger.info(
            f"Analyzing {len(candidates)} import candidates against "
            f"{len(existing)} existing records"
        )

        def review(indexed: tuple[int, NormalizedRecord]) -> ImportReviewItem:
            index, candidate = indexed
            if cancel_event is not None and cancel_event.is_set():
                raise MatchingCancelled("Import analysis was cancelled")
            return self.review_candidate(index, candidate, existing, exclusions)

        if self.options.max_workers > 1:
            with ThreadPoolExecutor(max_workers=self.options.max_workers) as executor:
                items = list(executor.map(review, enumerate(candidates)))
        else:
            items = [review(indexed) for indexed in enumerate(candidates)]

        summary = ImportAnalysisSummary.from_review_items(items)

        logger.info(
            f"Import analysis complete: {summary.clean_imports} clean, "
            f"{summary.exact_duplicates} exact duplicates, "
            f"{summary.potential_duplicates} potential duplicates, "
            f"{summary.requires_review} requiring review"
        )

        return ImportAnalysisResult(
            review_items=items,
            summary=summary,
            analysis_notes=self._analysis_notes(items),
            warnings=self._warnings(candidates, now),
        )

    def review_candidate(
        self,
        index: int,
        candidate: NormalizedRecord,
        existing: list[NormalizedRecord],
        exclusions: list[DuplicateExclusion],
    ) -> ImportReviewItem:
        conflicts = self.classifier.detect_conflicts(candidate, existing, exclusions)
        decision = self.classifier.suggest_initial_decision(candidate, conflicts)

        if conflicts:
            top = conflicts[0]
            logger.debug(
                f"Candidate {index}: {len(conflicts)} conflict(s), top "
                f"{top.type.value} at {top.confidence_score}, suggesting {decision.value}"
            )

        return ImportReviewItem(
            id=f"import-item-{index}",
            candidate=candidate,
            conflicts=conflicts,
            review_decision=decision,
        )

    def _analysis_notes(self, items: list[ImportReviewItem]) -> list[str]:
        notes: list[str] = []

        if any(
            c.confidence_score > HIGH_CONFIDENCE_NOTE_THRESHOLD
            for item in items
            for c in item.conflicts
        ):
            notes.append("High-confidence duplicate matches detected - review recommended")

        transfer_conflicts = sum(
            1 for item in items if item.has_conflict_type(ConflictType.TRANSFER_CONFLICT)
        )
        if transfer_conflicts:
            notes.append(f"{transfer_conflicts} potential transfer conflicts detected")

        if self.options.date_tolerance_days > 5:
            notes.append("Large date tolerance may result in false positive matches")

        return notes

    def _warnings(self, candidates: list[NormalizedRecord], now: datetime) -> list[str]:
        warnings: list[str] = []

        seen: dict[str, int] = {}
        for candidate in candidates:
            if candidate.external_id:
                seen[candidate.external_id] = seen.get(candidate.external_id, 0) + 1
        duplicate_ids = [external_id for external_id, count in seen.items() if count > 1]
        if duplicate_ids:
            warnings.append(
                f"Duplicate external reference IDs found: {', '.join(duplicate_ids)}"
            )

        missing_descriptions = sum(1 for c in candidates if not c.description.strip())
        if missing_descriptions:
            warnings.append(
                f"{missing_descriptions} transactions have missing or empty descriptions"
            )

        large_amounts = sum(1 for c in candidates if abs(c.amount) > LARGE_AMOUNT)
        if large_amounts:
            warnings.append(
                f"{large_amounts} transactions have amounts over 100,000 - "
                "please verify these are correct"
            )

        future_dated = sum(1 for c in candidates if c.date > now + timedelta(days=1))
        if future_dated:
            warnings.append(f"{future_dated} transactions are dated in the future")

        cutoff = _years_before(now, MAX_AGE_YEARS)
        very_old = sum(1 for c in candidates if c.date < cutoff)
        if very_old:
            warnings.append(f"{very_old} transactions are older than {MAX_AGE_YEARS} years")

        if self.options.date_tolerance_days > 7:
            warnings.append("Large date tolerance may result in false positive matches")

        if self.options.amount_tolerance > 1.0:
            warnings.append("Large amount tolerance may result in false positive matches")

        return warnings


def _years_before(moment: datetime, years: int) -> datetime:
    try:
        return moment.replace(year=moment.year - years)
    except ValueError:
        # 29 February
        return moment.replace(year=moment.year - years, day=28)


def analyze_import_candidates(
    candidates: Iterable[NormalizedRecord],
    existing_window: Iterable[NormalizedRecord],
    options: Optional[ImportReviewSettings] = None,
    exclusions: Iterable[DuplicateExclusion] = (),
) -> list[ImportReviewItem]:
    """
    Classify every import candidate against the existing-record window.

    Args:
        candidates: Parsed records proposed for import
        existing_window: Existing ledger records already scoped to the account and dates
        options: Import review settings
        exclusions: Stored "not a duplicate" decisions

    Returns:
        One ImportReviewItem per candidate, in input order
    """
    return ImportReviewPlanner(options).analyze(
        candidates, existing_window, exclusions
    ).review_items
