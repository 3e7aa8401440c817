"""
Reconciliation matching engine.
Pairs bank statement lines with ledger transactions and manages the
lifecycle of the resulting reconciliation items.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Hashable, Iterable, Mapping, Optional
import logging
import threading

from ..config import ReconConfig, ReconciliationSettings
from ..models.records import NormalizedRecord
from ..models.reconciliation import (
    BalanceCheck,
    BulkApproveResult,
    FinalizeResult,
    ItemType,
    MatchMethod,
    ReconciliationItem,
    ReconciliationResult,
    ReconciliationRun,
    ReconciliationStatus,
)
from ..utils.exceptions import (
    InvalidArgumentError,
    InvalidStateError,
    MatchingCancelled,
    UnbalancedReconciliationError,
)
from .confidence import ConfidenceCalculator, describe_match

logger = logging.getLogger(__name__)


class ReconciliationMatcher:
    """
    Matches bank statement lines against ledger transactions.

    Every (bank line, ledger transaction) pair is scored, pairs below the
    minimum confidence are dropped, and the rest are assigned greedily in
    descending confidence order so no record is claimed twice.
    """

    def __init__(self, config: Optional[ReconConfig] = None):
        """
        Initialize the matcher.

        Args:
            config: Application configuration
        """
        self.config = config or ReconConfig()
        self.settings: ReconciliationSettings = self.config.reconciliation
        self.calculator = ConfidenceCalculator(self.settings.date_window_days)

    def match(
        self,
        ledger_records: Iterable[NormalizedRecord],
        bank_records: Iterable[NormalizedRecord],
        period_start: Optional[date] = None,
        period_end: Optional[date] = None,
        rematch: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ) -> ReconciliationResult:
        """
        Run one automatic matching pass.

        Args:
            ledger_records: Ledger transactions for the account
            bank_records: Bank statement lines for the same account
            period_start: First statement day to include (inclusive)
            period_end: Last statement day to include (inclusive)
            rematch: Also consider ledger transactions already reconciled
            cancel_event: Set by the caller to abandon the pass

        Returns:
            Matched, unmatched-bank and unmatched-ledger items

        Raises:
            InvalidArgumentError: If a ledger record has no source_id
            MatchingCancelled: If cancel_event was set before assignment
        """
        start_time = datetime.now()

        ledger = [
            r
            for r in ledger_records
            if (rematch or not r.is_reconciled) and _in_period(r, period_start, period_end)
        ]
        bank = [r for r in bank_records if _in_period(r, period_start, period_end)]

        for position, record in enumerate(ledger):
            if record.source_id is None:
                raise InvalidArgumentError(
                    f"Ledger record at position {position} has no source_id"
                )

        logger.info(
            f"Starting reconciliation match: {len(bank)} bank lines, "
            f"{len(ledger)} ledger transactions"
        )

        pairs = self._score_pairs(ledger, bank, cancel_event)
        _raise_if_cancelled(cancel_event)
        assignments = self._assign(pairs)

        result = ReconciliationResult(
            total_bank_records=len(bank), total_ledger_records=len(ledger)
        )

        claimed_bank: set[int] = set()
        claimed_ledger: set[int] = set()
        for confidence, bank_index, ledger_index in assignments:
            claimed_bank.add(bank_index)
            claimed_ledger.add(ledger_index)
            result.matched.append(
                self._build_matched_item(
                    ledger[ledger_index], bank[bank_index], confidence
                )
            )

        for bank_index, record in enumerate(bank):
            if bank_index not in claimed_bank:
                result.unmatched_bank.append(_unmatched_bank_item(record))

        for ledger_index, record in enumerate(ledger):
            if ledger_index not in claimed_ledger:
                result.unmatched_app.append(_unmatched_app_item(record.source_id))

        result.processing_time_seconds = (datetime.now() - start_time).total_seconds()

        logger.info(
            f"Reconciliation match complete in {result.processing_time_seconds:.2f}s: "
            f"{result.exact_count} exact, {result.fuzzy_count} fuzzy, "
            f"{len(result.unmatched_bank)} unmatched bank, "
            f"{len(result.unmatched_app)} unmatched ledger "
            f"({result.match_percentage:.1f}% matched)"
        )
        if result.unmatched_bank or result.unmatched_app:
            logger.warning("Reconciliation has unmatched records that need manual review")

        return result

    def _score_pairs(
        self,
        ledger: list[NormalizedRecord],
        bank: list[NormalizedRecord],
        cancel_event: Optional[threading.Event],
    ) -> list[tuple[float, int, int]]:
        """
        Score every pair and keep those at or above the minimum confidence.

        Returns:
            List of (confidence, bank_index, ledger_index) tuples
        """
        pairs: list[tuple[float, int, int]] = []

        for bank_index, bank_record in enumerate(bank):
            _raise_if_cancelled(cancel_event)

            for ledger_index, ledger_record in enumerate(ledger):
                confidence = self.calculator.calculate_confidence(ledger_record, bank_record)
                if confidence >= self.settings.min_confidence:
                    pairs.append((confidence, bank_index, ledger_index))

        logger.debug(f"Found {len(pairs)} candidate pairs above threshold")
        return pairs

    def _assign(
        self, pairs: list[tuple[float, int, int]]
    ) -> list[tuple[float, int, int]]:
        """Greedy assignment, highest confidence first; ties keep input order."""
        ordered = sorted(pairs, key=lambda p: (-p[0], p[1], p[2]))

        used_bank: set[int] = set()
        used_ledger: set[int] = set()
        assignments: list[tuple[float, int, int]] = []

        for confidence, bank_index, ledger_index in ordered:
            if bank_index in used_bank or ledger_index in used_ledger:
                continue
            used_bank.add(bank_index)
            used_ledger.add(ledger_index)
            assignments.append((confidence, bank_index, ledger_index))
            logger.debug(
                f"Assigned bank line {bank_index} to ledger record {ledger_index} "
                f"(confidence {confidence:.2f})"
            )

        return assignments

    def _build_matched_item(
        self,
        ledger_record: NormalizedRecord,
        bank_record: NormalizedRecord,
        confidence: float,
    ) -> ReconciliationItem:
        analysis = self.calculator.analyze_match(ledger_record, bank_record)
        method = (
            MatchMethod.EXACT
            if confidence >= self.settings.exact_threshold
            else MatchMethod.FUZZY
        )
        return ReconciliationItem(
            reconciliation_id=None,
            item_type=ItemType.MATCHED,
            transaction_id=ledger_record.source_id,
            bank_reference_data=ReconciliationItem.serialize_bank_record(bank_record),
            match_confidence=confidence,
            match_method=method,
            match_reason=describe_match(analysis, confidence),
            match_analysis=analysis,
        )

    def populate(
        self,
        run: ReconciliationRun,
        ledger_records: Iterable[NormalizedRecord],
        bank_records: Iterable[NormalizedRecord],
        rematch: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ) -> ReconciliationResult:
        """
        Match within the run's statement period and replace its items.

        The run is left untouched if matching fails or is cancelled.
        """
        _require_in_progress(run)

        result = self.match(
            ledger_records,
            bank_records,
            period_start=run.statement_start_date,
            period_end=run.statement_end_date,
            rematch=rematch,
            cancel_event=cancel_event,
        )

        run.items.clear()
        for item in result.all_items():
            run.add_item(item)

        return result

    def manual_match(
        self,
        run: ReconciliationRun,
        user_id: Hashable,
        transaction_id: Optional[Hashable] = None,
        bank_record: Optional[NormalizedRecord] = None,
        ledger_lookup: Optional[Mapping[Hashable, NormalizedRecord]] = None,
        account_id: Optional[Hashable] = None,
    ) -> ReconciliationItem:
        """
        Record a user-chosen match (or a single-sided item).

        When both sides are supplied the confidence and analysis are still
        computed for display, but the method is always Manual. Unmatched
        items already holding either side are consumed.

        Args:
            run: Reconciliation run to modify
            user_id: Requesting user
            transaction_id: Ledger transaction id (optional)
            bank_record: Bank statement line (optional)
            ledger_lookup: Ledger transactions accessible to the user, by id
            account_id: Account the request is scoped to (optional)

        Returns:
            The new reconciliation item

        Raises:
            InvalidArgumentError: On ownership mismatch, missing sides or unknown transaction
            InvalidStateError: If the run is completed or either side is already matched
        """
        _require_owner(run, user_id, account_id)
        _require_in_progress(run)

        if transaction_id is None and bank_record is None:
            raise InvalidArgumentError(
                "Either a ledger transaction id or a bank record must be provided"
            )

        ledger_record: Optional[NormalizedRecord] = None
        if transaction_id is not None:
            ledger_record = (ledger_lookup or {}).get(transaction_id)
            if ledger_record is None:
                raise InvalidArgumentError(
                    f"Transaction {transaction_id} not found or not accessible"
                )
            if ledger_record.account_id is not None and ledger_record.account_id != run.account_id:
                raise InvalidArgumentError(
                    f"Transaction {transaction_id} does not belong to account {run.account_id}"
                )

        bank_data = (
            ReconciliationItem.serialize_bank_record(bank_record)
            if bank_record is not None
            else None
        )

        confidence = None
        analysis = None
        reason = None
        if ledger_record is not None and bank_record is not None:
            _require_unmatched(run, transaction_id, bank_data)
            item_type = ItemType.MATCHED
            confidence = self.calculator.calculate_confidence(ledger_record, bank_record)
            analysis = self.calculator.analyze_match(ledger_record, bank_record)
            reason = "Manual match: " + describe_match(analysis, confidence)
        elif ledger_record is not None:
            item_type = ItemType.UNMATCHED_APP
        else:
            item_type = ItemType.UNMATCHED_BANK

        item = ReconciliationItem(
            reconciliation_id=run.reconciliation_id,
            item_type=item_type,
            transaction_id=transaction_id,
            bank_reference_data=bank_data,
            match_confidence=confidence,
            match_method=MatchMethod.MANUAL,
            match_reason=reason,
            match_analysis=analysis,
        )

        if item_type == ItemType.MATCHED:
            self._consume_unmatched(run, transaction_id, bank_data)

        run.add_item(item)
        logger.info(
            f"Manual {item_type.value} item {item.id} created in reconciliation "
            f"{run.reconciliation_id}"
        )
        return item

    def _consume_unmatched(
        self,
        run: ReconciliationRun,
        transaction_id: Hashable,
        bank_data: str,
    ) -> None:
        """Drop the unmatched items that a manual match now covers."""
        for item in list(run.items.values()):
            if (
                item.item_type == ItemType.UNMATCHED_APP
                and item.transaction_id == transaction_id
            ) or (
                item.item_type == ItemType.UNMATCHED_BANK
                and item.bank_reference_data == bank_data
            ):
                run.remove_item(item.id)
                logger.debug(f"Removed unmatched item {item.id} covered by manual match")

    def unlink(
        self,
        run: ReconciliationRun,
        item_id: int,
        user_id: Hashable,
    ) -> list[ReconciliationItem]:
        """
        Break a Matched item back into its unmatched sides.

        Returns:
            The new UnmatchedApp and/or UnmatchedBank items

        Raises:
            InvalidStateError: If the item does not exist or is not Matched
        """
        _require_owner(run, user_id)
        _require_in_progress(run)

        item = run.get_item(item_id)
        if item.item_type != ItemType.MATCHED:
            raise InvalidStateError(
                f"Only matched items can be unlinked; item {item_id} is {item.item_type.value}"
            )

        run.remove_item(item_id)

        created: list[ReconciliationItem] = []
        if item.transaction_id is not None:
            created.append(run.add_item(_unmatched_app_item(item.transaction_id)))
        if item.bank_reference_data is not None:
            created.append(
                run.add_item(
                    ReconciliationItem(
                        reconciliation_id=run.reconciliation_id,
                        item_type=ItemType.UNMATCHED_BANK,
                        bank_reference_data=item.bank_reference_data,
                    )
                )
            )

        logger.info(
            f"Unlinked item {item_id} into {len(created)} unmatched item(s) "
            f"in reconciliation {run.reconciliation_id}"
        )
        return created

    def approve(
        self,
        run: ReconciliationRun,
        item_id: int,
        user_id: Hashable,
    ) -> ReconciliationItem:
        """
        Approve a Matched item. Approval cannot be cleared.

        Raises:
            InvalidStateError: If the item does not exist or is not Matched
        """
        _require_owner(run, user_id)

        item = run.get_item(item_id)
        if item.item_type != ItemType.MATCHED:
            raise InvalidStateError(
                f"Only matched items can be approved; item {item_id} is {item.item_type.value}"
            )

        if not item.is_approved:
            item.is_approved = True
            item.approved_at = datetime.now()
            logger.debug(f"Approved item {item_id}")

        return item

    def bulk_approve(
        self,
        run: ReconciliationRun,
        user_id: Hashable,
        threshold: Optional[float] = None,
        item_ids: Optional[Iterable[int]] = None,
    ) -> BulkApproveResult:
        """
        Approve many Matched items at once.

        Args:
            run: Reconciliation run
            user_id: Requesting user
            threshold: Minimum confidence to approve (defaults to configuration)
            item_ids: Approve exactly these items instead of using the threshold

        Returns:
            Counts of approved and skipped items
        """
        _require_owner(run, user_id)

        if threshold is None:
            threshold = self.settings.bulk_approve_threshold
        wanted = set(item_ids) if item_ids is not None else None

        result = BulkApproveResult()
        for item in run.items_of_type(ItemType.MATCHED):
            if item.is_approved:
                continue

            if wanted is not None:
                eligible = item.id in wanted
            else:
                eligible = (item.match_confidence or 0.0) >= threshold

            if eligible:
                self.approve(run, item.id, user_id)
                result.approved_count += 1
                result.approved_item_ids.append(item.id)
            else:
                result.skipped_count += 1

        logger.info(
            f"Bulk approved {result.approved_count} item(s), skipped {result.skipped_count}"
        )
        return result

    def check_balance(self, run: ReconciliationRun) -> BalanceCheck:
        difference = run.statement_end_balance - run.calculated_balance
        tolerance = Decimal(str(self.settings.balance_tolerance))
        return BalanceCheck(
            statement_end_balance=run.statement_end_balance,
            calculated_balance=run.calculated_balance,
            balance_difference=difference,
            is_balanced=abs(difference) <= tolerance,
        )

    def finalize(
        self,
        run: ReconciliationRun,
        user_id: Hashable,
        force: bool = False,
    ) -> FinalizeResult:
        """
        Complete a reconciliation run.

        Args:
            run: Reconciliation run
            user_id: Requesting user
            force: Finalize even if unbalanced or with too many unmatched items

        Returns:
            Statistics and the ledger transaction ids to mark reconciled

        Raises:
            InvalidStateError: If already completed or too many items are unmatched
            UnbalancedReconciliationError: If the balances differ and force is False
        """
        _require_owner(run, user_id)
        _require_in_progress(run)

        balance = self.check_balance(run)
        statistics = run.statistics()

        if not force:
            if not balance.is_balanced:
                raise UnbalancedReconciliationError(balance.balance_difference)
            if statistics.unmatched_percentage > self.settings.max_unmatched_percent:
                raise InvalidStateError(
                    f"{statistics.unmatched_percentage:.1f}% of items are unmatched "
                    f"(limit {self.settings.max_unmatched_percent:.1f}%); "
                    f"resolve them or finalize with force"
                )

        transaction_ids = [
            item.transaction_id for item in run.items_of_type(ItemType.MATCHED)
        ]

        run.status = ReconciliationStatus.COMPLETED
        run.completed_at = datetime.now()

        logger.info(
            f"Finalized reconciliation {run.reconciliation_id}: "
            f"{statistics.matched_items}/{statistics.total_items} matched"
            + (" (forced)" if force else "")
        )

        return FinalizeResult(
            statistics=statistics,
            balance=balance,
            forced=force,
            transaction_ids_to_reconcile=transaction_ids,
        )


def _in_period(
    record: NormalizedRecord, start: Optional[date], end: Optional[date]
) -> bool:
    day = record.date.date()
    if start is not None and day < start:
        return False
    if end is not None and day > end:
        return False
    return True


def _raise_if_cancelled(cancel_event: Optional[threading.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise MatchingCancelled("Matching was cancelled")


def _require_owner(
    run: ReconciliationRun, user_id: Hashable, account_id: Optional[Hashable] = None
) -> None:
    if run.user_id != user_id:
        raise InvalidArgumentError(
            f"Reconciliation {run.reconciliation_id} does not belong to user {user_id}"
        )
    if account_id is not None and run.account_id != account_id:
        raise InvalidArgumentError(
            f"Reconciliation {run.reconciliation_id} does not belong to account {account_id}"
        )


def _require_in_progress(run: ReconciliationRun) -> None:
    if run.is_completed:
        raise InvalidStateError(
            f"Reconciliation {run.reconciliation_id} is already completed"
        )


def _require_unmatched(
    run: ReconciliationRun, transaction_id: Hashable, bank_data: str
) -> None:
    for item in run.items_of_type(ItemType.MATCHED):
        if item.transaction_id == transaction_id:
            raise InvalidStateError(f"Transaction {transaction_id} is already matched")
        if item.bank_reference_data == bank_data:
            raise InvalidStateError("Bank record is already matched")


def _unmatched_bank_item(record: NormalizedRecord) -> ReconciliationItem:
    return ReconciliationItem(
        reconciliation_id=None,
        item_type=ItemType.UNMATCHED_BANK,
        bank_reference_data=ReconciliationItem.serialize_bank_record(record),
    )


def _unmatched_app_item(transaction_id: Hashable) -> ReconciliationItem:
    return ReconciliationItem(
        reconciliation_id=None,
        item_type=ItemType.UNMATCHED_APP,
        transaction_id=transaction_id,
    )


def run_reconciliation_match(
    ledger_records: Iterable[NormalizedRecord],
    bank_records: Iterable[NormalizedRecord],
    options: Optional[ReconciliationSettings] = None,
    cancel_event: Optional[threading.Event] = None,
) -> ReconciliationResult:
    """
    Match a bank statement against ledger transactions.

    Args:
        ledger_records: Ledger transactions in the account/date window
        bank_records: Bank statement lines for the same window
        options: Reconciliation settings (defaults used when omitted)
        cancel_event: Set by the caller to abandon the pass

    Returns:
        ReconciliationResult with matched, unmatched_bank and unmatched_app items
    """
    config = ReconConfig(reconciliation=options or ReconciliationSettings())
    return ReconciliationMatcher(config).match(
        ledger_records, bank_records, cancel_event=cancel_event
    )
