"""Data models for statement reconciliation runs and their items."""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Hashable, Optional
import json

from ..utils.exceptions import InvalidArgumentError, InvalidStateError
from .records import MatchAnalysis, NormalizedRecord


class ItemType(Enum):
    """Classification of a reconciliation item."""

    MATCHED = "Matched"
    UNMATCHED_BANK = "UnmatchedBank"  # Bank line with no ledger counterpart
    UNMATCHED_APP = "UnmatchedApp"  # Ledger transaction with no bank counterpart


class MatchMethod(Enum):
    EXACT = "Exact"
    FUZZY = "Fuzzy"
    MANUAL = "Manual"


class ReconciliationStatus(Enum):
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"


@dataclass
class ReconciliationItem:
    """
    Persistable classification result of a reconciliation pass.

    Matched items carry both sides; UnmatchedApp items only the ledger
    transaction id; UnmatchedBank items only the serialized bank record.
    """

    reconciliation_id: Optional[Hashable]
    item_type: ItemType
    transaction_id: Optional[Hashable] = None
    bank_reference_data: Optional[str] = None
    match_confidence: Optional[float] = None
    match_method: Optional[MatchMethod] = None
    match_reason: Optional[str] = None

    # Display only, not persisted
    match_analysis: Optional[MatchAnalysis] = None

    is_approved: bool = False
    approved_at: Optional[datetime] = None
    id: Optional[int] = None
    created_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self) -> None:
        has_txn = self.transaction_id is not None
        has_bank = self.bank_reference_data is not None

        if self.item_type == ItemType.MATCHED and not (has_txn and has_bank):
            raise InvalidArgumentError(
                "Matched item requires both a ledger transaction and bank reference data"
            )
        if self.item_type == ItemType.UNMATCHED_APP and (not has_txn or has_bank):
            raise InvalidArgumentError(
                "UnmatchedApp item requires a ledger transaction and no bank reference data"
            )
        if self.item_type == ItemType.UNMATCHED_BANK and (has_txn or not has_bank):
            raise InvalidArgumentError(
                "UnmatchedBank item requires bank reference data and no ledger transaction"
            )

    @property
    def bank_record(self) -> Optional[NormalizedRecord]:
        """Parse the serialized bank record back into a NormalizedRecord."""
        if self.bank_reference_data is None:
            return None
        return NormalizedRecord.from_payload(json.loads(self.bank_reference_data))

    @staticmethod
    def serialize_bank_record(record: NormalizedRecord) -> str:
        return json.dumps(record.to_payload(), sort_keys=True, default=str)


@dataclass
class ReconciliationResult:
    """Output of one automatic matching pass."""

    matched: list[ReconciliationItem] = field(default_factory=list)
    unmatched_bank: list[ReconciliationItem] = field(default_factory=list)
    unmatched_app: list[ReconciliationItem] = field(default_factory=list)
    total_bank_records: int = 0
    total_ledger_records: int = 0
    processing_time_seconds: float = 0.0

    @property
    def exact_count(self) -> int:
        return sum(1 for i in self.matched if i.match_method == MatchMethod.EXACT)

    @property
    def fuzzy_count(self) -> int:
        return sum(1 for i in self.matched if i.match_method == MatchMethod.FUZZY)

    @property
    def match_percentage(self) -> float:
        """Share of all records on both sides that ended up paired."""
        total = self.total_bank_records + self.total_ledger_records
        if total == 0:
            return 0.0
        return (len(self.matched) * 2) / total * 100

    def all_items(self) -> list[ReconciliationItem]:
        return self.matched + self.unmatched_bank + self.unmatched_app


@dataclass(frozen=True)
class BalanceCheck:
    statement_end_balance: Decimal
    calculated_balance: Decimal
    balance_difference: Decimal
    is_balanced: bool


@dataclass(frozen=True)
class ReconciliationStatistics:
    total_items: int
    matched_items: int
    unmatched_bank_items: int
    unmatched_app_items: int

    @property
    def unmatched_items(self) -> int:
        return self.unmatched_bank_items + self.unmatched_app_items

    @property
    def match_percentage(self) -> float:
        if self.total_items == 0:
            return 0.0
        return self.matched_items / self.total_items * 100

    @property
    def unmatched_percentage(self) -> float:
        if self.total_items == 0:
            return 0.0
        return self.unmatched_items / self.total_items * 100


@dataclass(frozen=True)
class FinalizeResult:
    statistics: ReconciliationStatistics
    balance: BalanceCheck
    forced: bool
    # Ledger transactions the caller should now flag as reconciled
    transaction_ids_to_reconcile: list = field(default_factory=list)


@dataclass
class BulkApproveResult:
    approved_count: int = 0
    skipped_count: int = 0
    approved_item_ids: list[int] = field(default_factory=list)


@dataclass
class ReconciliationRun:
    """
    In-memory state of one reconciliation (one account and statement period).

    The collaborator layer loads and persists this; the engine only mutates
    the item table through ReconciliationMatcher operations.
    """

    reconciliation_id: Hashable
    account_id: Hashable
    user_id: Hashable
    statement_end_balance: Decimal
    calculated_balance: Decimal
    statement_start_date: Optional[date] = None
    statement_end_date: Optional[date] = None
    status: ReconciliationStatus = ReconciliationStatus.IN_PROGRESS
    completed_at: Optional[datetime] = None
    items: dict[int, ReconciliationItem] = field(default_factory=dict)
    _next_item_id: int = field(default=1, repr=False)

    @property
    def is_completed(self) -> bool:
        return self.status == ReconciliationStatus.COMPLETED

    def items_of_type(self, item_type: ItemType) -> list[ReconciliationItem]:
        return [i for i in self.items.values() if i.item_type == item_type]

    def add_item(self, item: ReconciliationItem) -> ReconciliationItem:
        """Assign the next item id and store the item."""
        item.id = self._next_item_id
        item.reconciliation_id = self.reconciliation_id
        self._next_item_id += 1
        self.items[item.id] = item
        return item

    def get_item(self, item_id: int) -> ReconciliationItem:
        try:
            return self.items[item_id]
        except KeyError:
            raise InvalidStateError(
                f"Reconciliation item {item_id} does not exist in reconciliation "
                f"{self.reconciliation_id}"
            ) from None

    def remove_item(self, item_id: int) -> ReconciliationItem:
        item = self.get_item(item_id)
        del self.items[item_id]
        return item

    def statistics(self) -> ReconciliationStatistics:
        return ReconciliationStatistics(
            total_items=len(self.items),
            matched_items=len(self.items_of_type(ItemType.MATCHED)),
            unmatched_bank_items=len(self.items_of_type(ItemType.UNMATCHED_BANK)),
            unmatched_app_items=len(self.items_of_type(ItemType.UNMATCHED_APP)),
        )
