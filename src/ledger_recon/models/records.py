"""Normalized record and match analysis models."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Hashable, Optional


class RecordSource(Enum):
    """Where a ledger transaction or external record originated."""

    MANUAL = "manual"
    CSV_IMPORT = "csv_import"
    OFX_IMPORT = "ofx_import"
    BANK_SYNC = "bank_sync"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class NormalizedRecord:
    """
    Normalized view of a financial record used by every comparison function.

    Ledger transactions, bank statement lines and import candidates are all
    projected into this shape by the collaborator layer before matching, so
    the scoring logic exists exactly once.
    """

    # Signed amount (negative for money out)
    amount: Decimal

    # Transaction date and time
    date: datetime

    description: str = ""

    # Identifier assigned by the bank or import source
    external_id: Optional[str] = None

    # Cheque number, payment reference, etc.
    reference_number: Optional[str] = None

    # Opaque identifier back to the owning entity (ledger transaction id, bank line id)
    source_id: Optional[Hashable] = None

    source: RecordSource = RecordSource.UNKNOWN

    # Set when the ledger transaction is one leg of a transfer
    transfer_id: Optional[Hashable] = None

    account_id: Optional[Hashable] = None

    is_reconciled: bool = False

    @property
    def is_transfer(self) -> bool:
        """Whether the record belongs to a transfer."""
        return self.transfer_id is not None

    def to_payload(self) -> dict[str, Any]:
        """Return a JSON-safe dictionary of the record."""
        return {
            "amount": str(self.amount),
            "date": self.date.isoformat(),
            "description": self.description,
            "external_id": self.external_id,
            "reference_number": self.reference_number,
            "source_id": self.source_id,
            "source": self.source.value,
            "transfer_id": self.transfer_id,
            "account_id": self.account_id,
            "is_reconciled": self.is_reconciled,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "NormalizedRecord":
        """Rebuild a record from the dictionary produced by ``to_payload``."""
        return cls(
            amount=Decimal(str(payload["amount"])),
            date=datetime.fromisoformat(payload["date"]),
            description=payload.get("description") or "",
            external_id=payload.get("external_id"),
            reference_number=payload.get("reference_number"),
            source_id=payload.get("source_id"),
            source=RecordSource(payload.get("source", RecordSource.UNKNOWN.value)),
            transfer_id=payload.get("transfer_id"),
            account_id=payload.get("account_id"),
            is_reconciled=bool(payload.get("is_reconciled", False)),
        )


@dataclass(frozen=True)
class MatchAnalysis:
    """Breakdown of why a ledger transaction and an external record do or don't match."""

    amount_match: bool
    date_match: bool
    description_similar: bool

    amount_difference: Decimal
    date_difference_in_days: int
    description_similarity_score: float

    # Raw values of both sides for display
    ledger_amount: Decimal
    external_amount: Decimal
    ledger_date: datetime
    external_date: datetime
    ledger_description: str
    external_description: str
