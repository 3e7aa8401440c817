"""Shared fixtures: record factories and sample CSV files."""

from datetime import datetime
from decimal import Decimal
from pathlib import Path

import pytest

from ledger_recon.models.records import NormalizedRecord, RecordSource


def build_record(
    amount="0",
    date="2024-01-15",
    description="",
    **kwargs,
) -> NormalizedRecord:
    """Build a NormalizedRecord from short literals (amount as str, date as ISO)."""
    if isinstance(date, str):
        date = datetime.fromisoformat(date)
    if isinstance(kwargs.get("source"), str):
        kwargs["source"] = RecordSource(kwargs["source"])
    return NormalizedRecord(
        amount=Decimal(str(amount)),
        date=date,
        description=description,
        **kwargs,
    )


@pytest.fixture
def make_record():
    return build_record


LEDGER_CSV = """\
source_id,amount,date,description,external_id,source,account_id,is_reconciled
1,-100.50,2024-01-15,Grocery Store Purchase,,manual,10,false
2,-42.00,2024-01-16,Coffee Shop,,csv_import,10,false
3,2500.00,2024-01-17,Salary,,bank_sync,10,false
4,-15.00,2024-01-01,Old Reconciled Fee,,manual,10,true
"""

BANK_CSV = """\
source_id,amount,date,description,external_id
B1,-100.50,2024-01-15,Grocery Store Purchase,BANK_1
B2,-42.00,2024-01-17,COFFEE SHOP #12,BANK_2
B3,-999.99,2024-01-20,Unknown Wire,BANK_3
"""


@pytest.fixture
def ledger_csv(tmp_path: Path) -> Path:
    path = tmp_path / "ledger.csv"
    path.write_text(LEDGER_CSV)
    return path


@pytest.fixture
def bank_csv(tmp_path: Path) -> Path:
    path = tmp_path / "bank.csv"
    path.write_text(BANK_CSV)
    return path
