"""
Loader for normalized record CSV files.
Converts already-normalized exports into NormalizedRecord values.
"""

from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Hashable, Optional
import logging

import pandas as pd

from ..config import ReconConfig
from ..models.conflicts import DuplicateExclusion
from ..models.records import NormalizedRecord, RecordSource
from ..utils.exceptions import RecordLoadError

logger = logging.getLogger(__name__)

TRUE_VALUES = {"true", "1", "yes", "y", "t"}


class RecordLoader:
    """
    Loader for CSV files holding normalized records.

    Columns default to the normalized field names and can be renamed
    through the ``input.column_mappings`` configuration.
    """

    def __init__(self, config: Optional[ReconConfig] = None):
        """
        Initialize the loader with configuration.

        Args:
            config: Application configuration object
        """
        self.config = config or ReconConfig()
        self.input_config = self.config.input
        self.column_mappings = self.input_config.column_mappings

    def load_file(self, file_path: Path) -> list[NormalizedRecord]:
        """
        Load a normalized record CSV file.

        Args:
            file_path: Path to the CSV file

        Returns:
            List of normalized records

        Raises:
            RecordLoadError: If the file cannot be read or a row is malformed
        """
        logger.info(f"Loading records from: {file_path}")

        df = self._read_csv(file_path)

        for field in ("amount", "date"):
            column = self._column(field)
            if column not in df.columns:
                raise RecordLoadError(f"{file_path.name}: missing required column '{column}'")

        records: list[NormalizedRecord] = []
        for idx, row in df.iterrows():
            # Row numbers as seen in a spreadsheet (header is row 1)
            row_number = int(idx) + 2
            if all(not str(v).strip() for v in row.values):
                continue
            records.append(self._normalize_row(row, row_number))

        logger.info(f"Loaded {len(records)} records from {file_path.name}")
        return records

    def load_exclusions(self, file_path: Path) -> list[DuplicateExclusion]:
        """
        Load stored duplicate exclusions.

        Each row holds a ``transaction_ids`` column with ids separated by
        semicolons, e.g. ``5;9``.
        """
        df = self._read_csv(file_path)
        if "transaction_ids" not in df.columns:
            raise RecordLoadError(f"{file_path.name}: missing required column 'transaction_ids'")

        exclusions: list[DuplicateExclusion] = []
        for value in df["transaction_ids"]:
            ids = [_parse_id(part) for part in str(value).split(";")]
            ids = [i for i in ids if i is not None]
            if ids:
                exclusions.append(DuplicateExclusion.of(ids))

        logger.info(f"Loaded {len(exclusions)} duplicate exclusions from {file_path.name}")
        return exclusions

    def _read_csv(self, file_path: Path) -> pd.DataFrame:
        try:
            return pd.read_csv(
                file_path,
                encoding=self.input_config.encoding,
                delimiter=self.input_config.delimiter,
                dtype=str,
                keep_default_na=False,
            )
        except Exception as e:
            logger.error(f"Failed to read CSV file: {e}")
            raise RecordLoadError(f"Failed to read CSV file {file_path}: {e}") from e

    def _column(self, field: str) -> str:
        return self.column_mappings.get(field, field)

    def _value(self, row: pd.Series, field: str) -> str:
        value = row.get(self._column(field), "")
        return str(value).strip() if value is not None else ""

    def _normalize_row(self, row: pd.Series, row_number: int) -> NormalizedRecord:
        """
        Convert a DataFrame row to a NormalizedRecord.

        Args:
            row: Pandas Series representing a row
            row_number: 1-based row number in the file

        Returns:
            Normalized record

        Raises:
            RecordLoadError: If amount, date or source cannot be parsed
        """
        amount = self._parse_amount(self._value(row, "amount"))
        if amount is None:
            raise RecordLoadError(
                f"Row {row_number}: invalid amount '{self._value(row, 'amount')}'"
            )

        txn_date = self._parse_date(self._value(row, "date"))
        if txn_date is None:
            raise RecordLoadError(
                f"Row {row_number}: invalid date '{self._value(row, 'date')}'"
            )

        source_value = self._value(row, "source").lower()
        try:
            source = RecordSource(source_value) if source_value else RecordSource.UNKNOWN
        except ValueError:
            raise RecordLoadError(
                f"Row {row_number}: unknown source '{source_value}'"
            ) from None

        source_id = _parse_id(self._value(row, "source_id"))
        if source_id is None:
            source_id = row_number

        return NormalizedRecord(
            amount=amount,
            date=txn_date,
            description=self._value(row, "description"),
            external_id=self._value(row, "external_id") or None,
            reference_number=self._value(row, "reference_number") or None,
            source_id=source_id,
            source=source,
            transfer_id=_parse_id(self._value(row, "transfer_id")),
            account_id=_parse_id(self._value(row, "account_id")),
            is_reconciled=self._value(row, "is_reconciled").lower() in TRUE_VALUES,
        )

    def _parse_date(self, date_value: str) -> Optional[datetime]:
        """
        Parse a date value from the CSV.

        Args:
            date_value: Date string

        Returns:
            Naive datetime or None
        """
        if not date_value:
            return None

        date_format = self.input_config.date_format
        if date_format:
            try:
                return datetime.strptime(date_value, date_format)
            except ValueError:
                return None

        try:
            parsed = pd.to_datetime(date_value)
        except (ValueError, TypeError):
            return None
        if pd.isna(parsed):
            return None
        if parsed.tzinfo is not None:
            parsed = parsed.tz_convert(None)
        return parsed.to_pydatetime()

    def _parse_amount(self, amount_value: str) -> Optional[Decimal]:
        """
        Parse an amount value from the CSV.

        Args:
            amount_value: Amount string, possibly with currency symbol and separators

        Returns:
            Decimal amount or None
        """
        if not amount_value:
            return None

        cleaned = amount_value.replace("$", "").replace(",", "").strip()
        # Accounting negatives: (12.50)
        if cleaned.startswith("(") and cleaned.endswith(")"):
            cleaned = "-" + cleaned[1:-1]

        try:
            amount = Decimal(cleaned)
        except InvalidOperation:
            return None
        return amount if amount.is_finite() else None


def _parse_id(value: str) -> Optional[Hashable]:
    """Integer ids stay integers so they compare equal across files."""
    value = value.strip()
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return value
