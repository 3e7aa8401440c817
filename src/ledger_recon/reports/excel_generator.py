"""
Excel report generator for reconciliation and import review results.
Creates multi-sheet workbooks with formatted output.
"""

from datetime import datetime
from pathlib import Path
from typing import Any, Hashable, Iterable, Mapping, Optional
import logging

from openpyxl import Workbook
from openpyxl.styles import Border, Font, PatternFill, Side
from openpyxl.worksheet.worksheet import Worksheet

from ..config import ReconConfig
from ..matching.classifier import suggest_resolution
from ..models.conflicts import ImportAnalysisResult, ReviewDecision
from ..models.records import NormalizedRecord
from ..models.reconciliation import (
    BalanceCheck,
    MatchMethod,
    ReconciliationResult,
)
from ..utils.exceptions import ReportGenerationError

logger = logging.getLogger(__name__)

# Style definitions
HEADER_FILL = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True)
MATCH_FILL = PatternFill(start_color="C6EFCE", end_color="C6EFCE", fill_type="solid")
REVIEW_FILL = PatternFill(start_color="FFEB9C", end_color="FFEB9C", fill_type="solid")
UNMATCHED_FILL = PatternFill(start_color="FFC7CE", end_color="FFC7CE", fill_type="solid")
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)

DECISION_FILLS = {
    ReviewDecision.IMPORT: MATCH_FILL,
    ReviewDecision.PENDING: REVIEW_FILL,
    ReviewDecision.SKIP: UNMATCHED_FILL,
}


class ExcelReportGenerator:
    """Generates Excel reports with multiple sheets."""

    def __init__(self, config: Optional[ReconConfig] = None):
        """
        Initialize the report generator.

        Args:
            config: Application configuration
        """
        self.config = config or ReconConfig()
        self.sheet_config = self.config.output.sheets

    def generate_reconciliation_report(
        self,
        result: ReconciliationResult,
        output_path: Path,
        ledger_records: Iterable[NormalizedRecord] = (),
        balance: Optional[BalanceCheck] = None,
    ) -> Path:
        """
        Generate the reconciliation report.

        Args:
            result: Result of a matching pass
            output_path: Path for output file
            ledger_records: Ledger records, used to show the ledger side of items
            balance: Optional balance check to include in the summary

        Returns:
            Path to generated report
        """
        logger.info(f"Generating reconciliation report: {output_path}")

        ledger_lookup = {r.source_id: r for r in ledger_records}

        wb = Workbook()
        if wb.active:
            wb.remove(wb.active)

        if self.sheet_config.summary.enabled:
            self._create_reconciliation_summary_sheet(wb, result, balance)
        if self.sheet_config.matched.enabled:
            self._create_matched_sheet(wb, result, ledger_lookup)
        if self.sheet_config.unmatched_bank.enabled:
            self._create_unmatched_bank_sheet(wb, result)
        if self.sheet_config.unmatched_ledger.enabled:
            self._create_unmatched_ledger_sheet(wb, result, ledger_lookup)

        return self._save(wb, output_path)

    def generate_import_report(
        self, analysis: ImportAnalysisResult, output_path: Path
    ) -> Path:
        """
        Generate the import review report.

        Args:
            analysis: Result of an import analysis
            output_path: Path for output file

        Returns:
            Path to generated report
        """
        logger.info(f"Generating import review report: {output_path}")

        wb = Workbook()
        if wb.active:
            wb.remove(wb.active)

        if self.sheet_config.summary.enabled:
            self._create_import_summary_sheet(wb, analysis)
        if self.sheet_config.review_items.enabled:
            self._create_review_items_sheet(wb, analysis)
        if self.sheet_config.conflicts.enabled:
            self._create_conflicts_sheet(wb, analysis)

        return self._save(wb, output_path)

    def _save(self, wb: Workbook, output_path: Path) -> Path:
        if not wb.worksheets:
            raise ReportGenerationError("All report sheets are disabled in the configuration")

        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            wb.save(output_path)
        except OSError as e:
            raise ReportGenerationError(f"Failed to save report {output_path}: {e}") from e

        logger.info(f"Report saved: {output_path}")
        return output_path

    def _create_reconciliation_summary_sheet(
        self,
        wb: Workbook,
        result: ReconciliationResult,
        balance: Optional[BalanceCheck],
    ) -> None:
        """Create the summary sheet with key metrics."""
        ws = wb.create_sheet(self.sheet_config.summary.name)

        ws["A1"] = "Bank Reconciliation Summary"
        ws["A1"].font = Font(size=16, bold=True)
        ws.merge_cells("A1:D1")

        ws["A3"] = "Generated At:"
        ws["B3"] = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        ws["A4"] = "Config File:"
        ws["B4"] = self.config.config_file_path or "Default"

        ws["A6"] = "Record Counts"
        ws["A6"].font = Font(bold=True)

        count_data = [
            ("Total Bank Records:", result.total_bank_records),
            ("Total Ledger Records:", result.total_ledger_records),
            ("Exact Matches:", result.exact_count),
            ("Fuzzy Matches:", result.fuzzy_count),
            ("Unmatched Bank:", len(result.unmatched_bank)),
            ("Unmatched Ledger:", len(result.unmatched_app)),
            ("Match Rate:", f"{result.match_percentage:.1f}%"),
            ("Processing Time:", f"{result.processing_time_seconds:.2f}s"),
        ]

        row = 7
        for label, value in count_data:
            ws[f"A{row}"] = label
            ws[f"B{row}"] = value
            row += 1

        if balance is not None:
            row += 1
            ws[f"A{row}"] = "Balance Check"
            ws[f"A{row}"].font = Font(bold=True)
            row += 1

            balance_data = [
                ("Statement End Balance:", f"{balance.statement_end_balance:,.2f}"),
                ("Calculated Balance:", f"{balance.calculated_balance:,.2f}"),
                ("Difference:", f"{balance.balance_difference:,.2f}"),
                ("Balanced:", "Yes" if balance.is_balanced else "No"),
            ]
            for label, value in balance_data:
                ws[f"A{row}"] = label
                ws[f"B{row}"] = value
                row += 1

        ws.column_dimensions["A"].width = 30
        ws.column_dimensions["B"].width = 40

    def _create_matched_sheet(
        self,
        wb: Workbook,
        result: ReconciliationResult,
        ledger_lookup: Mapping[Hashable, NormalizedRecord],
    ) -> None:
        """Create the matched items sheet."""
        ws = wb.create_sheet(self.sheet_config.matched.name)

        headers = [
            "Bank Date",
            "Bank Amount",
            "Bank Description",
            "Ledger ID",
            "Ledger Date",
            "Ledger Amount",
            "Ledger Description",
            "Method",
            "Confidence",
            "Reason",
            "Approved",
        ]
        self._write_headers(ws, headers)

        for row_num, item in enumerate(result.matched, start=2):
            bank = item.bank_record
            ledger = ledger_lookup.get(item.transaction_id)

            row_data = [
                bank.date if bank else "",
                float(bank.amount) if bank else "",
                bank.description if bank else "",
                str(item.transaction_id),
                ledger.date if ledger else "",
                float(ledger.amount) if ledger else "",
                ledger.description if ledger else "",
                item.match_method.value if item.match_method else "",
                f"{item.match_confidence:.2f}" if item.match_confidence is not None else "",
                item.match_reason or "",
                "Yes" if item.is_approved else "No",
            ]
            fill = MATCH_FILL if item.match_method == MatchMethod.EXACT else REVIEW_FILL
            self._write_row(ws, row_num, row_data, fill)

        self._auto_fit_columns(ws)

    def _create_unmatched_bank_sheet(self, wb: Workbook, result: ReconciliationResult) -> None:
        """Create the unmatched bank records sheet."""
        ws = wb.create_sheet(self.sheet_config.unmatched_bank.name)

        headers = ["Date", "Amount", "Description", "External ID", "Reference"]
        self._write_headers(ws, headers)

        for row_num, item in enumerate(result.unmatched_bank, start=2):
            bank = item.bank_record
            row_data = [
                bank.date,
                float(bank.amount),
                bank.description,
                bank.external_id or "",
                bank.reference_number or "",
            ]
            self._write_row(ws, row_num, row_data, UNMATCHED_FILL)

        self._auto_fit_columns(ws)

    def _create_unmatched_ledger_sheet(
        self,
        wb: Workbook,
        result: ReconciliationResult,
        ledger_lookup: Mapping[Hashable, NormalizedRecord],
    ) -> None:
        """Create the unmatched ledger transactions sheet."""
        ws = wb.create_sheet(self.sheet_config.unmatched_ledger.name)

        headers = ["Ledger ID", "Date", "Amount", "Description", "Source"]
        self._write_headers(ws, headers)

        for row_num, item in enumerate(result.unmatched_app, start=2):
            ledger = ledger_lookup.get(item.transaction_id)
            row_data = [
                str(item.transaction_id),
                ledger.date if ledger else "",
                float(ledger.amount) if ledger else "",
                ledger.description if ledger else "",
                ledger.source.value if ledger else "",
            ]
            self._write_row(ws, row_num, row_data, UNMATCHED_FILL)

        self._auto_fit_columns(ws)

    def _create_import_summary_sheet(
        self, wb: Workbook, analysis: ImportAnalysisResult
    ) -> None:
        """Create the import summary sheet with counts, notes and warnings."""
        ws = wb.create_sheet(self.sheet_config.summary.name)

        ws["A1"] = "Import Review Summary"
        ws["A1"].font = Font(size=16, bold=True)
        ws.merge_cells("A1:D1")

        ws["A3"] = "Analyzed At:"
        ws["B3"] = analysis.analyzed_at.strftime("%Y-%m-%d %H:%M:%S")

        summary = analysis.summary
        count_data = [
            ("Total Candidates:", summary.total_candidates),
            ("Clean Imports:", summary.clean_imports),
            ("Exact Duplicates:", summary.exact_duplicates),
            ("Potential Duplicates:", summary.potential_duplicates),
            ("Transfer Conflicts:", summary.transfer_conflicts),
            ("Manual Entry Conflicts:", summary.manual_conflicts),
            ("Requires Review:", summary.requires_review),
        ]

        row = 5
        for label, value in count_data:
            ws[f"A{row}"] = label
            ws[f"B{row}"] = value
            row += 1

        for title, lines in (("Notes", analysis.analysis_notes), ("Warnings", analysis.warnings)):
            if not lines:
                continue
            row += 1
            ws[f"A{row}"] = title
            ws[f"A{row}"].font = Font(bold=True)
            row += 1
            for line in lines:
                ws[f"A{row}"] = line
                row += 1

        ws.column_dimensions["A"].width = 30
        ws.column_dimensions["B"].width = 40

    def _create_review_items_sheet(
        self, wb: Workbook, analysis: ImportAnalysisResult
    ) -> None:
        """Create one row per import candidate."""
        ws = wb.create_sheet(self.sheet_config.review_items.name)

        headers = [
            "Item",
            "Date",
            "Amount",
            "Description",
            "External ID",
            "Decision",
            "Conflicts",
            "Top Conflict",
            "Top Confidence",
        ]
        self._write_headers(ws, headers)

        for row_num, item in enumerate(analysis.review_items, start=2):
            candidate = item.candidate
            top = item.top_conflict
            row_data = [
                item.id,
                candidate.date,
                float(candidate.amount),
                candidate.description,
                candidate.external_id or "",
                item.review_decision.value,
                len(item.conflicts),
                top.type.value if top else "",
                top.confidence_score if top else "",
            ]
            self._write_row(ws, row_num, row_data, DECISION_FILLS.get(item.review_decision))

        self._auto_fit_columns(ws)

    def _create_conflicts_sheet(self, wb: Workbook, analysis: ImportAnalysisResult) -> None:
        """Create one row per detected conflict."""
        ws = wb.create_sheet(self.sheet_config.conflicts.name)

        headers = [
            "Item",
            "Type",
            "Severity",
            "Confidence",
            "Reasons",
            "Suggested Resolution",
            "Existing ID",
            "Existing Date",
            "Existing Amount",
            "Existing Description",
            "Message",
        ]
        self._write_headers(ws, headers)

        row_num = 2
        for item in analysis.review_items:
            for conflict in item.conflicts:
                existing = conflict.conflicting_record
                row_data = [
                    item.id,
                    conflict.type.value,
                    conflict.severity.value,
                    conflict.confidence_score,
                    ", ".join(sorted(r.value for r in conflict.reasons)),
                    suggest_resolution(conflict).value,
                    str(existing.source_id) if existing else "",
                    existing.date if existing else "",
                    float(existing.amount) if existing else "",
                    existing.description if existing else "",
                    conflict.message,
                ]
                self._write_row(ws, row_num, row_data)
                row_num += 1

        self._auto_fit_columns(ws)

    def _write_headers(self, ws: Worksheet, headers: list[str]) -> None:
        for col, header in enumerate(headers, start=1):
            cell = ws.cell(row=1, column=col, value=header)
            cell.fill = HEADER_FILL
            cell.font = HEADER_FONT
            cell.border = THIN_BORDER

    def _write_row(
        self,
        ws: Worksheet,
        row_num: int,
        row_data: list[Any],
        fill: Optional[PatternFill] = None,
    ) -> None:
        for col, value in enumerate(row_data, start=1):
            cell = ws.cell(row=row_num, column=col, value=value)
            cell.border = THIN_BORDER
            if fill is not None:
                cell.fill = fill

    def _auto_fit_columns(self, ws: Worksheet) -> None:
        """Auto-fit column widths based on content."""
        for column_cells in ws.columns:
            max_length = 0
            column = column_cells[0].column_letter

            for cell in column_cells:
                if cell.value is not None:
                    max_length = max(max_length, len(str(cell.value)))

            adjusted_width = min(max_length + 2, 50)
            ws.column_dimensions[column].width = adjusted_width
