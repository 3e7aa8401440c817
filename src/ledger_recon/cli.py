"""
Command-line interface for the ledger matching and reconciliation tool.
"""

from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Optional
import sys

import click
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from . import __version__
from .config import load_config, generate_default_config, ReconConfig
from .loaders.record_loader import RecordLoader
from .matching.duplicates import DuplicateScanner
from .matching.engine import ReconciliationMatcher
from .matching.planner import ImportReviewPlanner
from .models.conflicts import ConflictDetectionLevel, ImportAnalysisResult
from .models.reconciliation import ReconciliationResult, ReconciliationRun
from .reports.excel_generator import ExcelReportGenerator
from .utils.exceptions import ReconciliationError
from .utils.logging_config import setup_logging

console = Console()


@click.group()
@click.version_option(version=__version__)
def main():
    """Ledger transaction matching, reconciliation and import review."""
    pass


@main.command()
@click.argument("ledger_file", type=click.Path(exists=True, path_type=Path))
@click.argument("bank_file", type=click.Path(exists=True, path_type=Path))
@click.option(
    "-c",
    "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file (YAML)",
)
@click.option("-o", "--output", type=click.Path(path_type=Path), help="Output Excel file path")
@click.option(
    "--statement-balance",
    type=float,
    default=None,
    help="Statement end balance for the balance check",
)
@click.option(
    "--calculated-balance",
    type=float,
    default=None,
    help="Ledger balance at statement end for the balance check",
)
@click.option(
    "--min-confidence",
    type=click.FloatRange(0.0, 1.0),
    default=None,
    help="Override minimum match confidence",
)
@click.option("--rematch", is_flag=True, help="Include ledger records already reconciled")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.option(
    "--dry-run", is_flag=True, help="Match and show summary without generating report"
)
def reconcile(
    ledger_file: Path,
    bank_file: Path,
    config: Optional[Path],
    output: Optional[Path],
    statement_balance: Optional[float],
    calculated_balance: Optional[float],
    min_confidence: Optional[float],
    rematch: bool,
    verbose: bool,
    dry_run: bool,
):
    """
    Match a bank statement against ledger transactions.

    LEDGER_FILE: CSV of normalized ledger transactions
    BANK_FILE: CSV of normalized bank statement lines
    """
    try:
        recon_config = _load_cli_config(config, verbose)

        if min_confidence is not None:
            recon_config.reconciliation.min_confidence = min_confidence

        loader = RecordLoader(recon_config)

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            task = progress.add_task("Loading ledger records...", total=None)
            ledger_records = loader.load_file(ledger_file)
            progress.update(task, completed=True)

            task = progress.add_task("Loading bank records...", total=None)
            bank_records = loader.load_file(bank_file)
            progress.update(task, completed=True)

            task = progress.add_task("Matching...", total=None)
            matcher = ReconciliationMatcher(recon_config)
            result = matcher.match(ledger_records, bank_records, rematch=rematch)
            progress.update(task, completed=True)

        balance = None
        if statement_balance is not None and calculated_balance is not None:
            run = ReconciliationRun(
                reconciliation_id="cli",
                account_id=None,
                user_id=None,
                statement_end_balance=Decimal(str(statement_balance)),
                calculated_balance=Decimal(str(calculated_balance)),
            )
            balance = matcher.check_balance(run)

        _display_reconciliation_summary(result)
        if balance is not None:
            style = "green" if balance.is_balanced else "red"
            console.print(
                f"[{style}]Balance difference: {balance.balance_difference:,.2f} "
                f"({'balanced' if balance.is_balanced else 'NOT balanced'})[/{style}]"
            )

        if dry_run:
            console.print("\n[yellow]Dry run - no report generated[/yellow]")
            return

        output = output or _default_output(recon_config, "reconciliation")
        report_path = ExcelReportGenerator(recon_config).generate_reconciliation_report(
            result, output, ledger_records=ledger_records, balance=balance
        )
        console.print(f"\n[green]Report generated: {report_path}[/green]")

    except ReconciliationError as e:
        console.print(f"[red]Error: {e}[/red]")
        if verbose:
            console.print_exception()
        sys.exit(1)


@main.command("review-import")
@click.argument("candidates_file", type=click.Path(exists=True, path_type=Path))
@click.argument("existing_file", type=click.Path(exists=True, path_type=Path))
@click.option(
    "-c",
    "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file (YAML)",
)
@click.option(
    "--exclusions",
    type=click.Path(exists=True, path_type=Path),
    help="CSV of transaction id sets dismissed as not duplicates",
)
@click.option(
    "--level",
    type=click.Choice([level.value for level in ConflictDetectionLevel]),
    default=None,
    help="Manual entry conflict detection level",
)
@click.option("-o", "--output", type=click.Path(path_type=Path), help="Output Excel file path")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.option(
    "--dry-run", is_flag=True, help="Analyze and show summary without generating report"
)
def review_import(
    candidates_file: Path,
    existing_file: Path,
    config: Optional[Path],
    exclusions: Optional[Path],
    level: Optional[str],
    output: Optional[Path],
    verbose: bool,
    dry_run: bool,
):
    """
    Check import candidates for conflicts with existing ledger records.

    CANDIDATES_FILE: CSV of normalized import candidates
    EXISTING_FILE: CSV of existing ledger records in the relevant window
    """
    try:
        recon_config = _load_cli_config(config, verbose)

        if level is not None:
            recon_config.import_review.conflict_detection_level = ConflictDetectionLevel(level)

        loader = RecordLoader(recon_config)
        candidates = loader.load_file(candidates_file)
        existing = loader.load_file(existing_file)
        exclusion_sets = loader.load_exclusions(exclusions) if exclusions else []

        with console.status("Analyzing import candidates..."):
            planner = ImportReviewPlanner(recon_config.import_review)
            analysis = planner.analyze(candidates, existing, exclusion_sets)

        _display_import_summary(analysis)

        if dry_run:
            console.print("\n[yellow]Dry run - no report generated[/yellow]")
            return

        output = output or _default_output(recon_config, "import_review")
        report_path = ExcelReportGenerator(recon_config).generate_import_report(
            analysis, output
        )
        console.print(f"\n[green]Report generated: {report_path}[/green]")

    except ReconciliationError as e:
        console.print(f"[red]Error: {e}[/red]")
        if verbose:
            console.print_exception()
        sys.exit(1)


@main.command("scan-duplicates")
@click.argument("ledger_file", type=click.Path(exists=True, path_type=Path))
@click.option("-c", "--config", type=click.Path(exists=True, path_type=Path))
@click.option(
    "--as-of",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    default=None,
    help="End of the lookback window (YYYY-MM-DD, defaults to today)",
)
@click.option(
    "--exclusions",
    type=click.Path(exists=True, path_type=Path),
    help="CSV of transaction id sets dismissed as not duplicates",
)
def scan_duplicates(
    ledger_file: Path,
    config: Optional[Path],
    as_of: Optional[datetime],
    exclusions: Optional[Path],
):
    """
    List groups of existing ledger records that look like duplicates.

    LEDGER_FILE: CSV of normalized ledger transactions
    """
    try:
        recon_config = _load_cli_config(config, verbose=False)
        loader = RecordLoader(recon_config)
        records = loader.load_file(ledger_file)
        exclusion_sets = loader.load_exclusions(exclusions) if exclusions else []

        if as_of is not None:
            as_of = as_of.replace(hour=23, minute=59, second=59)

        scanner = DuplicateScanner(recon_config.duplicate_scan)
        groups = scanner.scan(records, exclusion_sets, as_of=as_of)

        if not groups:
            console.print("[green]No duplicate groups found[/green]")
            return

        table = Table(title=f"Duplicate Groups: {ledger_file.name}")
        table.add_column("#", justify="right")
        table.add_column("Confidence", justify="right")
        table.add_column("Amount", justify="right")
        table.add_column("Transactions")
        table.add_column("Description")

        for number, group in enumerate(groups, start=1):
            description = group.records[0].description
            table.add_row(
                str(number),
                f"{group.highest_confidence:.0%}",
                f"{group.total_amount:,.2f}",
                ", ".join(str(i) for i in group.transaction_ids),
                description[:40] + "..." if len(description) > 40 else description,
            )

        console.print(table)
        console.print(f"\nTotal groups: {len(groups)}")

    except ReconciliationError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@main.command("show-records")
@click.argument("records_file", type=click.Path(exists=True, path_type=Path))
@click.option("-c", "--config", type=click.Path(exists=True, path_type=Path))
def show_records(records_file: Path, config: Optional[Path]):
    """
    Load a normalized record CSV and display its first rows.

    RECORDS_FILE: CSV of normalized records
    """
    try:
        recon_config = _load_cli_config(config, verbose=False)
        records = RecordLoader(recon_config).load_file(records_file)

        table = Table(title=f"Records: {records_file.name}")
        table.add_column("ID")
        table.add_column("Date")
        table.add_column("Amount", justify="right")
        table.add_column("Source")
        table.add_column("Description")

        for record in records[:20]:  # Show first 20
            table.add_row(
                str(record.source_id),
                record.date.strftime("%Y-%m-%d"),
                f"{record.amount:,.2f}",
                record.source.value,
                (
                    record.description[:40] + "..."
                    if len(record.description) > 40
                    else record.description
                ),
            )

        console.print(table)

        if len(records) > 20:
            console.print(f"\n... and {len(records) - 20} more records")

        console.print(f"\nTotal records: {len(records)}")

    except ReconciliationError as e:
        console.print(f"[red]Error loading file: {e}[/red]")
        sys.exit(1)


@main.command("init-config")
@click.option(
    "-o", "--output", type=click.Path(path_type=Path), default=Path("config.yaml")
)
def init_config(output: Path):
    """Generate a sample configuration file."""
    generate_default_config(output)
    console.print(f"[green]Configuration file generated: {output}[/green]")


def _load_cli_config(config: Optional[Path], verbose: bool) -> ReconConfig:
    """Load configuration and set up logging from it."""
    recon_config = load_config(config)
    setup_logging(recon_config.logging, verbose=verbose)
    return recon_config


def _default_output(config: ReconConfig, kind: str) -> Path:
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return Path(config.output.filename_template.format(kind=kind, timestamp=timestamp))


def _display_reconciliation_summary(result: ReconciliationResult) -> None:
    """Display reconciliation summary in console."""
    table = Table(title="Reconciliation Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Bank Records", str(result.total_bank_records))
    table.add_row("Ledger Records", str(result.total_ledger_records))
    table.add_row("Exact Matches", str(result.exact_count))
    table.add_row("Fuzzy Matches", str(result.fuzzy_count))
    table.add_row("Unmatched Bank", str(len(result.unmatched_bank)))
    table.add_row("Unmatched Ledger", str(len(result.unmatched_app)))
    table.add_row("Match Rate", f"{result.match_percentage:.1f}%")
    table.add_row("Processing Time", f"{result.processing_time_seconds:.2f}s")

    console.print(table)


def _display_import_summary(analysis: ImportAnalysisResult) -> None:
    """Display import review summary in console."""
    summary = analysis.summary

    table = Table(title="Import Review Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Candidates", str(summary.total_candidates))
    table.add_row("Clean Imports", str(summary.clean_imports))
    table.add_row("Exact Duplicates", str(summary.exact_duplicates))
    table.add_row("Potential Duplicates", str(summary.potential_duplicates))
    table.add_row("Transfer Conflicts", str(summary.transfer_conflicts))
    table.add_row("Manual Entry Conflicts", str(summary.manual_conflicts))
    table.add_row("Requires Review", str(summary.requires_review))

    console.print(table)

    for note in analysis.analysis_notes:
        console.print(f"[cyan]Note:[/cyan] {note}")
    for warning in analysis.warnings:
        console.print(f"[yellow]Warning:[/yellow] {warning}")


if __name__ == "__main__":
    main()
