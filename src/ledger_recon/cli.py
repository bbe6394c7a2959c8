"""
Command-line interface for the ledger reconciliation tool.
"""

from pathlib import Path
from typing import Optional
import logging
import sys

import click
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from . import __version__
from .classification.classifier import TransactionClassifier
from .config import generate_default_config, load_config
from .matching.engine import ReconciliationEngine
from .models.account import AccountContext, SourceType
from .models.results import BatchResult
from .models.transaction import TransactionSource
from .parsers.csv_loader import CsvLoader
from .reports.excel_generator import ExcelReportGenerator
from .store.memory import InMemoryStore
from .utils.logging_config import get_logger, setup_logging

console = Console()
logger = get_logger("cli")


@click.group()
@click.version_option(version=__version__)
def main():
    """Ledger reconciliation: dedupe, settle pending rows, link transfers."""
    pass


@main.command()
@click.argument("candidates_file", type=click.Path(exists=True, path_type=Path))
@click.option("-u", "--user", "user_id", default="default", show_default=True, help="User id")
@click.option(
    "-l",
    "--ledger",
    type=click.Path(exists=True, path_type=Path),
    help="Stored ledger CSV to reconcile against",
)
@click.option(
    "-a",
    "--accounts",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Known accounts CSV (created by --apply if missing)",
)
@click.option("--last4", help="Last four digits of the statement account")
@click.option("--account-name", help="Official account name printed on the statement")
@click.option("--account-number", help="Full or masked account number")
@click.option("--account-id", help="Account already selected by the user")
@click.option("--issuer", help="Account issuer")
@click.option(
    "--source-type",
    type=click.Choice([s.value for s in SourceType]),
    default=None,
    help="Kind of ingestion event",
)
@click.option(
    "-c",
    "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file (YAML)",
)
@click.option("-o", "--output", type=click.Path(path_type=Path), help="Output Excel file path")
@click.option(
    "--pending-window", type=int, default=None, help="Override pending settlement window in days"
)
@click.option(
    "--transfer-window", type=int, default=None, help="Override transfer window in days"
)
@click.option(
    "--apply",
    "apply_plan",
    is_flag=True,
    help="Write the plan back to the ledger (and accounts) CSV",
)
@click.option(
    "--ledger-out",
    type=click.Path(path_type=Path),
    help="Where --apply writes the ledger (defaults to --ledger)",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.option("--dry-run", is_flag=True, help="Show the plan without generating a report")
def reconcile(
    candidates_file: Path,
    user_id: str,
    ledger: Optional[Path],
    accounts: Optional[Path],
    last4: Optional[str],
    account_name: Optional[str],
    account_number: Optional[str],
    account_id: Optional[str],
    issuer: Optional[str],
    source_type: Optional[str],
    config: Optional[Path],
    output: Optional[Path],
    pending_window: Optional[int],
    transfer_window: Optional[int],
    apply_plan: bool,
    ledger_out: Optional[Path],
    verbose: bool,
    dry_run: bool,
):
    """
    Reconcile a batch of candidate transactions against a stored ledger.

    CANDIDATES_FILE: CSV of extracted candidate transactions
    """
    log_level = logging.DEBUG if verbose else logging.INFO
    setup_logging(log_level)

    try:
        recon_config = load_config(config)

        if pending_window is not None:
            recon_config.pending.window_days = pending_window
        if transfer_window is not None:
            recon_config.transfers.window_days = transfer_window

        if apply_plan and not (ledger_out or ledger):
            raise click.UsageError("--apply needs --ledger or --ledger-out")

        kind = SourceType(source_type) if source_type else None
        context = _account_context(
            last4, account_name, account_number, account_id, issuer, kind
        )
        if apply_plan and context is not None and not accounts:
            # Accounts created for this batch must be kept for the next run
            raise click.UsageError("--apply with account options needs --accounts")

        loader = CsvLoader(recon_config)

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            task = progress.add_task("Loading files...", total=None)
            channel = (
                TransactionSource.SYNC if kind is SourceType.SYNC else TransactionSource.FILE_UPLOAD
            )
            candidates = loader.load_candidates(candidates_file, source=channel)
            stored = loader.load_ledger(ledger, user_id) if ledger else []
            known_accounts = (
                loader.load_accounts(accounts, user_id)
                if accounts and accounts.exists()
                else []
            )
            store = InMemoryStore(transactions=stored, accounts=known_accounts)
            progress.update(task, completed=True)

            task = progress.add_task("Running reconciliation...", total=None)
            engine = ReconciliationEngine(store, recon_config)
            result = engine.reconcile_batch(user_id, context, candidates)
            progress.update(task, completed=True)

        _display_summary(result)
        _display_issues(result)

        if apply_plan:
            counts = store.apply_plan(result)
            ledger_path = loader.write_ledger(
                store.all_transactions(user_id), ledger_out or ledger
            )
            console.print(
                f"\n[green]Ledger updated: {ledger_path} "
                f"({counts['inserted']} inserted, {counts['deleted']} deleted, "
                f"{counts['linked']} links)[/green]"
            )
            if accounts:
                loader.write_accounts(store.all_accounts(user_id), accounts)

        if dry_run:
            console.print("\n[yellow]Dry run - no report generated[/yellow]")
            return

        report_generator = ExcelReportGenerator(recon_config)
        if output is None:
            output = Path(report_generator.default_filename(result))
        report_path = report_generator.generate_report(result, output)

        console.print(f"\n[green]Report generated: {report_path}[/green]")

    except click.UsageError:
        raise
    except Exception as e:
        logger.debug("Reconcile command failed", exc_info=True)
        console.print(f"[red]Error: {e}[/red]")
        if verbose:
            console.print_exception()
        sys.exit(1)


@main.command()
@click.argument("candidates_file", type=click.Path(exists=True, path_type=Path))
@click.option("-c", "--config", type=click.Path(exists=True, path_type=Path))
@click.option("--limit", type=int, default=20, show_default=True, help="Rows to show")
def classify(candidates_file: Path, config: Optional[Path], limit: int):
    """
    Show the canonical classification of each transaction in a CSV file.

    CANDIDATES_FILE: CSV of candidate or stored transactions
    """
    try:
        recon_config = load_config(config)
        transactions = CsvLoader(recon_config).load_candidates(candidates_file)
    except Exception as e:
        console.print(f"[red]Error parsing file: {e}[/red]")
        sys.exit(1)

    classifier = TransactionClassifier(recon_config.classifier)

    table = Table(title=f"Classification: {candidates_file.name}")
    table.add_column("Date")
    table.add_column("Merchant")
    table.add_column("Amount", justify="right")
    table.add_column("Declared")
    table.add_column("Type")
    table.add_column("Label")
    table.add_column("Excluded")

    totals = {"income": 0, "expense": 0, "transfer": 0, "other": 0}
    for index, txn in enumerate(transactions):
        result = classifier.classify(txn)
        totals[result.type.value] += 1
        if index >= limit:
            continue
        merchant = txn.merchant
        table.add_row(
            str(txn.date) if txn.date else "-",
            merchant[:40] + "..." if len(merchant) > 40 else merchant,
            f"{txn.amount:,.2f}" if txn.amount is not None else "-",
            txn.declared_type.value if txn.declared_type else "-",
            result.type.value,
            result.label.value,
            "yes" if result.is_excluded else "no",
        )

    console.print(table)

    if len(transactions) > limit:
        console.print(f"\n... and {len(transactions) - limit} more transactions")

    console.print(
        f"\nTotal: {len(transactions)} "
        + ", ".join(f"{name}={count}" for name, count in totals.items())
    )


@main.command()
@click.argument("csv_file", type=click.Path(exists=True, path_type=Path))
@click.option("-c", "--config", type=click.Path(exists=True, path_type=Path))
def inspect(csv_file: Path, config: Optional[Path]):
    """
    Display a summary of a candidate or ledger CSV file.

    CSV_FILE: Path to the CSV file
    """
    try:
        recon_config = load_config(config)
        summary = CsvLoader(recon_config).get_file_summary(csv_file)
    except Exception as e:
        console.print(f"[red]Error reading file: {e}[/red]")
        sys.exit(1)

    table = Table(title=f"File Summary: {csv_file.name}")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    date_range = summary["date_range"]
    totals = summary["totals"]
    table.add_row("Rows", str(summary["row_count"]))
    table.add_row("Date Range", f"{date_range['start'] or '-'} to {date_range['end'] or '-'}")
    table.add_row("Inflows", f"{totals['inflow_count']} ({totals['total_inflows']:,.2f})")
    table.add_row("Outflows", f"{totals['outflow_count']} ({totals['total_outflows']:,.2f})")
    table.add_row("Pending", str(summary["pending_count"]))
    table.add_row("Accounts", ", ".join(summary["accounts"]) or "-")
    table.add_row("Columns", ", ".join(summary["columns"]))

    console.print(table)


@main.command("init-config")
@click.option(
    "-o", "--output", type=click.Path(path_type=Path), default=Path("config.yaml")
)
def init_config(output: Path):
    """Generate a sample configuration file."""
    generate_default_config(output)
    console.print(f"[green]Configuration file generated: {output}[/green]")


def _account_context(
    last4: Optional[str],
    account_name: Optional[str],
    account_number: Optional[str],
    account_id: Optional[str],
    issuer: Optional[str],
    source_type: Optional[SourceType],
) -> Optional[AccountContext]:
    """Build the batch's account context, or None when no account option was given."""
    if not any((last4, account_name, account_number, account_id, source_type)):
        return None
    return AccountContext(
        last4=last4,
        official_name=account_name,
        account_number=account_number,
        account_id=account_id,
        issuer=issuer,
        source_type=source_type or SourceType.STATEMENT,
    )


def _display_summary(result: BatchResult) -> None:
    """Display the batch plan in the console."""
    table = Table(title="Reconciliation Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    resolution = result.account_resolution
    if resolution is not None:
        account = resolution.account.display_name if resolution.account else "-"
        table.add_row("Account", f"{account} ({resolution.status.value})")

    for key, value in result.summary().items():
        table.add_row(key.replace("_", " ").title(), str(value))
    table.add_row("Processing Time", f"{result.processing_time_seconds:.2f}s")

    console.print(table)

    for example in result.duplicate_examples:
        console.print(f"  [dim]duplicate:[/dim] {example}")


def _display_issues(result: BatchResult) -> None:
    if result.needs_account_selection:
        resolution = result.account_resolution
        console.print(f"\n[yellow]Account selection needed: {resolution.reason}[/yellow]")
        for account in resolution.candidates:
            suffix = f" ****{account.last4}" if account.last4 else ""
            console.print(f"  - {account.display_name}{suffix} (id {account.id})")
        console.print("Re-run with --account-id to choose one.")

    if not (result.rejected or result.warnings):
        return

    table = Table(title="Issues")
    table.add_column("Kind")
    table.add_column("Stage")
    table.add_column("Candidate")
    table.add_column("Message")
    for rejected in result.rejected:
        table.add_row("rejected", "validation", rejected.candidate.id, rejected.reason)
    for warning in result.warnings:
        table.add_row("warning", warning.stage, warning.candidate_id or "-", warning.message)
    console.print(table)


if __name__ == "__main__":
    main()
