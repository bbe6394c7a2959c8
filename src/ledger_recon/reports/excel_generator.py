"""
Excel audit report for a reconciled batch.
Creates a multi-sheet workbook showing every decision the engine made.
"""

from pathlib import Path
from typing import Any, Optional
import logging

from openpyxl import Workbook
from openpyxl.styles import Border, Font, PatternFill, Side
from openpyxl.worksheet.worksheet import Worksheet

from ..config import ReconConfig, SheetConfig
from ..models.results import BatchResult
from ..models.transaction import Transaction
from ..utils.exceptions import ReportGenerationError

logger = logging.getLogger(__name__)

# Style definitions
HEADER_FILL = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True)
INSERT_FILL = PatternFill(start_color="C6EFCE", end_color="C6EFCE", fill_type="solid")
RECONCILED_FILL = PatternFill(start_color="FFEB9C", end_color="FFEB9C", fill_type="solid")
SKIPPED_FILL = PatternFill(start_color="FFC7CE", end_color="FFC7CE", fill_type="solid")
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)

TRANSACTION_HEADERS = [
    "ID",
    "Date",
    "Merchant",
    "Amount",
    "Currency",
    "Type",
    "Pending",
    "Account",
    "Category",
]


def _money(value) -> Any:
    return float(value) if value is not None else ""


def _transaction_cells(txn: Transaction) -> list[Any]:
    return [
        txn.id,
        txn.date or "",
        txn.merchant,
        _money(txn.amount),
        txn.currency,
        txn.declared_type.value if txn.declared_type else "",
        "yes" if txn.is_pending else "no",
        txn.account_label or "",
        txn.category or "",
    ]


class ExcelReportGenerator:
    """Generates the reconciliation audit workbook."""

    def __init__(self, config: Optional[ReconConfig] = None):
        """
        Initialize the report generator.

        Args:
            config: Application configuration
        """
        self.config = config or ReconConfig()
        self.output_config = self.config.output.excel
        self.sheet_config = self.config.output.sheets

    def generate_report(self, result: BatchResult, output_path: Path) -> Path:
        """
        Generate the audit report for one batch.

        Args:
            result: Reconciled batch
            output_path: Path for output file

        Returns:
            Path to generated report

        Raises:
            ReportGenerationError: If the workbook cannot be written
        """
        logger.info(f"Generating Excel report: {output_path}")

        wb = Workbook()

        # Remove default sheet
        if wb.active:
            wb.remove(wb.active)

        sheets = self.sheet_config
        if sheets.summary.enabled:
            self._create_summary_sheet(wb, sheets.summary, result)
        if sheets.to_insert.enabled:
            self._create_insert_sheet(wb, sheets.to_insert, result)
        if sheets.pending_reconciled.enabled:
            self._create_reconciled_sheet(wb, sheets.pending_reconciled, result)
        if sheets.duplicates.enabled:
            self._create_duplicates_sheet(wb, sheets.duplicates, result)
        if sheets.transfers.enabled:
            self._create_transfers_sheet(wb, sheets.transfers, result)
        if sheets.issues.enabled:
            self._create_issues_sheet(wb, sheets.issues, result)

        if not wb.sheetnames:
            wb.create_sheet("Empty")

        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            wb.save(output_path)
        except OSError as e:
            raise ReportGenerationError(f"Failed to write report {output_path}: {e}") from e

        logger.info(f"Report saved: {output_path}")
        return output_path

    def default_filename(self, result: BatchResult) -> str:
        """Render the configured filename template for a batch."""
        return self.output_config.filename_template.format(
            date=result.processed_at.strftime("%Y%m%d"),
            time=result.processed_at.strftime("%H%M%S"),
            user=result.user_id,
        )

    def _create_summary_sheet(
        self, wb: Workbook, sheet: SheetConfig, result: BatchResult
    ) -> None:
        """Create the summary sheet with batch counts and account outcome."""
        ws = wb.create_sheet(sheet.name)

        ws["A1"] = "Ledger Reconciliation Summary"
        ws["A1"].font = Font(size=16, bold=True)
        ws.merge_cells("A1:D1")

        resolution = result.account_resolution
        account = resolution.account if resolution else None

        info = [
            ("User:", result.user_id),
            ("Processed At:", result.processed_at.strftime("%Y-%m-%d %H:%M:%S")),
            ("Processing Time:", f"{result.processing_time_seconds:.2f} seconds"),
            ("Config File:", self.config.config_file_path or "Default"),
            ("Account Resolution:", resolution.status.value if resolution else "not run"),
            ("Account:", account.display_name if account else ""),
            ("Resolution Reason:", resolution.reason if resolution else ""),
        ]

        row = 3
        for label, value in info:
            ws[f"A{row}"] = label
            ws[f"B{row}"] = str(value)
            row += 1

        row += 1
        ws[f"A{row}"] = "Counts"
        ws[f"A{row}"].font = Font(bold=True)
        row += 1
        for key, value in result.summary().items():
            ws[f"A{row}"] = key.replace("_", " ").title() + ":"
            ws[f"B{row}"] = value
            row += 1

        if result.duplicate_examples:
            row += 1
            ws[f"A{row}"] = "Duplicate Examples"
            ws[f"A{row}"].font = Font(bold=True)
            row += 1
            for example in result.duplicate_examples:
                ws[f"A{row}"] = example
                row += 1

        if resolution and resolution.candidates:
            row += 1
            ws[f"A{row}"] = "Accounts To Choose From"
            ws[f"A{row}"].font = Font(bold=True)
            row += 1
            for candidate in resolution.candidates:
                ws[f"A{row}"] = candidate.display_name
                ws[f"B{row}"] = f"****{candidate.last4}" if candidate.last4 else ""
                row += 1

        ws.column_dimensions["A"].width = 30
        ws.column_dimensions["B"].width = 40

    def _create_insert_sheet(
        self, wb: Workbook, sheet: SheetConfig, result: BatchResult
    ) -> None:
        ws = wb.create_sheet(sheet.name)
        headers = TRANSACTION_HEADERS + ["Reconciled From", "Transfer Counterpart"]
        rows = []
        for txn in result.to_insert:
            rows.append(
                _transaction_cells(txn)
                + [
                    txn.reconciled_from_id or "",
                    txn.transfer_link.matched_transfer_id if txn.transfer_link else "",
                ]
            )
        self._write_table(ws, headers, rows, INSERT_FILL)

    def _create_reconciled_sheet(
        self, wb: Workbook, sheet: SheetConfig, result: BatchResult
    ) -> None:
        ws = wb.create_sheet(sheet.name)
        headers = [
            "Posted ID",
            "Posted Date",
            "Posted Merchant",
            "Amount",
            "Pending ID (deleted)",
            "Pending Date",
            "Pending Merchant",
            "Date Variance (Days)",
            "Merchant Similarity",
        ]
        rows = [
            [
                r.candidate.id,
                r.candidate.date,
                r.candidate.merchant,
                _money(r.candidate.amount),
                r.pending.id,
                r.pending.date,
                r.pending.merchant,
                r.date_variance_days,
                f"{r.merchant_similarity:.1%}",
            ]
            for r in result.reconciled
        ]
        self._write_table(ws, headers, rows, RECONCILED_FILL)

    def _create_duplicates_sheet(
        self, wb: Workbook, sheet: SheetConfig, result: BatchResult
    ) -> None:
        ws = wb.create_sheet(sheet.name)
        headers = TRANSACTION_HEADERS + ["Match Kind", "Existing ID", "Date Variance (Days)"]
        rows = [
            _transaction_cells(d.candidate)
            + [d.kind.value, d.existing_id or "", d.date_variance_days]
            for d in result.duplicates
        ]
        self._write_table(ws, headers, rows, SKIPPED_FILL)

    def _create_transfers_sheet(
        self, wb: Workbook, sheet: SheetConfig, result: BatchResult
    ) -> None:
        ws = wb.create_sheet(sheet.name)
        headers = [
            "Candidate ID",
            "Date",
            "Amount",
            "Account",
            "Counterpart ID",
            "Counterpart Date",
            "Counterpart Amount",
            "Counterpart Account",
            "Date Variance (Days)",
        ]
        rows = [
            [
                m.candidate.id,
                m.candidate.date,
                _money(m.candidate.amount),
                m.candidate.account_label or "",
                m.counterpart.id,
                m.counterpart.date,
                _money(m.counterpart.amount),
                m.counterpart.account_label or "",
                m.date_variance_days,
            ]
            for m in result.transfers
        ]
        self._write_table(ws, headers, rows, INSERT_FILL)

    def _create_issues_sheet(
        self, wb: Workbook, sheet: SheetConfig, result: BatchResult
    ) -> None:
        """Rejected candidates, held candidates and per-item warnings."""
        ws = wb.create_sheet(sheet.name)
        headers = ["Kind", "Stage", "Candidate ID", "Merchant", "Message"]

        rows: list[list[Any]] = []
        for rejected in result.rejected:
            rows.append(
                ["rejected", "validation", rejected.candidate.id, rejected.candidate.merchant,
                 rejected.reason]
            )
        for held in result.held:
            rows.append(
                ["held", "account", held.id, held.merchant, "Waiting for account selection"]
            )
        for warning in result.warnings:
            rows.append(["warning", warning.stage, warning.candidate_id or "", "",
                         warning.message])

        self._write_table(ws, headers, rows, SKIPPED_FILL)

    def _write_table(
        self,
        ws: Worksheet,
        headers: list[str],
        rows: list[list[Any]],
        fill: PatternFill,
    ) -> None:
        for col, header in enumerate(headers, start=1):
            cell = ws.cell(row=1, column=col, value=header)
            cell.fill = HEADER_FILL
            cell.font = HEADER_FONT
            cell.border = THIN_BORDER

        for row_num, row_data in enumerate(rows, start=2):
            for col, value in enumerate(row_data, start=1):
                cell = ws.cell(row=row_num, column=col, value=value)
                cell.border = THIN_BORDER
                cell.fill = fill

        self._auto_fit_columns(ws)

    def _auto_fit_columns(self, ws: Worksheet) -> None:
        """Auto-fit column widths based on content."""
        for column_cells in ws.columns:
            max_length = 0
            column = column_cells[0].column_letter

            for cell in column_cells:
                if cell.value is not None:
                    max_length = max(max_length, len(str(cell.value)))

            ws.column_dimensions[column].width = min(max_length + 2, 50)
