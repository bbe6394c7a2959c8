"""
CSV loaders for candidate batches, stored ledgers and account lists.
Reads with pandas and converts rows to the transaction and account models.
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Optional
import logging

import pandas as pd

from ..config import ReconConfig
from ..models.account import Account, AccountSource
from ..models.transaction import Transaction, TransactionSource, TransferLink
from ..utils.exceptions import CandidateParseError

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"true", "t", "yes", "y", "1"}

LEDGER_COLUMNS = [
    "id",
    "user_id",
    "date",
    "merchant",
    "amount",
    "currency",
    "category",
    "description",
    "transaction_type",
    "is_pending",
    "account_id",
    "account_name",
    "reconciled_from_id",
    "matched_transfer_id",
    "matched_account_name",
    "external_id",
    "source",
    "needs_clarification",
    "clarification_question",
]


class CsvLoader:
    """
    Loader for transaction and account CSV files.

    Candidate files keep rows whose date or amount cannot be read, with the
    field left empty, so the engine can report them as rejected. Ledger
    files skip such rows with a warning.
    """

    def __init__(self, config: Optional[ReconConfig] = None):
        """
        Initialize the loader with configuration.

        Args:
            config: Application configuration object
        """
        self.config = config or ReconConfig()
        self.csv_config = self.config.input.csv
        self.column_mappings = self.csv_config.column_mappings

    def load_candidates(
        self,
        file_path: Path,
        source: TransactionSource = TransactionSource.FILE_UPLOAD,
    ) -> list[Transaction]:
        """
        Parse a candidate CSV file.

        Args:
            file_path: Path to the CSV file
            source: Ingestion channel the batch came from

        Returns:
            List of candidate transactions in file order

        Raises:
            CandidateParseError: If the file cannot be read
        """
        logger.info(f"Parsing candidate CSV file: {file_path}")
        df = self._read(file_path)

        flip_sign = self.csv_config.sign_convention == "outflow_positive"
        candidates: list[Transaction] = []

        for idx, row in df.iterrows():
            try:
                txn = self._row_to_transaction(row, int(idx), source)
            except ValueError as e:
                logger.warning(f"Failed to process row {idx}: {e}")
                continue

            if txn.date is None or txn.amount is None:
                logger.warning(f"Row {idx}: missing date or amount, will be rejected")
            elif flip_sign:
                txn.amount = -txn.amount
            candidates.append(txn)

        logger.info(f"Extracted {len(candidates)} candidates from {file_path.name}")
        return candidates

    def load_ledger(self, file_path: Path, user_id: str) -> list[Transaction]:
        """
        Parse a stored-ledger CSV file.

        Args:
            file_path: Path to the CSV file
            user_id: Owner assigned to rows without a user_id column value

        Returns:
            List of stored transactions

        Raises:
            CandidateParseError: If the file cannot be read
        """
        logger.info(f"Parsing ledger CSV file: {file_path}")
        df = self._read(file_path)

        transactions: list[Transaction] = []
        for idx, row in df.iterrows():
            try:
                txn = self._row_to_transaction(row, int(idx), TransactionSource.FILE_UPLOAD)
            except ValueError as e:
                logger.warning(f"Failed to process row {idx}: {e}")
                continue

            if not txn.is_valid:
                logger.warning(f"Row {idx}: invalid date or amount, skipping")
                continue

            txn.user_id = self._text(row.get("user_id")) or user_id
            source = self._text(row.get("source"))
            if source:
                try:
                    txn.source = TransactionSource(source)
                except ValueError:
                    logger.warning(f"Row {idx}: unknown source '{source}'")
            transactions.append(txn)

        logger.info(f"Loaded {len(transactions)} stored transactions from {file_path.name}")
        return transactions

    def load_accounts(self, file_path: Path, user_id: str) -> list[Account]:
        """
        Parse an account list CSV file.

        Expected columns: display_name (required), id, official_name, alias,
        last4, account_type, issuer, source, is_active.
        """
        logger.info(f"Parsing account CSV file: {file_path}")
        df = self._read(file_path)

        if "display_name" not in df.columns:
            raise CandidateParseError(f"Account file {file_path} has no display_name column")

        accounts: list[Account] = []
        for idx, row in df.iterrows():
            display_name = self._text(row.get("display_name"))
            if not display_name:
                logger.warning(f"Row {idx}: account without display_name, skipping")
                continue

            attrs: dict[str, Any] = {
                "user_id": self._text(row.get("user_id")) or user_id,
                "display_name": display_name,
                "official_name": self._text(row.get("official_name")),
                "alias": self._text(row.get("alias")),
                "last4": self._text(row.get("last4")),
                "account_type": self._text(row.get("account_type")),
                "issuer": self._text(row.get("issuer")),
            }
            account_id = self._text(row.get("id"))
            if account_id:
                attrs["id"] = account_id

            source = self._text(row.get("source"))
            if source:
                try:
                    attrs["source"] = AccountSource(source.lower())
                except ValueError:
                    logger.warning(f"Row {idx}: unknown account source '{source}'")

            is_active = self._text(row.get("is_active"))
            if is_active is not None:
                attrs["is_active"] = self._parse_bool(is_active)

            accounts.append(Account(**attrs))

        logger.info(f"Loaded {len(accounts)} accounts from {file_path.name}")
        return accounts

    def write_ledger(self, transactions: list[Transaction], output_path: Path) -> Path:
        """Write transactions to a ledger CSV readable by ``load_ledger``."""
        output_path.parent.mkdir(parents=True, exist_ok=True)
        df = pd.DataFrame([t.to_dict() for t in transactions], columns=LEDGER_COLUMNS)
        df.to_csv(output_path, index=False, encoding=self.csv_config.encoding)
        logger.info(f"Wrote {len(transactions)} transactions to {output_path}")
        return output_path

    def write_accounts(self, accounts: list[Account], output_path: Path) -> Path:
        """Write accounts to a CSV readable by ``load_accounts``."""
        output_path.parent.mkdir(parents=True, exist_ok=True)
        rows = [
            {
                "id": a.id,
                "user_id": a.user_id,
                "display_name": a.display_name,
                "official_name": a.official_name,
                "alias": a.alias,
                "last4": a.last4,
                "account_type": a.account_type,
                "issuer": a.issuer,
                "source": a.source.value,
                "is_active": a.is_active,
            }
            for a in accounts
        ]
        columns = [
            "id",
            "user_id",
            "display_name",
            "official_name",
            "alias",
            "last4",
            "account_type",
            "issuer",
            "source",
            "is_active",
        ]
        df = pd.DataFrame(rows, columns=columns)
        df.to_csv(output_path, index=False, encoding=self.csv_config.encoding)
        logger.info(f"Wrote {len(accounts)} accounts to {output_path}")
        return output_path

    def get_file_summary(self, file_path: Path) -> dict:
        """
        Get summary information from a candidate or ledger CSV file.

        Args:
            file_path: Path to the CSV file

        Returns:
            Dictionary with file summary information
        """
        df = self._read(file_path)

        date_col = self.column_mappings.get("date", "date")
        amount_col = self.column_mappings.get("amount", "amount")
        pending_col = self.column_mappings.get("is_pending", "is_pending")
        account_col = self.column_mappings.get("account_name", "account_name")

        dates = (
            df[date_col].apply(self._parse_date).dropna() if date_col in df.columns else []
        )
        amounts = (
            df[amount_col].apply(self._parse_amount).dropna() if amount_col in df.columns else []
        )
        inflows = [a for a in amounts if a > 0]
        outflows = [a for a in amounts if a < 0]

        return {
            "row_count": len(df),
            "columns": list(df.columns),
            "date_range": {
                "start": min(dates).isoformat() if len(dates) > 0 else None,
                "end": max(dates).isoformat() if len(dates) > 0 else None,
            },
            "totals": {
                "inflow_count": len(inflows),
                "outflow_count": len(outflows),
                "total_inflows": float(sum(inflows)) if inflows else 0,
                "total_outflows": float(sum(outflows)) if outflows else 0,
            },
            "pending_count": (
                int(df[pending_col].apply(self._parse_bool).sum())
                if pending_col in df.columns
                else 0
            ),
            "accounts": (
                df[account_col].dropna().unique().tolist() if account_col in df.columns else []
            ),
        }

    def _read(self, file_path: Path) -> pd.DataFrame:
        try:
            return pd.read_csv(
                file_path,
                encoding=self.csv_config.encoding,
                delimiter=self.csv_config.delimiter,
                dtype=str,
            )
        except Exception as e:
            logger.error(f"Failed to read CSV file: {e}")
            raise CandidateParseError(f"Failed to read CSV file {file_path}: {e}") from e

    def _column(self, row: pd.Series, name: str) -> Any:
        return row.get(self.column_mappings.get(name, name))

    def _row_to_transaction(
        self, row: pd.Series, idx: int, source: TransactionSource
    ) -> Transaction:
        """
        Convert a DataFrame row to a Transaction.

        Args:
            row: Pandas Series representing a row
            idx: Row index
            source: Ingestion channel

        Returns:
            Transaction, with date or amount None when unreadable
        """
        attrs: dict[str, Any] = {
            "date": self._parse_date(self._column(row, "date")),
            "amount": self._parse_amount(self._column(row, "amount")),
            "merchant": self._text(self._column(row, "merchant")) or "",
            "currency": self._text(self._column(row, "currency")) or "USD",
            "category": self._text(self._column(row, "category")),
            "description": self._text(self._column(row, "description")),
            "declared_type": self._text(self._column(row, "transaction_type")),
            "is_pending": self._parse_bool(self._column(row, "is_pending")),
            "account_id": self._text(self._column(row, "account_id")),
            "account_name": self._text(self._column(row, "account_name")),
            "external_id": self._text(self._column(row, "external_id")),
            "reconciled_from_id": self._text(self._column(row, "reconciled_from_id")),
            "needs_clarification": self._parse_bool(self._column(row, "needs_clarification")),
            "clarification_question": self._text(row.get("clarification_question")),
            "source": source,
            "raw_data": {k: v for k, v in row.to_dict().items() if pd.notna(v)},
        }

        txn_id = self._text(self._column(row, "id"))
        if txn_id:
            attrs["id"] = txn_id

        matched_id = self._text(self._column(row, "matched_transfer_id"))
        if matched_id:
            attrs["transfer_link"] = TransferLink(
                matched_transfer_id=matched_id,
                matched_account_name=self._text(self._column(row, "matched_account_name")),
            )

        if attrs["declared_type"] and attrs["declared_type"].lower() not in (
            "income",
            "expense",
            "transfer",
            "other",
        ):
            logger.warning(f"Row {idx}: unknown transaction type '{attrs['declared_type']}'")

        return Transaction(**attrs)

    def _parse_date(self, date_value) -> Optional[date]:
        """
        Parse a date value from the CSV.

        Args:
            date_value: Date value (string or datetime)

        Returns:
            Python date object or None
        """
        if date_value is None or pd.isna(date_value):
            return None

        if isinstance(date_value, datetime):
            return date_value.date()
        if isinstance(date_value, date):
            return date_value

        text = str(date_value).strip()
        try:
            return datetime.strptime(text, self.csv_config.date_format).date()
        except ValueError:
            # Try pandas parser as fallback
            try:
                parsed = pd.to_datetime(text)
            except (ValueError, OverflowError):
                return None
            return None if pd.isna(parsed) else parsed.date()

    def _parse_amount(self, amount_value) -> Optional[Decimal]:
        """
        Parse an amount value from the CSV.

        Args:
            amount_value: Amount value (string, float, or None)

        Returns:
            Decimal amount or None
        """
        if amount_value is None or pd.isna(amount_value) or amount_value == "":
            return None

        text = str(amount_value).replace("$", "").replace(",", "").strip()
        # Accounting negatives: (12.50)
        if text.startswith("(") and text.endswith(")"):
            text = f"-{text[1:-1]}"

        try:
            amount = Decimal(text)
        except (InvalidOperation, ValueError):
            return None
        return amount if amount.is_finite() else None

    @staticmethod
    def _parse_bool(value) -> bool:
        if value is None or (not isinstance(value, bool) and pd.isna(value)):
            return False
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in _TRUE_VALUES

    @staticmethod
    def _text(value) -> Optional[str]:
        if value is None or pd.isna(value):
            return None
        text = str(value).strip()
        return text or None
