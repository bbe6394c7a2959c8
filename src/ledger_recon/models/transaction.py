"""Data models for candidate and stored ledger transactions."""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional
import re
import uuid


class TransactionType(Enum):
    """Canonical transaction type."""

    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"
    OTHER = "other"

    @classmethod
    def parse(cls, value: Any) -> Optional["TransactionType"]:
        """Parse a declared type, returning None for blanks and unknown labels."""
        if value is None:
            return None
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        for member in cls:
            if member.value == text:
                return member
        return None


class TransactionSource(Enum):
    """Where a transaction was observed."""

    FILE_UPLOAD = "file_upload"
    SYNC = "sync"
    MANUAL = "manual"


@dataclass
class TransferLink:
    """Pointer to the opposite leg of an internal transfer."""

    matched_transfer_id: str
    matched_account_name: Optional[str] = None


def _new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class Transaction:
    """
    A candidate or stored ledger transaction.

    Candidates come from upstream extraction and carry a freshly generated id
    so that lineage and transfer pointers can be stamped before storage.
    Amounts are signed: positive is money in, negative is money out.
    """

    # Calendar day; None only for malformed candidates
    date: Optional[date]

    # Signed amount; None only for malformed candidates
    amount: Optional[Decimal]

    merchant: str = ""
    currency: str = "USD"
    category: Optional[str] = None
    description: Optional[str] = None

    # Type declared by the extractor or feed (may be None)
    declared_type: Optional[TransactionType] = None

    is_pending: bool = False

    id: str = field(default_factory=_new_id)
    user_id: Optional[str] = None

    # Account reference, None until resolved
    account_id: Optional[str] = None
    account_name: Optional[str] = None

    # Lineage pointer to the pending row this transaction superseded
    reconciled_from_id: Optional[str] = None

    transfer_link: Optional[TransferLink] = None

    # Provider transaction id for bank-sync records
    external_id: Optional[str] = None
    source: TransactionSource = TransactionSource.FILE_UPLOAD

    needs_clarification: bool = False
    clarification_question: Optional[str] = None

    raw_data: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Coerce loosely typed inputs into dates, decimals and enums."""
        if isinstance(self.date, datetime):
            self.date = self.date.date()
        elif isinstance(self.date, str):
            self.date = date.fromisoformat(self.date.strip()[:10])

        if self.amount is not None and not isinstance(self.amount, Decimal):
            try:
                self.amount = Decimal(str(self.amount))
            except InvalidOperation as e:
                raise ValueError(f"Invalid amount: {self.amount!r}") from e

        if not isinstance(self.declared_type, TransactionType):
            self.declared_type = TransactionType.parse(self.declared_type)

        if self.merchant is None:
            self.merchant = ""

    @property
    def normalized_merchant(self) -> str:
        """Merchant text lowercased with whitespace collapsed."""
        return re.sub(r"\s+", " ", self.merchant.strip().lower())

    @property
    def account_label(self) -> Optional[str]:
        """Best human-readable account reference."""
        return self.account_name or self.account_id

    @property
    def is_valid(self) -> bool:
        """Whether the record carries the fields reconciliation needs."""
        return self.date is not None and self.amount is not None

    def to_dict(self) -> dict[str, Any]:
        """Flat representation used by the CSV writer and reports."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "date": self.date.isoformat() if self.date else None,
            "merchant": self.merchant,
            "amount": str(self.amount) if self.amount is not None else None,
            "currency": self.currency,
            "category": self.category,
            "description": self.description,
            "transaction_type": self.declared_type.value if self.declared_type else None,
            "is_pending": self.is_pending,
            "account_id": self.account_id,
            "account_name": self.account_name,
            "reconciled_from_id": self.reconciled_from_id,
            "matched_transfer_id": (
                self.transfer_link.matched_transfer_id if self.transfer_link else None
            ),
            "matched_account_name": (
                self.transfer_link.matched_account_name if self.transfer_link else None
            ),
            "external_id": self.external_id,
            "source": self.source.value,
            "needs_clarification": self.needs_clarification,
            "clarification_question": self.clarification_question,
        }
