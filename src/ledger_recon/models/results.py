"""Result models produced by classification and batch reconciliation."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from .account import AccountResolution
from .transaction import Transaction, TransactionType, TransferLink


@dataclass(frozen=True)
class ClassificationResult:
    """
    Canonical classification of a transaction.

    ``type`` is what aggregates use; ``label`` is what display callers show,
    and keeps the literal ``other`` when that was declared.
    """

    type: TransactionType
    is_excluded: bool
    label: TransactionType
    amount: Decimal
    abs_amount: Decimal


class DuplicateKind(Enum):
    """Why a candidate was dropped as a duplicate."""

    EXACT = "exact"
    NEAR = "near"
    EXTERNAL_ID = "external_id"
    SAME_BATCH = "same_batch"


@dataclass
class DuplicateExample:
    """A candidate that was dropped, with the stored row it repeated."""

    candidate: Transaction
    kind: DuplicateKind
    existing_id: Optional[str] = None
    date_variance_days: int = 0

    def describe(self) -> str:
        amount = self.candidate.amount if self.candidate.amount is not None else Decimal("0")
        return (
            f"{self.candidate.date} | {self.candidate.merchant} | "
            f"{amount:.2f} - {self.kind.value} match"
        )


@dataclass
class ReconciledPending:
    """A posted candidate that supersedes a stored pending row."""

    candidate: Transaction
    pending: Transaction
    date_variance_days: int
    merchant_similarity: float


@dataclass
class TransferMatch:
    """A candidate linked to the opposite leg in another account."""

    candidate: Transaction
    counterpart: Transaction
    date_variance_days: int


@dataclass
class LinkUpdate:
    """A stored transaction whose transfer link (and type) must be written."""

    transaction_id: str
    link: TransferLink
    declared_type: Optional[TransactionType] = TransactionType.TRANSFER


@dataclass
class ItemWarning:
    """A non-fatal problem affecting one candidate."""

    stage: str
    message: str
    candidate_id: Optional[str] = None


@dataclass
class RejectedCandidate:
    """A malformed candidate excluded from the batch."""

    candidate: Transaction
    reason: str


@dataclass
class BatchResult:
    """Insert/delete/link plan for one ingestion batch."""

    user_id: str
    account_resolution: Optional[AccountResolution] = None

    to_insert: list[Transaction] = field(default_factory=list)
    to_delete: list[str] = field(default_factory=list)
    link_updates: list[LinkUpdate] = field(default_factory=list)

    duplicates: list[DuplicateExample] = field(default_factory=list)
    reconciled: list[ReconciledPending] = field(default_factory=list)
    transfers: list[TransferMatch] = field(default_factory=list)
    rejected: list[RejectedCandidate] = field(default_factory=list)
    warnings: list[ItemWarning] = field(default_factory=list)

    # Candidates held back until the user selects an account
    held: list[Transaction] = field(default_factory=list)

    max_examples: int = 5
    processed_at: datetime = field(default_factory=datetime.now)
    processing_time_seconds: float = 0.0

    @property
    def duplicates_skipped(self) -> int:
        return len(self.duplicates)

    @property
    def duplicate_examples(self) -> list[str]:
        return [d.describe() for d in self.duplicates[: self.max_examples]]

    @property
    def pending_reconciled(self) -> int:
        return len(self.reconciled)

    @property
    def transfers_linked(self) -> int:
        return len(self.transfers)

    @property
    def net_new(self) -> int:
        """Inserted rows that do not replace a pending row."""
        return len(self.to_insert) - len(self.reconciled)

    @property
    def needs_account_selection(self) -> bool:
        return bool(self.account_resolution and self.account_resolution.needs_selection)

    def summary(self) -> dict[str, int]:
        """Counts reported back to the ingestion caller."""
        return {
            "to_insert": len(self.to_insert),
            "to_delete": len(self.to_delete),
            "duplicates_skipped": self.duplicates_skipped,
            "pending_reconciled": self.pending_reconciled,
            "transfers_linked": self.transfers_linked,
            "net_new": self.net_new,
            "rejected": len(self.rejected),
            "warnings": len(self.warnings),
            "held": len(self.held),
        }
