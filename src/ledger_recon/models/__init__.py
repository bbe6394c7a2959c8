"""Data models for ledger reconciliation."""

from .account import (
    Account,
    AccountContext,
    AccountResolution,
    AccountSource,
    ResolutionStatus,
    SourceType,
)
from .results import (
    BatchResult,
    ClassificationResult,
    DuplicateExample,
    DuplicateKind,
    ItemWarning,
    LinkUpdate,
    ReconciledPending,
    RejectedCandidate,
    TransferMatch,
)
from .transaction import (
    Transaction,
    TransactionSource,
    TransactionType,
    TransferLink,
)

__all__ = [
    "Account",
    "AccountContext",
    "AccountResolution",
    "AccountSource",
    "ResolutionStatus",
    "SourceType",
    "BatchResult",
    "ClassificationResult",
    "DuplicateExample",
    "DuplicateKind",
    "ItemWarning",
    "LinkUpdate",
    "ReconciledPending",
    "RejectedCandidate",
    "TransferMatch",
    "Transaction",
    "TransactionSource",
    "TransactionType",
    "TransferLink",
]
