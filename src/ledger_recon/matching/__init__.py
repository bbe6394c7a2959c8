"""Duplicate detection, pending reconciliation and transfer matching."""

from .duplicates import DuplicateDetector
from .engine import ReconciliationEngine
from .pending import PendingReconciler
from .strategies import (
    ExactDuplicateStrategy,
    ExternalIdStrategy,
    MatchingStrategy,
    NearDuplicateStrategy,
    PendingPostedStrategy,
    TransferStrategy,
    merchant_similarity,
    normalize_merchant,
)
from .transfers import TransferMatcher

__all__ = [
    "DuplicateDetector",
    "ReconciliationEngine",
    "PendingReconciler",
    "TransferMatcher",
    "MatchingStrategy",
    "ExactDuplicateStrategy",
    "ExternalIdStrategy",
    "NearDuplicateStrategy",
    "PendingPostedStrategy",
    "TransferStrategy",
    "merchant_similarity",
    "normalize_merchant",
]
