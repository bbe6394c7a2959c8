"""
Ledger reconciliation core.

Merges transactions extracted from statements, screenshots and bank-sync
feeds into a duplicate-free, correctly linked ledger per user, and owns the
canonical income/expense/transfer classification.
"""

from typing import Optional

from .classification import classify, is_likely_internal_transfer
from .config import ReconConfig, load_config
from .matching import ReconciliationEngine
from .models import AccountContext, BatchResult, Transaction
from .store import InMemoryStore, TransactionStore

__version__ = "0.1.0"


def reconcile_batch(
    store: TransactionStore,
    user_id: str,
    account_context: Optional[AccountContext],
    candidates: list[Transaction],
    config: Optional[ReconConfig] = None,
) -> BatchResult:
    """Reconcile one batch with a throwaway engine. See ``ReconciliationEngine``."""
    return ReconciliationEngine(store, config).reconcile_batch(
        user_id, account_context, candidates
    )


__all__ = [
    "AccountContext",
    "BatchResult",
    "InMemoryStore",
    "ReconConfig",
    "ReconciliationEngine",
    "Transaction",
    "TransactionStore",
    "classify",
    "is_likely_internal_transfer",
    "load_config",
    "reconcile_batch",
]
