"""
Pending/posted reconciliation.

A card purchase is often seen twice: first as a pending authorization, later
as the posted charge, sometimes with a different date and a longer
descriptor. When a posted candidate settles a stored pending row, the
pending row is scheduled for deletion and the candidate is inserted with a
lineage pointer (``reconciled_from_id``) to it.
"""

from decimal import Decimal
from typing import Optional
import logging

from ..config import PendingSettings
from ..models.results import ReconciledPending
from ..models.transaction import Transaction
from .strategies import PendingPostedStrategy, day_distance, merchant_similarity

logger = logging.getLogger(__name__)


class PendingReconciler:
    """Pair posted candidates with the pending rows they settle."""

    def __init__(self, settings: Optional[PendingSettings] = None):
        self.settings = settings or PendingSettings()
        self.strategy = PendingPostedStrategy(
            window_days=self.settings.window_days,
            amount_tolerance=Decimal(str(self.settings.amount_tolerance)),
            similarity_threshold=self.settings.similarity_threshold,
        )

    def reconcile(
        self,
        candidates: list[Transaction],
        stored: list[Transaction],
    ) -> list[ReconciledPending]:
        """
        Match candidates to stored pending rows and stamp lineage pointers.

        Each pending row is claimed by at most one candidate and each
        candidate settles at most one pending row. Pairs are assigned best
        first: smallest date gap, then highest merchant similarity. Pending
        rows left unclaimed are not touched.

        Args:
            candidates: Candidates that survived exact-duplicate detection
            stored: Stored transactions, pending and posted, for the account

        Returns:
            One ReconciledPending per settled pending row
        """
        pairs: list[tuple[int, float, int, Transaction]] = []
        for index, candidate in enumerate(candidates):
            for pending in self.strategy.find_matches(candidate, stored):
                pairs.append(
                    (
                        day_distance(candidate.date, pending.date),
                        merchant_similarity(candidate.merchant, pending.merchant),
                        index,
                        pending,
                    )
                )

        pairs.sort(key=lambda p: (p[0], -p[1], p[2]))

        claimed_candidates: set[int] = set()
        claimed_pending: set[str] = set()
        reconciled: list[tuple[int, ReconciledPending]] = []

        for date_diff, similarity, index, pending in pairs:
            if index in claimed_candidates or pending.id in claimed_pending:
                continue
            candidate = candidates[index]
            claimed_candidates.add(index)
            claimed_pending.add(pending.id)

            candidate.reconciled_from_id = pending.id
            reconciled.append(
                (
                    index,
                    ReconciledPending(
                        candidate=candidate,
                        pending=pending,
                        date_variance_days=date_diff,
                        merchant_similarity=similarity,
                    ),
                )
            )
            _, reason = self.strategy.calculate_match_score(candidate, pending)
            logger.debug(f"Pending {pending.id} reconciled by {candidate.id}: {reason}")

        reconciled.sort(key=lambda r: r[0])
        return [r for _, r in reconciled]
