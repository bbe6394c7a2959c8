"""
Duplicate detection for candidate batches.

Exact repeats (same provider id, or same date, merchant and amount) are
dropped before pending reconciliation; near repeats (same merchant and
amount a day or two apart) are dropped after it, so that a posted row is
never discarded as a near duplicate of the pending row it should replace.
"""

from decimal import Decimal
from typing import Optional
import logging

from ..config import DuplicateSettings
from ..models.results import DuplicateExample, DuplicateKind
from ..models.transaction import Transaction
from .strategies import (
    CENT,
    ExactDuplicateStrategy,
    ExternalIdStrategy,
    MatchingStrategy,
    NearDuplicateStrategy,
    day_distance,
    normalize_merchant,
)

logger = logging.getLogger(__name__)


class DuplicateDetector:
    """Partition candidates into unique transactions and dropped duplicates."""

    def __init__(self, settings: Optional[DuplicateSettings] = None):
        self.settings = settings or DuplicateSettings()

        self.exact_strategies: list[tuple[DuplicateKind, MatchingStrategy]] = []
        if self.settings.match_external_ids:
            self.exact_strategies.append((DuplicateKind.EXTERNAL_ID, ExternalIdStrategy()))
        self.exact_strategies.append((DuplicateKind.EXACT, ExactDuplicateStrategy()))

        self.near_strategy: Optional[NearDuplicateStrategy] = None
        if self.settings.near_duplicate_enabled:
            self.near_strategy = NearDuplicateStrategy(
                tolerance_days=self.settings.near_duplicate_days
            )

    def partition(
        self,
        candidates: list[Transaction],
        stored: list[Transaction],
    ) -> tuple[list[Transaction], list[DuplicateExample]]:
        """
        Run exact and near-duplicate detection in one pass.

        Args:
            candidates: Valid candidates for one account
            stored: Stored transactions for that account in the expanded window

        Returns:
            Tuple of (unique candidates, dropped duplicates)
        """
        unique, exact = self.drop_exact(candidates, stored)
        unique, near = self.drop_near(unique, stored)
        return unique, exact + near

    def drop_exact(
        self,
        candidates: list[Transaction],
        stored: list[Transaction],
    ) -> tuple[list[Transaction], list[DuplicateExample]]:
        """Drop candidates that exactly repeat a stored row or an earlier candidate."""
        unique: list[Transaction] = []
        duplicates: list[DuplicateExample] = []
        seen: dict[tuple, Transaction] = {}

        for candidate in candidates:
            example = self._match_stored(candidate, stored)

            if example is None:
                key = self._identity_key(candidate)
                earlier = seen.get(key)
                if earlier is not None:
                    example = DuplicateExample(
                        candidate=candidate,
                        kind=DuplicateKind.SAME_BATCH,
                        existing_id=earlier.id,
                    )
                else:
                    seen[key] = candidate

            if example is None:
                unique.append(candidate)
            else:
                duplicates.append(example)
                logger.debug(f"Duplicate skipped: {example.describe()}")

        return unique, duplicates

    def drop_near(
        self,
        candidates: list[Transaction],
        stored: list[Transaction],
    ) -> tuple[list[Transaction], list[DuplicateExample]]:
        """Drop candidates repeating a stored row within the near-duplicate window."""
        if self.near_strategy is None:
            return list(candidates), []

        unique: list[Transaction] = []
        duplicates: list[DuplicateExample] = []

        for candidate in candidates:
            matches = self.near_strategy.find_matches(candidate, stored)
            if not matches:
                unique.append(candidate)
                continue

            existing = matches[0]
            example = DuplicateExample(
                candidate=candidate,
                kind=DuplicateKind.NEAR,
                existing_id=existing.id,
                date_variance_days=day_distance(candidate.date, existing.date),
            )
            duplicates.append(example)
            logger.debug(f"Near duplicate skipped: {example.describe()}")

        return unique, duplicates

    def _match_stored(
        self, candidate: Transaction, stored: list[Transaction]
    ) -> Optional[DuplicateExample]:
        for kind, strategy in self.exact_strategies:
            matches = strategy.find_matches(candidate, stored)
            if matches:
                return DuplicateExample(
                    candidate=candidate,
                    kind=kind,
                    existing_id=matches[0].id,
                    date_variance_days=day_distance(candidate.date, matches[0].date),
                )
        return None

    @staticmethod
    def _identity_key(txn: Transaction) -> tuple:
        amount: Decimal = txn.amount.quantize(CENT)
        merchant = normalize_merchant(txn.merchant)
        return (txn.date, merchant, amount, txn.is_pending, txn.external_id)
