"""
Cross-account transfer matching.

Money moved between two of a user's accounts shows up twice, once in each
account, with opposite signs. When a candidate looks like a transfer, the
user's other accounts are searched in a short date window for the opposite
leg. A unique nearest match links both legs; a tie leaves both unlinked.
"""

from datetime import timedelta
from decimal import Decimal
from typing import Optional
import logging

from ..classification.classifier import TransactionClassifier
from ..config import TransferSettings
from ..models.results import ItemWarning, LinkUpdate, TransferMatch
from ..models.transaction import Transaction, TransactionType, TransferLink
from ..store.base import TransactionStore
from .strategies import TransferStrategy, day_distance

logger = logging.getLogger(__name__)


class TransferMatcher:
    """Find and link the opposite legs of internal transfers."""

    def __init__(
        self,
        store: TransactionStore,
        settings: Optional[TransferSettings] = None,
        classifier: Optional[TransactionClassifier] = None,
    ):
        self.store = store
        self.settings = settings or TransferSettings()
        self.classifier = classifier or TransactionClassifier()
        self.strategy = TransferStrategy(
            window_days=self.settings.window_days,
            amount_tolerance=Decimal(str(self.settings.amount_tolerance)),
        )

    def is_potential_transfer(self, txn: Transaction) -> bool:
        """
        Whether a candidate is worth a cross-account search.

        True for declared or classified transfers, for expense/other rows
        the extractor flagged for clarification, and for rows whose merchant
        or description mentions a transfer hint token.
        """
        if txn.declared_type is TransactionType.TRANSFER:
            return True
        if self.classifier.classify(txn).type is TransactionType.TRANSFER:
            return True
        if txn.needs_clarification and txn.declared_type in (
            TransactionType.EXPENSE,
            TransactionType.OTHER,
        ):
            return True

        text = f"{txn.merchant or ''} {txn.description or ''}".lower()
        return any(token in text for token in self.settings.hint_tokens)

    def match(
        self,
        user_id: str,
        candidates: list[Transaction],
    ) -> tuple[list[TransferMatch], list[LinkUpdate], list[ItemWarning]]:
        """
        Link candidates to opposite legs stored in the user's other accounts.

        Args:
            user_id: Owner of the batch
            candidates: Candidates about to be inserted

        Returns:
            Tuple of (matches, link updates for the stored legs, warnings)
        """
        matches: list[TransferMatch] = []
        link_updates: list[LinkUpdate] = []
        warnings: list[ItemWarning] = []
        claimed: set[str] = set()

        for candidate in candidates:
            if not self.is_potential_transfer(candidate):
                continue

            window = timedelta(days=self.settings.window_days)
            try:
                stored = self.store.search_transactions(
                    user_id,
                    start_date=candidate.date - window,
                    end_date=candidate.date + window,
                )
            except Exception as e:
                logger.warning(f"Transfer search failed for {candidate.id}: {e}")
                warnings.append(
                    ItemWarning(
                        stage="transfer",
                        message=f"Transfer search failed, left unlinked: {e}",
                        candidate_id=candidate.id,
                    )
                )
                continue

            options = [
                t for t in self.strategy.find_matches(candidate, stored) if t.id not in claimed
            ]
            if not options:
                continue

            best = options[0]
            best_gap = day_distance(best.date, candidate.date)
            if len(options) > 1 and day_distance(options[1].date, candidate.date) == best_gap:
                logger.info(
                    f"Ambiguous transfer for {candidate.id}: "
                    f"{len(options)} legs {best_gap} day(s) away, left unlinked"
                )
                warnings.append(
                    ItemWarning(
                        stage="transfer",
                        message=(
                            f"{len(options)} equally close opposite legs found; "
                            "transfer left unlinked"
                        ),
                        candidate_id=candidate.id,
                    )
                )
                continue

            claimed.add(best.id)
            self._link(candidate, best)
            link_updates.append(
                LinkUpdate(
                    transaction_id=best.id,
                    link=TransferLink(
                        matched_transfer_id=candidate.id,
                        matched_account_name=candidate.account_label,
                    ),
                    declared_type=TransactionType.TRANSFER,
                )
            )
            matches.append(
                TransferMatch(candidate=candidate, counterpart=best, date_variance_days=best_gap)
            )

            _, reason = self.strategy.calculate_match_score(candidate, best)
            logger.debug(f"Transfer linked {candidate.id} <-> {best.id}: {reason}")

        return matches, link_updates, warnings

    @staticmethod
    def _link(candidate: Transaction, counterpart: Transaction) -> None:
        candidate.declared_type = TransactionType.TRANSFER
        candidate.needs_clarification = False
        candidate.clarification_question = None
        candidate.transfer_link = TransferLink(
            matched_transfer_id=counterpart.id,
            matched_account_name=counterpart.account_label,
        )
