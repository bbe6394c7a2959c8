"""
Batch reconciliation engine.

Runs one ingestion batch through classification, account resolution,
duplicate detection, pending/posted reconciliation and transfer matching,
and returns the resulting insert/delete/link plan. Nothing is written here;
the caller applies the plan (``TransactionStore.apply_plan``).
"""

from datetime import datetime, timedelta
from typing import Optional
import logging

from ..accounts.resolver import AccountResolver
from ..classification.classifier import TransactionClassifier
from ..config import ReconConfig
from ..models.account import AccountContext, AccountResolution
from ..models.results import BatchResult, ItemWarning, RejectedCandidate
from ..models.transaction import Transaction, TransactionType
from ..store.base import TransactionStore
from ..utils.exceptions import AccountResolutionError
from .duplicates import DuplicateDetector
from .pending import PendingReconciler
from .transfers import TransferMatcher

logger = logging.getLogger(__name__)

AccountKey = tuple[Optional[str], Optional[str]]


class ReconciliationEngine:
    """
    Main reconciliation engine that orchestrates one ingestion batch.

    Stages run in a fixed order: exact duplicates are removed first, then
    posted candidates settle stored pending rows, then near duplicates are
    removed from what is left, and finally possible transfers are linked to
    their opposite legs in the user's other accounts.

    Ingestion for a single user must be serialized by the caller.
    """

    def __init__(self, store: TransactionStore, config: Optional[ReconConfig] = None):
        """
        Initialize the reconciliation engine.

        Args:
            store: Transaction and account store to read from
            config: Application configuration
        """
        self.store = store
        self.config = config or ReconConfig()

        self.classifier = TransactionClassifier(self.config.classifier)
        self.resolver = AccountResolver(store)
        self.duplicates = DuplicateDetector(self.config.duplicates)
        self.pending = PendingReconciler(self.config.pending)
        self.transfers = TransferMatcher(store, self.config.transfers, self.classifier)

    def reconcile_batch(
        self,
        user_id: str,
        account_context: Optional[AccountContext],
        candidates: list[Transaction],
    ) -> BatchResult:
        """
        Reconcile a batch of candidates for one user.

        Args:
            user_id: Owner of the batch
            account_context: Account details extracted with the batch, or None
                when every candidate already carries its own account reference
            candidates: Candidate transactions from upstream extraction

        Returns:
            BatchResult describing what to insert, delete and link
        """
        start_time = datetime.now()
        logger.info(f"Starting reconciliation: {len(candidates)} candidates for user {user_id}")

        result = BatchResult(
            user_id=user_id,
            max_examples=self.config.duplicates.max_examples,
        )

        valid = self._validate(candidates, result)
        for candidate in valid:
            self._classify(candidate)

        if account_context is not None:
            resolution = self._resolve_account(user_id, account_context, result)
            result.account_resolution = resolution

            if resolution is not None and resolution.needs_selection:
                result.held = valid
                logger.info(
                    f"Holding {len(valid)} candidates until an account is selected: "
                    f"{resolution.reason}"
                )
                return self._finish(result, start_time)

            self._stamp_account(valid, resolution, account_context)

        for candidate in valid:
            candidate.user_id = candidate.user_id or user_id

        accepted: list[Transaction] = []
        for key, group in self._group_by_account(valid).items():
            accepted.extend(self._reconcile_account(user_id, key, group, result))

        if self.config.transfers.enabled and accepted:
            matches, link_updates, warnings = self.transfers.match(user_id, accepted)
            result.transfers.extend(matches)
            result.link_updates.extend(link_updates)
            result.warnings.extend(warnings)

        # Keep the caller's ordering
        order = {id(c): i for i, c in enumerate(candidates)}
        result.to_insert = sorted(accepted, key=lambda c: order[id(c)])

        return self._finish(result, start_time)

    def _validate(self, candidates: list[Transaction], result: BatchResult) -> list[Transaction]:
        """Split off candidates missing a date or an amount."""
        valid: list[Transaction] = []
        for candidate in candidates:
            missing = [
                name for name in ("date", "amount") if getattr(candidate, name) is None
            ]
            if missing:
                reason = f"Missing required field(s): {', '.join(missing)}"
                logger.warning(f"Rejected candidate {candidate.id}: {reason}")
                result.rejected.append(RejectedCandidate(candidate=candidate, reason=reason))
            else:
                valid.append(candidate)
        return valid

    def _classify(self, candidate: Transaction) -> None:
        classification = self.classifier.classify(candidate)
        if classification.is_excluded and classification.type is TransactionType.OTHER:
            # A declared OTHER would re-classify as expense; zero amounts stay undeclared
            return
        if candidate.declared_type is not classification.label:
            candidate.raw_data.setdefault(
                "declared_type",
                candidate.declared_type.value if candidate.declared_type else None,
            )
            candidate.declared_type = classification.label

    def _resolve_account(
        self,
        user_id: str,
        context: AccountContext,
        result: BatchResult,
    ) -> Optional[AccountResolution]:
        try:
            resolution = self.resolver.resolve(user_id, context)
        except AccountResolutionError as e:
            # Keep the batch; rows are stored against the extracted label only
            logger.warning(f"Account resolution failed, continuing unlinked: {e}")
            result.warnings.append(ItemWarning(stage="account", message=str(e)))
            return None

        for message in resolution.warnings:
            result.warnings.append(ItemWarning(stage="account", message=message))

        logger.info(f"Account resolution: {resolution.status.value} ({resolution.reason})")
        return resolution

    @staticmethod
    def _stamp_account(
        candidates: list[Transaction],
        resolution: Optional[AccountResolution],
        context: AccountContext,
    ) -> None:
        if resolution is not None and resolution.account is not None:
            account_id = resolution.account.id
            account_name = resolution.account.display_name
        else:
            account_id = None
            last4 = context.effective_last4
            account_name = (context.official_name or "").strip() or (
                f"Account ****{last4}" if last4 else None
            )

        for candidate in candidates:
            candidate.account_id = account_id
            candidate.account_name = account_name

    @staticmethod
    def _group_by_account(candidates: list[Transaction]) -> dict[AccountKey, list[Transaction]]:
        groups: dict[AccountKey, list[Transaction]] = {}
        for candidate in candidates:
            key = (candidate.account_id, candidate.account_name)
            groups.setdefault(key, []).append(candidate)
        return groups

    def _reconcile_account(
        self,
        user_id: str,
        key: AccountKey,
        candidates: list[Transaction],
        result: BatchResult,
    ) -> list[Transaction]:
        """Deduplicate and reconcile the candidates of one account."""
        stored = self._load_stored(user_id, key, candidates, result)

        if self.config.duplicates.enabled:
            unique, exact = self.duplicates.drop_exact(candidates, stored)
            result.duplicates.extend(exact)
        else:
            unique = list(candidates)

        reconciled = []
        if self.config.pending.enabled:
            reconciled = self.pending.reconcile(unique, stored)
            result.reconciled.extend(reconciled)
            result.to_delete.extend(r.pending.id for r in reconciled)

        settled = {id(r.candidate) for r in reconciled}
        remaining = [c for c in unique if id(c) not in settled]

        if self.config.duplicates.enabled:
            remaining, near = self.duplicates.drop_near(remaining, stored)
            result.duplicates.extend(near)

        kept = {id(c) for c in remaining} | settled
        return [c for c in unique if id(c) in kept]

    def _load_stored(
        self,
        user_id: str,
        key: AccountKey,
        candidates: list[Transaction],
        result: BatchResult,
    ) -> list[Transaction]:
        """
        Stored rows for one account around the batch's date span.

        A failed read leaves that part of the window empty, so every
        candidate in the group is treated as new and carries a warning.
        """
        account_id, account_name = key
        dates = [c.date for c in candidates]
        buffer = timedelta(
            days=max(self.config.duplicates.date_buffer_days, self.config.pending.window_days)
        )
        start_date = min(dates) - buffer
        end_date = max(dates) + buffer

        stored: dict[str, Transaction] = {}

        try:
            rows = self.store.search_transactions(
                user_id,
                account_name=None if account_id else account_name,
                start_date=start_date,
                end_date=end_date,
                account_id=account_id,
            )
            for row in rows:
                if self._in_account(row, account_id, account_name):
                    stored[row.id] = row
        except Exception as e:
            logger.warning(f"Transaction search failed for {account_name or account_id}: {e}")
            self._warn_all(result, candidates, "duplicates", f"Duplicate check skipped: {e}")

        if self.config.pending.enabled:
            try:
                rows = self.store.get_pending_transactions(
                    user_id, account_id, start_date, end_date
                )
                for row in rows:
                    if self._in_account(row, account_id, account_name):
                        stored.setdefault(row.id, row)
            except Exception as e:
                logger.warning(f"Pending lookup failed for {account_name or account_id}: {e}")
                self._warn_all(
                    result, candidates, "pending", f"Pending reconciliation skipped: {e}"
                )

        logger.debug(
            f"Loaded {len(stored)} stored rows for {account_name or account_id} "
            f"between {start_date} and {end_date}"
        )
        return list(stored.values())

    @staticmethod
    def _in_account(
        txn: Transaction, account_id: Optional[str], account_name: Optional[str]
    ) -> bool:
        if account_id:
            return txn.account_id == account_id
        if account_name:
            return (txn.account_name or "").strip().lower() == account_name.strip().lower()
        return not (txn.account_id or txn.account_name)

    @staticmethod
    def _warn_all(
        result: BatchResult, candidates: list[Transaction], stage: str, message: str
    ) -> None:
        for candidate in candidates:
            result.warnings.append(
                ItemWarning(stage=stage, message=message, candidate_id=candidate.id)
            )

    @staticmethod
    def _finish(result: BatchResult, start_time: datetime) -> BatchResult:
        result.processing_time_seconds = (datetime.now() - start_time).total_seconds()
        counts = result.summary()
        logger.info(
            f"Reconciliation complete in {result.processing_time_seconds:.2f}s: "
            f"{counts['to_insert']} to insert, {counts['to_delete']} to delete, "
            f"{counts['duplicates_skipped']} duplicates, "
            f"{counts['pending_reconciled']} pending reconciled, "
            f"{counts['transfers_linked']} transfers linked, "
            f"{counts['rejected']} rejected"
        )
        return result
