"""
Storage contract consumed by the reconciliation core.

The core only reads through these methods and emits a plan; writing the plan
back is the store's job (``apply_plan``). Ingestion for one user must be
serialized by the caller: two batches reconciled concurrently against the
same pending rows can both claim them.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Optional
import logging

from ..models.account import Account
from ..models.results import BatchResult
from ..models.transaction import Transaction, TransactionType, TransferLink

logger = logging.getLogger(__name__)


class TransactionStore(ABC):
    """
    Read/write access to one user-scoped transaction and account store.

    Read methods raise ``StoreLookupError`` when the backing store cannot
    answer (timeouts, connection loss). The engine degrades each such
    failure to "no match" plus a per-item warning instead of aborting the
    batch.
    """

    @abstractmethod
    def search_transactions(
        self,
        user_id: str,
        account_name: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        account_id: Optional[str] = None,
    ) -> list[Transaction]:
        """Stored transactions for a user, optionally narrowed by account and dates."""

    @abstractmethod
    def get_pending_transactions(
        self,
        user_id: str,
        account_id: Optional[str],
        start_date: date,
        end_date: date,
    ) -> list[Transaction]:
        """Stored rows with ``is_pending`` set inside the date range."""

    @abstractmethod
    def find_accounts_by_last4(self, user_id: str, last4: str) -> list[Account]:
        """Active accounts whose last-4 identifier equals ``last4``."""

    @abstractmethod
    def find_accounts_by_name(self, user_id: str, name: str) -> list[Account]:
        """Active accounts answering to ``name`` after normalization."""

    @abstractmethod
    def get_account(self, user_id: str, account_id: str) -> Optional[Account]:
        """One account by id, or None."""

    @abstractmethod
    def get_or_create_account(
        self, user_id: str, attrs: dict[str, Any]
    ) -> tuple[Account, bool]:
        """Find an account by display name or create it. Returns (account, created)."""

    @abstractmethod
    def delete_transactions_by_ids(self, ids: list[str]) -> int:
        """Delete rows by id, returning how many were removed."""

    @abstractmethod
    def insert_transactions(self, transactions: list[Transaction]) -> int:
        """Insert rows, returning how many were stored."""

    @abstractmethod
    def set_transfer_link(
        self,
        transaction_id: str,
        link: TransferLink,
        declared_type: Optional[TransactionType] = None,
    ) -> bool:
        """Write the transfer link, and the type when given. False if the row is gone."""

    def apply_plan(self, result: BatchResult) -> dict[str, int]:
        """
        Write a batch plan: delete superseded pending rows, insert accepted
        candidates, then write reciprocal transfer links.

        Stores backed by a transactional engine should override this to run
        all three steps in one transaction.
        """
        deleted = self.delete_transactions_by_ids(result.to_delete) if result.to_delete else 0
        for txn in result.to_insert:
            txn.user_id = txn.user_id or result.user_id
        inserted = self.insert_transactions(result.to_insert) if result.to_insert else 0

        linked = 0
        for update in result.link_updates:
            if self.set_transfer_link(update.transaction_id, update.link, update.declared_type):
                linked += 1
            else:
                logger.warning(
                    f"Transfer counterpart {update.transaction_id} no longer exists, link not written"
                )

        logger.info(
            f"Applied plan for user {result.user_id}: {inserted} inserted, "
            f"{deleted} deleted, {linked} links written"
        )
        return {"inserted": inserted, "deleted": deleted, "linked": linked}
