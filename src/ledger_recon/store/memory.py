"""In-memory transaction store used by the CLI and the test suite."""

from collections import defaultdict
from datetime import date
from typing import Any, Iterable, Optional
import logging
import threading

from ..models.account import Account, AccountSource, normalize_account_name
from ..models.results import BatchResult
from ..models.transaction import Transaction, TransactionType, TransferLink
from .base import TransactionStore

logger = logging.getLogger(__name__)


class InMemoryStore(TransactionStore):
    """
    Dict-backed store keyed by user id.

    All mutations take a re-entrant lock, so ``apply_plan`` writes a whole
    batch plan without interleaving with another writer.
    """

    def __init__(
        self,
        transactions: Optional[Iterable[Transaction]] = None,
        accounts: Optional[Iterable[Account]] = None,
    ):
        self._transactions: dict[str, dict[str, Transaction]] = defaultdict(dict)
        self._accounts: dict[str, dict[str, Account]] = defaultdict(dict)
        self._lock = threading.RLock()

        for account in accounts or []:
            self._accounts[account.user_id][account.id] = account
        for txn in transactions or []:
            if not txn.user_id:
                raise ValueError(f"Stored transaction {txn.id} has no user_id")
            self._transactions[txn.user_id][txn.id] = txn

    # Reads

    def all_transactions(self, user_id: str) -> list[Transaction]:
        with self._lock:
            return sorted(
                self._transactions.get(user_id, {}).values(),
                key=lambda t: (t.date or date.min, t.id),
            )

    def all_accounts(self, user_id: str) -> list[Account]:
        with self._lock:
            return list(self._accounts.get(user_id, {}).values())

    def get_transaction(self, user_id: str, transaction_id: str) -> Optional[Transaction]:
        with self._lock:
            return self._transactions.get(user_id, {}).get(transaction_id)

    def search_transactions(
        self,
        user_id: str,
        account_name: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        account_id: Optional[str] = None,
    ) -> list[Transaction]:
        name_filter = account_name.lower() if account_name else None
        results = []
        for txn in self.all_transactions(user_id):
            if account_id and txn.account_id != account_id:
                continue
            if name_filter and name_filter not in (txn.account_name or "").lower():
                continue
            if start_date and (txn.date is None or txn.date < start_date):
                continue
            if end_date and (txn.date is None or txn.date > end_date):
                continue
            results.append(txn)
        # Newest first, like the hosted store
        results.sort(key=lambda t: t.date or date.min, reverse=True)
        return results

    def get_pending_transactions(
        self,
        user_id: str,
        account_id: Optional[str],
        start_date: date,
        end_date: date,
    ) -> list[Transaction]:
        return [
            t
            for t in self.search_transactions(
                user_id, start_date=start_date, end_date=end_date, account_id=account_id
            )
            if t.is_pending
        ]

    def find_accounts_by_last4(self, user_id: str, last4: str) -> list[Account]:
        return [a for a in self.all_accounts(user_id) if a.is_active and a.last4 == last4]

    def find_accounts_by_name(self, user_id: str, name: str) -> list[Account]:
        key = normalize_account_name(name)
        if not key:
            return []
        return [a for a in self.all_accounts(user_id) if a.is_active and key in a.name_keys()]

    def get_account(self, user_id: str, account_id: str) -> Optional[Account]:
        with self._lock:
            return self._accounts.get(user_id, {}).get(account_id)

    # Writes

    def get_or_create_account(
        self, user_id: str, attrs: dict[str, Any]
    ) -> tuple[Account, bool]:
        display_name = attrs["display_name"]
        with self._lock:
            for account in self._accounts[user_id].values():
                if account.display_name == display_name:
                    return account, False

            source = attrs.get("source", AccountSource.STATEMENT)
            account = Account(
                user_id=user_id,
                display_name=display_name,
                official_name=attrs.get("official_name"),
                alias=attrs.get("alias") or display_name,
                last4=attrs.get("last4"),
                account_type=attrs.get("account_type"),
                issuer=attrs.get("issuer"),
                source=source if isinstance(source, AccountSource) else AccountSource(source),
                external_account_id=attrs.get("external_account_id"),
            )
            self._accounts[user_id][account.id] = account
            logger.debug(f"Created account {account.id} ({display_name}) for user {user_id}")
            return account, True

    def delete_transactions_by_ids(self, ids: list[str]) -> int:
        wanted = set(ids)
        deleted = 0
        with self._lock:
            for rows in self._transactions.values():
                for txn_id in wanted & rows.keys():
                    del rows[txn_id]
                    deleted += 1
        return deleted

    def insert_transactions(self, transactions: list[Transaction]) -> int:
        with self._lock:
            for txn in transactions:
                if not txn.user_id:
                    raise ValueError(f"Transaction {txn.id} has no user_id")
                self._transactions[txn.user_id][txn.id] = txn
        return len(transactions)

    def set_transfer_link(
        self,
        transaction_id: str,
        link: TransferLink,
        declared_type: Optional[TransactionType] = None,
    ) -> bool:
        with self._lock:
            for rows in self._transactions.values():
                txn = rows.get(transaction_id)
                if txn is not None:
                    txn.transfer_link = link
                    if declared_type is not None:
                        txn.declared_type = declared_type
                    return True
        return False

    def apply_plan(self, result: BatchResult) -> dict[str, int]:
        with self._lock:
            return super().apply_plan(result)
