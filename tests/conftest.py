"""Test fixtures and utilities."""

from datetime import date
from decimal import Decimal

import pytest

from ledger_recon.config import ReconConfig
from ledger_recon.models import Account, Transaction
from ledger_recon.store import InMemoryStore
from ledger_recon.utils.exceptions import StoreLookupError

USER_ID = "user-1"


def make_txn(day: str, amount, merchant: str = "", **kwargs) -> Transaction:
    """Build a transaction from an ISO date and a str/Decimal amount."""
    return Transaction(
        date=date.fromisoformat(day) if day else None,
        amount=Decimal(str(amount)) if amount is not None else None,
        merchant=merchant,
        **kwargs,
    )


class FlakyStore(InMemoryStore):
    """In-memory store whose named methods raise StoreLookupError."""

    def __init__(self, *args, failing=(), **kwargs):
        super().__init__(*args, **kwargs)
        self.failing = set(failing)
        self.calls: list[str] = []

    def _check(self, name: str) -> None:
        self.calls.append(name)
        if name in self.failing:
            raise StoreLookupError(f"{name} unavailable")

    def search_transactions(self, *args, **kwargs):
        self._check("search_transactions")
        return super().search_transactions(*args, **kwargs)

    def get_pending_transactions(self, *args, **kwargs):
        self._check("get_pending_transactions")
        return super().get_pending_transactions(*args, **kwargs)

    def find_accounts_by_last4(self, *args, **kwargs):
        self._check("find_accounts_by_last4")
        return super().find_accounts_by_last4(*args, **kwargs)

    def find_accounts_by_name(self, *args, **kwargs):
        self._check("find_accounts_by_name")
        return super().find_accounts_by_name(*args, **kwargs)

    def get_or_create_account(self, *args, **kwargs):
        self._check("get_or_create_account")
        return super().get_or_create_account(*args, **kwargs)


@pytest.fixture
def user_id() -> str:
    return USER_ID


@pytest.fixture
def txn():
    """Factory for transactions: txn("2025-03-01", "-12.50", "UBER", is_pending=True)."""
    return make_txn


@pytest.fixture
def config() -> ReconConfig:
    return ReconConfig()


@pytest.fixture
def checking() -> Account:
    return Account(
        user_id=USER_ID,
        display_name="Checking",
        official_name="Everyday Checking",
        last4="1111",
        account_type="checking",
        id="acc-checking",
    )


@pytest.fixture
def savings() -> Account:
    return Account(
        user_id=USER_ID,
        display_name="Savings",
        official_name="High Yield Savings",
        last4="2222",
        account_type="savings",
        id="acc-savings",
    )


@pytest.fixture
def store(checking, savings) -> InMemoryStore:
    """Empty ledger with a checking and a savings account."""
    return InMemoryStore(accounts=[checking, savings])


@pytest.fixture
def flaky_store(checking, savings):
    """Factory for a store whose named methods fail."""

    def _make(*failing: str, transactions=None) -> FlakyStore:
        return FlakyStore(
            transactions=transactions,
            accounts=[checking, savings],
            failing=failing,
        )

    return _make


@pytest.fixture
def stored(txn, user_id):
    """Factory for stored rows owned by the test user."""

    def _make(day: str, amount, merchant: str = "", **kwargs) -> Transaction:
        kwargs.setdefault("user_id", user_id)
        return txn(day, amount, merchant, **kwargs)

    return _make
