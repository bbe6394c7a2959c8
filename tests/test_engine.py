"""End-to-end tests for batch reconciliation."""

from decimal import Decimal

from ledger_recon import classify, reconcile_batch
from ledger_recon.config import ReconConfig
from ledger_recon.matching import ReconciliationEngine
from ledger_recon.models import (
    Account,
    AccountContext,
    DuplicateKind,
    ResolutionStatus,
    SourceType,
    TransactionType,
)
from ledger_recon.store import InMemoryStore

CHECKING = AccountContext(last4="1111")
SAVINGS = AccountContext(last4="2222")


def _statement(txn):
    """A small checking statement: one settled pending row, one transfer, one purchase."""
    return [
        txn("2025-03-03", "-12.50", "UBER *TRIP"),
        txn("2025-03-04", "-500.00", "ONLINE TRANSFER"),
        txn("2025-03-05", "-64.20", "Trader Joe's"),
    ]


class TestReconcileBatch:
    def test_uber_pending_row_is_replaced(self, txn, stored, store, user_id, checking):
        pending = stored(
            "2025-03-01", "-12.50", "UBER", is_pending=True,
            account_id=checking.id, account_name=checking.display_name,
        )
        store.insert_transactions([pending])
        candidate = txn("2025-03-03", "-12.50", "UBER *TRIP")

        result = ReconciliationEngine(store).reconcile_batch(user_id, CHECKING, [candidate])

        assert result.to_delete == [pending.id]
        assert result.to_insert == [candidate]
        assert candidate.reconciled_from_id == pending.id
        assert result.pending_reconciled == 1
        assert result.net_new == 0

    def test_posted_row_is_not_dropped_as_near_duplicate_of_pending(
        self, txn, stored, store, user_id, checking
    ):
        pending = stored(
            "2025-03-01", "-12.50", "UBER", is_pending=True, account_id=checking.id
        )
        store.insert_transactions([pending])
        candidate = txn("2025-03-02", "-12.50", "UBER")

        result = ReconciliationEngine(store).reconcile_batch(user_id, CHECKING, [candidate])

        assert result.to_insert == [candidate]
        assert result.duplicates == []
        assert result.to_delete == [pending.id]

    def test_transfer_is_linked_symmetrically(self, txn, stored, store, user_id, savings):
        """Checking -500 on 04-10 and Savings +500 on 04-11 point at each other."""
        leg_b = stored(
            "2025-04-11", "500.00", "TRANSFER FROM CHECKING",
            account_id=savings.id, account_name=savings.display_name,
        )
        store.insert_transactions([leg_b])
        leg_a = txn("2025-04-10", "-500.00", "ONLINE TRANSFER")

        result = ReconciliationEngine(store).reconcile_batch(user_id, CHECKING, [leg_a])
        store.apply_plan(result)

        assert result.transfers_linked == 1
        stored_a = store.get_transaction(user_id, leg_a.id)
        stored_b = store.get_transaction(user_id, leg_b.id)
        assert stored_a.transfer_link.matched_transfer_id == leg_b.id
        assert stored_a.transfer_link.matched_account_name == "Savings"
        assert stored_b.transfer_link.matched_transfer_id == leg_a.id
        assert stored_b.transfer_link.matched_account_name == "Checking"
        assert stored_a.declared_type is TransactionType.TRANSFER
        assert stored_b.declared_type is TransactionType.TRANSFER
        assert classify(stored_b).is_excluded

    def test_two_stored_duplicates_give_zero_inserts(self, txn, stored, store, user_id, checking):
        store.insert_transactions(
            [
                stored("2025-03-05", "-64.20", "Trader Joe's", account_id=checking.id),
                stored("2025-03-06", "-9.99", "Netflix", account_id=checking.id),
            ]
        )
        candidates = [
            txn("2025-03-05", "-64.20", "TRADER JOE'S"),
            txn("2025-03-06", "-9.99", "Netflix"),
        ]

        result = ReconciliationEngine(store).reconcile_batch(user_id, CHECKING, candidates)

        assert result.to_insert == []
        assert result.duplicates_skipped == 2
        assert len(result.duplicate_examples) == 2
        assert all(d.kind is DuplicateKind.EXACT for d in result.duplicates)

    def test_rerun_is_idempotent(self, txn, stored, store, user_id, checking, savings):
        """Re-running a batch against its own applied output inserts nothing."""
        store.insert_transactions(
            [
                stored("2025-03-01", "-12.50", "UBER", is_pending=True, account_id=checking.id),
                stored("2025-03-05", "500.00", "DEPOSIT", account_id=savings.id),
            ]
        )
        engine = ReconciliationEngine(store)

        first = engine.reconcile_batch(user_id, CHECKING, _statement(txn))
        store.apply_plan(first)
        second = engine.reconcile_batch(user_id, CHECKING, _statement(txn))

        assert len(first.to_insert) == 3
        assert first.pending_reconciled == 1
        assert first.transfers_linked == 1
        assert second.to_insert == []
        assert second.to_delete == []
        assert second.link_updates == []
        assert second.duplicates_skipped == 3

    def test_same_batch_repeat_is_dropped(self, txn, store, user_id):
        candidates = [txn("2025-03-05", "-4.50", "Cafe"), txn("2025-03-05", "-4.50", "Cafe")]

        result = ReconciliationEngine(store).reconcile_batch(user_id, CHECKING, candidates)

        assert result.to_insert == [candidates[0]]
        assert result.duplicates[0].kind is DuplicateKind.SAME_BATCH

    def test_insert_order_follows_input(self, txn, store, user_id):
        candidates = [
            txn("2025-03-09", "-1.00", "C"),
            txn("2025-03-01", "-2.00", "A"),
            txn("2025-03-05", "-3.00", "B"),
        ]

        result = ReconciliationEngine(store).reconcile_batch(user_id, CHECKING, candidates)

        assert result.to_insert == candidates

    def test_candidates_are_stamped(self, txn, store, user_id, checking):
        candidate = txn("2025-03-05", "1500.00", "ACME PAYROLL")

        result = ReconciliationEngine(store).reconcile_batch(user_id, CHECKING, [candidate])

        inserted = result.to_insert[0]
        assert inserted.account_id == checking.id
        assert inserted.account_name == checking.display_name
        assert inserted.user_id == user_id
        assert inserted.declared_type is TransactionType.INCOME
        assert inserted.raw_data["declared_type"] is None

    def test_declared_other_is_preserved(self, txn, store, user_id):
        candidate = txn("2025-03-05", "-3.00", "Fee", declared_type="other")

        result = ReconciliationEngine(store).reconcile_batch(user_id, CHECKING, [candidate])

        assert result.to_insert[0].declared_type is TransactionType.OTHER

    def test_convenience_function(self, txn, store, user_id):
        result = reconcile_batch(store, user_id, CHECKING, [txn("2025-03-05", "-3.00", "Fee")])

        assert len(result.to_insert) == 1


class TestMalformedCandidates:
    def test_missing_fields_are_rejected_individually(self, txn, store, user_id):
        good = txn("2025-03-05", "-3.00", "Fee")
        no_date = txn(None, "-3.00", "Fee")
        no_amount = txn("2025-03-05", None, "Fee")

        result = ReconciliationEngine(store).reconcile_batch(
            user_id, CHECKING, [no_date, good, no_amount]
        )

        assert result.to_insert == [good]
        assert [r.candidate for r in result.rejected] == [no_date, no_amount]
        assert "date" in result.rejected[0].reason
        assert "amount" in result.rejected[1].reason

    def test_all_rejected(self, txn, store, user_id):
        result = ReconciliationEngine(store).reconcile_batch(
            user_id, CHECKING, [txn(None, None, "Junk")]
        )

        assert result.to_insert == []
        assert len(result.rejected) == 1


class TestAccountOutcomes:
    def test_disambiguation_holds_the_batch(self, txn, user_id):
        store = InMemoryStore(
            accounts=[
                Account(user_id=user_id, display_name="Personal", last4="4321"),
                Account(user_id=user_id, display_name="Business", last4="4321"),
            ]
        )
        candidates = [txn("2025-03-05", "-3.00", "Fee")]

        result = ReconciliationEngine(store).reconcile_batch(
            user_id, AccountContext(last4="4321"), candidates
        )

        assert result.needs_account_selection
        assert result.account_resolution.status is ResolutionStatus.NEEDS_DISAMBIGUATION
        assert result.held == candidates
        assert result.to_insert == []

    def test_selection_releases_the_batch(self, txn, user_id):
        business = Account(user_id=user_id, display_name="Business", last4="4321")
        store = InMemoryStore(
            accounts=[Account(user_id=user_id, display_name="Personal", last4="4321"), business]
        )
        context = AccountContext(last4="4321", account_id=business.id)

        result = ReconciliationEngine(store).reconcile_batch(
            user_id, context, [txn("2025-03-05", "-3.00", "Fee")]
        )

        assert not result.needs_account_selection
        assert result.to_insert[0].account_id == business.id

    def test_screenshot_without_name_is_deferred(self, txn, store, user_id):
        context = AccountContext(source_type=SourceType.SCREENSHOT)

        result = ReconciliationEngine(store).reconcile_batch(
            user_id, context, [txn("2025-03-05", "-3.00", "Fee")]
        )

        assert result.account_resolution.status is ResolutionStatus.DEFERRED
        assert len(result.held) == 1

    def test_new_last4_creates_account(self, txn, store, user_id):
        result = ReconciliationEngine(store).reconcile_batch(
            user_id, AccountContext(last4="9999"), [txn("2025-03-05", "-3.00", "Fee")]
        )

        assert result.account_resolution.status is ResolutionStatus.CREATED
        assert result.to_insert[0].account_name == "Account ****9999"

    def test_account_creation_failure_fails_open(self, txn, flaky_store, user_id):
        store = flaky_store("get_or_create_account")
        candidate = txn("2025-03-05", "-3.00", "Fee")

        result = ReconciliationEngine(store).reconcile_batch(
            user_id, AccountContext(last4="9999"), [candidate]
        )

        assert result.to_insert == [candidate]
        assert candidate.account_id is None
        assert candidate.account_name == "Account ****9999"
        assert result.warnings[0].stage == "account"

    def test_without_context_rows_keep_their_accounts(self, txn, stored, store, user_id):
        store.insert_transactions(
            [stored("2025-03-05", "-3.00", "Fee", account_name="Wallet")]
        )
        repeat = txn("2025-03-05", "-3.00", "Fee", account_name="Wallet")
        elsewhere = txn("2025-03-05", "-3.00", "Fee", account_name="Visa")

        result = ReconciliationEngine(store).reconcile_batch(user_id, None, [repeat, elsewhere])

        assert result.account_resolution is None
        assert result.to_insert == [elsewhere]


class TestLookupFailures:
    """Store failures degrade to 'no match' with a warning per candidate."""

    def test_search_failure_keeps_candidates(self, txn, stored, flaky_store, user_id, checking):
        existing = stored("2025-03-05", "-3.00", "Fee", account_id=checking.id)
        store = flaky_store("search_transactions", "get_pending_transactions",
                            transactions=[existing])
        candidate = txn("2025-03-05", "-3.00", "Fee")

        result = ReconciliationEngine(store).reconcile_batch(user_id, CHECKING, [candidate])

        assert result.to_insert == [candidate]
        stages = {w.stage for w in result.warnings if w.candidate_id == candidate.id}
        assert stages == {"duplicates", "pending"}

    def test_pending_failure_still_dedupes(self, txn, stored, flaky_store, user_id, checking):
        existing = stored("2025-03-05", "-3.00", "Fee", account_id=checking.id)
        store = flaky_store("get_pending_transactions", transactions=[existing])

        result = ReconciliationEngine(store).reconcile_batch(
            user_id, CHECKING, [txn("2025-03-05", "-3.00", "Fee")]
        )

        assert result.to_insert == []
        assert result.duplicates_skipped == 1
        assert [w.stage for w in result.warnings] == ["pending"]


class TestConfiguration:
    def test_pending_reconciliation_disabled(self, txn, stored, store, user_id, checking):
        config = ReconConfig()
        config.pending.enabled = False
        pending = stored("2025-03-01", "-12.50", "UBER", is_pending=True, account_id=checking.id)
        store.insert_transactions([pending])

        result = ReconciliationEngine(store, config).reconcile_batch(
            user_id, CHECKING, [txn("2025-03-03", "-12.50", "UBER *TRIP")]
        )

        assert result.to_delete == []
        assert len(result.to_insert) == 1

    def test_transfers_disabled(self, txn, stored, store, user_id, savings):
        config = ReconConfig()
        config.transfers.enabled = False
        store.insert_transactions(
            [stored("2025-04-10", "500.00", "Deposit", account_id=savings.id)]
        )

        result = ReconciliationEngine(store, config).reconcile_batch(
            user_id, CHECKING, [txn("2025-04-10", "-500.00", "ONLINE TRANSFER")]
        )

        assert result.transfers_linked == 0

    def test_max_examples(self, txn, stored, store, user_id, checking):
        config = ReconConfig()
        config.duplicates.max_examples = 1
        store.insert_transactions(
            [stored(f"2025-03-0{d}", "-1.00", "Fee", account_id=checking.id) for d in (1, 2, 3)]
        )
        candidates = [txn(f"2025-03-0{d}", "-1.00", "Fee") for d in (1, 2, 3)]

        result = ReconciliationEngine(store, config).reconcile_batch(user_id, CHECKING, candidates)

        assert result.duplicates_skipped == 3
        assert len(result.duplicate_examples) == 1


class TestApplyPlan:
    def test_apply_plan_counts(self, txn, stored, store, user_id, checking):
        pending = stored("2025-03-01", "-12.50", "UBER", is_pending=True, account_id=checking.id)
        store.insert_transactions([pending])
        candidates = [txn("2025-03-03", "-12.50", "UBER *TRIP"), txn("2025-03-04", "-2", "Gum")]
        result = ReconciliationEngine(store).reconcile_batch(user_id, CHECKING, candidates)

        counts = store.apply_plan(result)

        assert counts == {"inserted": 2, "deleted": 1, "linked": 0}
        assert store.get_transaction(user_id, pending.id) is None
        assert sum(t.amount for t in store.all_transactions(user_id)) == Decimal("-14.50")

    def test_zero_amount_row_stays_excluded_once_stored(self, txn, store, user_id):
        """A card verification hold keeps its other/excluded type after storage."""
        candidate = txn("2025-03-05", "0.00", "CARD VERIFICATION")
        before = classify(candidate)

        result = ReconciliationEngine(store).reconcile_batch(user_id, CHECKING, [candidate])
        store.apply_plan(result)
        after = classify(store.get_transaction(user_id, candidate.id))

        assert before.type is TransactionType.OTHER and before.is_excluded
        assert after.type is TransactionType.OTHER
        assert after.is_excluded
        assert candidate.declared_type is None
