"""Tests for cross-account transfer matching."""

from ledger_recon.matching import TransferMatcher
from ledger_recon.models import TransactionType, TransferLink
from ledger_recon.store import InMemoryStore


def _checking_leg(txn, day, amount, merchant="ONLINE TRANSFER", **kwargs):
    return txn(day, amount, merchant, account_id="acc-checking", account_name="Checking", **kwargs)


class TestPotentialTransfers:
    """Which candidates trigger a cross-account search."""

    def test_declared_transfer(self, txn, store):
        matcher = TransferMatcher(store)
        assert matcher.is_potential_transfer(txn("2025-04-10", "-5", "X", declared_type="transfer"))

    def test_hint_token_in_merchant_or_description(self, txn, store):
        matcher = TransferMatcher(store)

        assert matcher.is_potential_transfer(txn("2025-04-10", "-5", "Online Transfer"))
        assert matcher.is_potential_transfer(
            txn("2025-04-10", "-5", "ACH", description="Scheduled payment")
        )

    def test_clarification_flag_on_expense(self, txn, store):
        matcher = TransferMatcher(store)
        flagged = txn(
            "2025-04-10", "-5", "ZELLE ALEX", declared_type="expense", needs_clarification=True
        )

        assert matcher.is_potential_transfer(flagged)

    def test_plain_purchase(self, txn, store):
        assert not TransferMatcher(store).is_potential_transfer(txn("2025-04-10", "-5", "Cafe"))


class TestTransferMatching:
    def test_checking_to_savings_links_both_sides(self, txn, stored, store, user_id):
        """-500 in Checking on 04-10 pairs with +500 in Savings on 04-11."""
        savings_leg = stored(
            "2025-04-11", "500.00", "TRANSFER FROM CHECKING",
            account_id="acc-savings", account_name="Savings",
        )
        store.insert_transactions([savings_leg])
        candidate = _checking_leg(txn, "2025-04-10", "-500.00")

        matches, links, warnings = TransferMatcher(store).match(user_id, [candidate])

        assert len(matches) == 1
        assert matches[0].counterpart is savings_leg
        assert matches[0].date_variance_days == 1
        assert candidate.declared_type is TransactionType.TRANSFER
        assert candidate.transfer_link == TransferLink(savings_leg.id, "Savings")
        assert links[0].transaction_id == savings_leg.id
        assert links[0].link == TransferLink(candidate.id, "Checking")
        assert links[0].declared_type is TransactionType.TRANSFER
        assert warnings == []

    def test_no_match_leaves_classification_untouched(self, txn, store, user_id):
        candidate = _checking_leg(txn, "2025-04-10", "-500.00", declared_type="expense")

        matches, links, _ = TransferMatcher(store).match(user_id, [candidate])

        assert matches == [] and links == []
        assert candidate.declared_type is TransactionType.EXPENSE
        assert candidate.transfer_link is None

    def test_outside_window_is_not_linked(self, txn, stored, store, user_id):
        store.insert_transactions(
            [stored("2025-04-14", "500.00", "Deposit", account_id="acc-savings")]
        )
        candidate = _checking_leg(txn, "2025-04-10", "-500.00")

        matches, _, _ = TransferMatcher(store).match(user_id, [candidate])

        assert matches == []

    def test_same_sign_is_not_a_counterpart(self, txn, stored, store, user_id):
        store.insert_transactions(
            [stored("2025-04-10", "-500.00", "Transfer", account_id="acc-savings")]
        )
        candidate = _checking_leg(txn, "2025-04-10", "-500.00")

        matches, _, _ = TransferMatcher(store).match(user_id, [candidate])

        assert matches == []

    def test_same_account_is_not_a_counterpart(self, txn, stored, store, user_id):
        store.insert_transactions(
            [stored("2025-04-10", "500.00", "Reversal", account_id="acc-checking")]
        )
        candidate = _checking_leg(txn, "2025-04-10", "-500.00")

        matches, _, _ = TransferMatcher(store).match(user_id, [candidate])

        assert matches == []

    def test_pending_and_linked_legs_are_not_eligible(self, txn, stored, store, user_id):
        store.insert_transactions(
            [
                stored("2025-04-10", "500.00", "Pending", account_id="acc-savings", is_pending=True),
                stored(
                    "2025-04-10", "500.00", "Linked", account_id="acc-savings",
                    transfer_link=TransferLink("elsewhere", "Brokerage"),
                ),
            ]
        )
        candidate = _checking_leg(txn, "2025-04-10", "-500.00")

        matches, _, _ = TransferMatcher(store).match(user_id, [candidate])

        assert matches == []

    def test_nearest_leg_wins(self, txn, stored, store, user_id):
        near = stored("2025-04-11", "500.00", "Deposit", account_id="acc-savings")
        far = stored("2025-04-13", "500.00", "Deposit", account_id="acc-brokerage")
        store.insert_transactions([far, near])
        candidate = _checking_leg(txn, "2025-04-10", "-500.00")

        matches, _, _ = TransferMatcher(store).match(user_id, [candidate])

        assert matches[0].counterpart is near

    def test_exact_tie_is_left_unlinked(self, txn, stored, store, user_id):
        """Two equally close legs are ambiguous."""
        store.insert_transactions(
            [
                stored("2025-04-11", "500.00", "Deposit", account_id="acc-savings"),
                stored("2025-04-09", "500.00", "Deposit", account_id="acc-brokerage"),
            ]
        )
        candidate = _checking_leg(txn, "2025-04-10", "-500.00")

        matches, links, warnings = TransferMatcher(store).match(user_id, [candidate])

        assert matches == [] and links == []
        assert candidate.transfer_link is None
        assert warnings[0].stage == "transfer"
        assert warnings[0].candidate_id == candidate.id

    def test_counterpart_claimed_once_per_batch(self, txn, stored, store, user_id):
        leg = stored("2025-04-10", "500.00", "Deposit", account_id="acc-savings")
        store.insert_transactions([leg])
        first = _checking_leg(txn, "2025-04-10", "-500.00", merchant="Transfer A")
        second = _checking_leg(txn, "2025-04-10", "-500.00", merchant="Transfer B")

        matches, _, _ = TransferMatcher(store).match(user_id, [first, second])

        assert [m.candidate for m in matches] == [first]
        assert second.transfer_link is None

    def test_zero_amount_never_matches(self, txn, stored, store, user_id):
        store.insert_transactions([stored("2025-04-10", "0", "Transfer", account_id="acc-savings")])
        candidate = _checking_leg(txn, "2025-04-10", "0")

        matches, _, _ = TransferMatcher(store).match(user_id, [candidate])

        assert matches == []

    def test_link_clears_clarification(self, txn, stored, store, user_id):
        store.insert_transactions(
            [stored("2025-04-10", "75.00", "Deposit", account_id="acc-savings")]
        )
        candidate = _checking_leg(
            txn, "2025-04-10", "-75.00", merchant="ZELLE",
            declared_type="expense", needs_clarification=True,
            clarification_question="Was this a transfer to your own account?",
        )

        TransferMatcher(store).match(user_id, [candidate])

        assert candidate.declared_type is TransactionType.TRANSFER
        assert candidate.needs_clarification is False
        assert candidate.clarification_question is None

    def test_other_users_legs_are_invisible(self, txn, store, user_id):
        store.insert_transactions(
            [txn("2025-04-10", "500.00", "Deposit", account_id="acc-x", user_id="someone-else")]
        )
        candidate = _checking_leg(txn, "2025-04-10", "-500.00")

        matches, _, _ = TransferMatcher(store).match(user_id, [candidate])

        assert matches == []


class TestTransferLookupFailures:
    def test_search_failure_is_a_warning(self, txn, flaky_store, user_id):
        store = flaky_store("search_transactions")
        candidate = _checking_leg(txn, "2025-04-10", "-500.00")

        matches, _, warnings = TransferMatcher(store).match(user_id, [candidate])

        assert matches == []
        assert len(warnings) == 1
        assert "unavailable" in warnings[0].message

    def test_search_is_windowed(self, txn, stored, user_id):
        """One bounded query per potential transfer."""
        calls = []

        class RecordingStore(InMemoryStore):
            def search_transactions(self, user_id, account_name=None, start_date=None,
                                    end_date=None, account_id=None):
                calls.append((start_date, end_date))
                return super().search_transactions(
                    user_id, account_name, start_date, end_date, account_id
                )

        candidate = _checking_leg(txn, "2025-04-10", "-500.00")
        TransferMatcher(RecordingStore()).match(user_id, [candidate, txn("2025-04-10", "-3", "Cafe")])

        assert len(calls) == 1
        start, end = calls[0]
        assert (end - start).days == 6
