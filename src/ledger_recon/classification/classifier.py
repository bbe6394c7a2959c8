"""
Canonical transaction classification.

Every aggregate (budgets, net worth, charts) reads income/expense/transfer
through ``classify`` so that a transaction is counted the same way
everywhere.

Rules, in order:

1. A declared ``transfer`` or a likely internal transfer is ``transfer`` and
   excluded from income/expense totals.
2. A declared ``income`` or ``expense`` is used as-is.
3. A declared ``other`` aggregates as ``expense``; the ``other`` label is kept
   for display.
4. Without a declared type the amount sign decides: positive is income,
   negative is expense, zero is ``other`` and excluded.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional, Union
import re

from ..config import ClassifierSettings
from ..models.results import ClassificationResult
from ..models.transaction import Transaction, TransactionType

TransactionLike = Union[Transaction, Mapping[str, Any]]

_DEFAULT_SETTINGS = ClassifierSettings()


def _field(txn: TransactionLike, name: str, *aliases: str) -> Any:
    if isinstance(txn, Mapping):
        for key in (name, *aliases):
            if txn.get(key) is not None:
                return txn[key]
        return None
    return getattr(txn, name, None)


def _text(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return re.sub(r"\s+", " ", value.strip().lower())


def _to_decimal(value: Any) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal("0")


def _contains_token(text: str, token: str) -> bool:
    """Whole-word containment; tokens may span several words."""
    return re.search(rf"(?<![a-z0-9]){re.escape(token)}(?![a-z0-9])", text) is not None


class TransactionClassifier:
    """Classifier bound to one set of keyword settings."""

    def __init__(self, settings: Optional[ClassifierSettings] = None):
        self.settings = settings or _DEFAULT_SETTINGS
        account_types = "|".join(
            re.escape(t) for t in sorted(self.settings.own_account_types, key=len, reverse=True)
        )
        # "transfer to savings", "xfer from chk", "transfer to my checking"
        self._own_account_transfer = re.compile(
            rf"(?<![a-z0-9])(?:transfer|xfer|trf)\s+(?:to|from)\s+(?:my\s+|your\s+)?"
            rf"(?:{account_types})(?![a-z])"
        )

    def is_likely_internal_transfer(self, txn: TransactionLike) -> bool:
        """
        Detect money moving between two of the user's own accounts.

        Merchant text alone only counts when two independent signals agree
        (a payment word plus a card network), or when it names one of the
        user's own account types as the transfer source or destination.
        Peer-to-peer transfers such as "E-TRANSFER FROM JOHN SMITH" do not
        qualify.
        """
        merchant = _text(_field(txn, "merchant"))
        category = _text(_field(txn, "category"))

        if not merchant and not category:
            return False

        if category and any(token in category for token in self.settings.transfer_category_tokens):
            return True

        if not merchant:
            return False

        has_payment_word = any(
            _contains_token(merchant, token) for token in self.settings.payment_tokens
        )
        has_card_context = any(
            _contains_token(merchant, token) for token in self.settings.card_tokens
        )
        if has_payment_word and has_card_context:
            return True

        if any(phrase in merchant for phrase in self.settings.internal_transfer_phrases):
            return True

        return self._own_account_transfer.search(merchant) is not None

    def classify(self, txn: TransactionLike) -> ClassificationResult:
        """Return the canonical type and exclusion flag for one transaction."""
        amount = _to_decimal(_field(txn, "amount"))
        declared = TransactionType.parse(_field(txn, "declared_type", "transaction_type"))

        if declared is TransactionType.TRANSFER or self.is_likely_internal_transfer(txn):
            return self._result(TransactionType.TRANSFER, True, amount)

        if declared in (TransactionType.INCOME, TransactionType.EXPENSE):
            return self._result(declared, False, amount)

        if declared is TransactionType.OTHER:
            return self._result(TransactionType.EXPENSE, False, amount, label=TransactionType.OTHER)

        if amount > 0:
            return self._result(TransactionType.INCOME, False, amount)
        if amount < 0:
            return self._result(TransactionType.EXPENSE, False, amount)
        return self._result(TransactionType.OTHER, True, amount)

    @staticmethod
    def _result(
        txn_type: TransactionType,
        excluded: bool,
        amount: Decimal,
        label: Optional[TransactionType] = None,
    ) -> ClassificationResult:
        return ClassificationResult(
            type=txn_type,
            is_excluded=excluded,
            label=label or txn_type,
            amount=amount,
            abs_amount=abs(amount),
        )


_default_classifier = TransactionClassifier()


def _classifier_for(settings: Optional[ClassifierSettings]) -> TransactionClassifier:
    if settings is None:
        return _default_classifier
    return TransactionClassifier(settings)


def classify(
    txn: TransactionLike, settings: Optional[ClassifierSettings] = None
) -> ClassificationResult:
    """Classify a transaction or a mapping with the same field names."""
    return _classifier_for(settings).classify(txn)


def is_likely_internal_transfer(
    txn: TransactionLike, settings: Optional[ClassifierSettings] = None
) -> bool:
    return _classifier_for(settings).is_likely_internal_transfer(txn)


def is_income(txn: TransactionLike) -> bool:
    result = classify(txn)
    return result.type is TransactionType.INCOME and not result.is_excluded


def is_expense(txn: TransactionLike) -> bool:
    result = classify(txn)
    return result.type is TransactionType.EXPENSE and not result.is_excluded


def is_expense_like(txn: TransactionLike) -> bool:
    """Expense or other, excluding transfers. Used by recurring-charge detection."""
    result = classify(txn)
    return (
        result.type in (TransactionType.EXPENSE, TransactionType.OTHER)
        and not result.is_excluded
    )


def is_transfer(txn: TransactionLike) -> bool:
    result = classify(txn)
    return result.type is TransactionType.TRANSFER or result.is_excluded
