"""Canonical income/expense/transfer/other classification."""

from .classifier import (
    TransactionClassifier,
    classify,
    is_expense,
    is_expense_like,
    is_income,
    is_likely_internal_transfer,
    is_transfer,
)

__all__ = [
    "TransactionClassifier",
    "classify",
    "is_expense",
    "is_expense_like",
    "is_income",
    "is_likely_internal_transfer",
    "is_transfer",
]
