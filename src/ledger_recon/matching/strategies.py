"""
Matching strategies for ledger reconciliation.
Each strategy decides whether a candidate and a stored transaction describe
the same real-world event (or, for transfers, the two legs of one movement).
"""

from abc import ABC, abstractmethod
from datetime import date
from decimal import Decimal
from difflib import SequenceMatcher
import re

from ..models.transaction import Transaction

CENT = Decimal("0.01")


def normalize_merchant(merchant: str) -> str:
    """Lowercase and collapse whitespace."""
    return re.sub(r"\s+", " ", (merchant or "").strip().lower())


def merchant_tokens(merchant: str) -> list[str]:
    """Alphanumeric words of a merchant string."""
    return re.sub(r"[^a-z0-9]+", " ", (merchant or "").lower()).split()


def merchant_similarity(a: str, b: str) -> float:
    """
    Similarity between two merchant strings in [0, 1].

    Statement descriptors often append a suffix to the authorization-time
    name ("UBER" becomes "UBER *TRIP"), so one name whose words all appear
    in the other scores at least 0.9.
    """
    tokens_a = merchant_tokens(a)
    tokens_b = merchant_tokens(b)
    if not tokens_a or not tokens_b:
        return 0.0

    joined_a = " ".join(tokens_a)
    joined_b = " ".join(tokens_b)
    if joined_a == joined_b:
        return 1.0

    ratio = SequenceMatcher(None, joined_a, joined_b).ratio()

    shorter, longer = sorted((tokens_a, tokens_b), key=len)
    if set(shorter) <= set(longer) and len("".join(shorter)) >= 3:
        ratio = max(ratio, 0.9)
    return ratio


def day_distance(a: date, b: date) -> int:
    return abs((a - b).days)


def same_cents(a: Decimal, b: Decimal) -> bool:
    return a.quantize(CENT) == b.quantize(CENT)


def same_account(a: Transaction, b: Transaction) -> bool:
    """Whether two rows belong to the same account, by id when both have one."""
    if a.account_id and b.account_id:
        return a.account_id == b.account_id
    if a.account_name and b.account_name:
        return a.account_name.strip().lower() == b.account_name.strip().lower()
    return False


class MatchingStrategy(ABC):
    """Abstract base class for matching strategies."""

    name: str = "base"

    @abstractmethod
    def find_matches(
        self,
        candidate: Transaction,
        stored: list[Transaction],
    ) -> list[Transaction]:
        """
        Find stored transactions matching a candidate.

        Args:
            candidate: Incoming transaction
            stored: Stored transactions to compare against

        Returns:
            Matching stored transactions, best first (may be empty)
        """
        pass

    @abstractmethod
    def calculate_match_score(
        self,
        candidate: Transaction,
        matched: Transaction,
    ) -> tuple[float, str]:
        """
        Calculate the confidence score and reason for a match.

        Returns:
            Tuple of (score 0.0-1.0, reason string)
        """
        pass


def _comparable(candidate: Transaction, stored: Transaction) -> bool:
    """Posted candidates never duplicate pending rows; that is reconciliation."""
    if not stored.is_valid:
        return False
    if candidate.external_id and stored.external_id and candidate.external_id != stored.external_id:
        # Distinct provider ids are distinct events
        return False
    return not (stored.is_pending and not candidate.is_pending)


class ExternalIdStrategy(MatchingStrategy):
    """Bank-sync records carrying the same provider transaction id."""

    name = "external_id"

    def find_matches(
        self,
        candidate: Transaction,
        stored: list[Transaction],
    ) -> list[Transaction]:
        if not candidate.external_id:
            return []
        return [t for t in stored if t.is_valid and t.external_id == candidate.external_id][:1]

    def calculate_match_score(
        self,
        candidate: Transaction,
        matched: Transaction,
    ) -> tuple[float, str]:
        return 1.0, f"Same provider transaction id {candidate.external_id}"


class ExactDuplicateStrategy(MatchingStrategy):
    """
    Exact duplicate - identical date, normalized merchant, and amount to the cent.
    Highest confidence tier.
    """

    name = "exact"

    def find_matches(
        self,
        candidate: Transaction,
        stored: list[Transaction],
    ) -> list[Transaction]:
        merchant = normalize_merchant(candidate.merchant)
        for txn in stored:
            if not _comparable(candidate, txn):
                continue
            if (
                txn.date == candidate.date
                and normalize_merchant(txn.merchant) == merchant
                and same_cents(txn.amount, candidate.amount)
            ):
                return [txn]
        return []

    def calculate_match_score(
        self,
        candidate: Transaction,
        matched: Transaction,
    ) -> tuple[float, str]:
        return 1.0, "Exact match on date, merchant, and amount"


class NearDuplicateStrategy(MatchingStrategy):
    """
    Near duplicate - same normalized merchant and amount, date within tolerance.

    Merchant text must be identical after normalization; similar-looking names
    are not enough to drop a transaction.
    """

    name = "near"

    def __init__(self, tolerance_days: int = 2):
        """
        Initialize with date tolerance.

        Args:
            tolerance_days: Maximum days difference allowed
        """
        self.tolerance_days = tolerance_days

    def find_matches(
        self,
        candidate: Transaction,
        stored: list[Transaction],
    ) -> list[Transaction]:
        merchant = normalize_merchant(candidate.merchant)
        if not merchant:
            return []

        matches: list[Transaction] = []
        for txn in stored:
            if not _comparable(candidate, txn):
                continue
            if normalize_merchant(txn.merchant) != merchant:
                continue
            if not same_cents(txn.amount, candidate.amount):
                continue
            if day_distance(txn.date, candidate.date) <= self.tolerance_days:
                matches.append(txn)

        matches.sort(key=lambda t: day_distance(t.date, candidate.date))
        return matches[:1]

    def calculate_match_score(
        self,
        candidate: Transaction,
        matched: Transaction,
    ) -> tuple[float, str]:
        date_diff = day_distance(candidate.date, matched.date)
        score = max(0.8, 1.0 - (date_diff * 0.05))
        return score, f"Merchant and amount match, {date_diff} day(s) date difference"


class PendingPostedStrategy(MatchingStrategy):
    """
    Pending to posted - a posted candidate settling a stored pending row.

    Settlement can lag authorization by several days and the statement
    descriptor often differs slightly from the authorization merchant, so
    this tier uses a wider date window and fuzzy merchant similarity.
    """

    name = "pending_posted"

    def __init__(
        self,
        window_days: int = 5,
        amount_tolerance: Decimal = CENT,
        similarity_threshold: float = 0.8,
    ):
        """
        Initialize with tolerances.

        Args:
            window_days: Maximum days between authorization and settlement
            amount_tolerance: Maximum absolute amount difference (rounding)
            similarity_threshold: Minimum merchant similarity (0.0-1.0)
        """
        self.window_days = window_days
        self.amount_tolerance = amount_tolerance
        self.similarity_threshold = similarity_threshold

    def find_matches(
        self,
        candidate: Transaction,
        stored: list[Transaction],
    ) -> list[Transaction]:
        """Pending rows this candidate could settle, closest date then most similar first."""
        if candidate.is_pending:
            return []

        scored: list[tuple[int, float, Transaction]] = []
        for txn in stored:
            if not txn.is_pending or not txn.is_valid:
                continue
            if abs(txn.amount - candidate.amount) > self.amount_tolerance:
                continue
            date_diff = day_distance(txn.date, candidate.date)
            if date_diff > self.window_days:
                continue
            similarity = merchant_similarity(candidate.merchant, txn.merchant)
            if similarity < self.similarity_threshold:
                continue
            scored.append((date_diff, similarity, txn))

        scored.sort(key=lambda s: (s[0], -s[1]))
        return [txn for _, _, txn in scored]

    def calculate_match_score(
        self,
        candidate: Transaction,
        matched: Transaction,
    ) -> tuple[float, str]:
        date_diff = day_distance(candidate.date, matched.date)
        similarity = merchant_similarity(candidate.merchant, matched.merchant)
        score = 0.5 + (similarity * 0.3) + max(0.0, 0.2 - date_diff * 0.04)
        return score, (
            f"Settles pending row, {date_diff} day(s) later, "
            f"merchant similarity {similarity:.1%}"
        )


class TransferStrategy(MatchingStrategy):
    """
    Transfer leg - equal magnitude, opposite sign, in another account,
    within a short date window.
    """

    name = "transfer"

    def __init__(self, window_days: int = 3, amount_tolerance: Decimal = CENT):
        self.window_days = window_days
        self.amount_tolerance = amount_tolerance

    def find_matches(
        self,
        candidate: Transaction,
        stored: list[Transaction],
    ) -> list[Transaction]:
        """Eligible opposite legs, nearest date first."""
        if not candidate.is_valid or candidate.amount == 0:
            return []

        target = -candidate.amount
        matches: list[Transaction] = []
        for txn in stored:
            if not txn.is_valid or txn.is_pending or txn.transfer_link is not None:
                continue
            if txn.id == candidate.id:
                continue
            if not (txn.account_id or txn.account_name) or same_account(candidate, txn):
                continue
            if abs(txn.amount - target) > self.amount_tolerance:
                continue
            if day_distance(txn.date, candidate.date) <= self.window_days:
                matches.append(txn)

        matches.sort(key=lambda t: day_distance(t.date, candidate.date))
        return matches

    def calculate_match_score(
        self,
        candidate: Transaction,
        matched: Transaction,
    ) -> tuple[float, str]:
        date_diff = day_distance(candidate.date, matched.date)
        score = max(0.7, 1.0 - (date_diff * 0.1))
        return score, (
            f"Opposite leg in {matched.account_label or 'another account'}, "
            f"{date_diff} day(s) apart"
        )
