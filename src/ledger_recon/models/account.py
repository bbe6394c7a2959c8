"""Account entities and account resolution results."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional
import re
import uuid


class AccountSource(Enum):
    """Provenance of an account record."""

    SYNC = "sync"
    STATEMENT = "statement"
    MANUAL = "manual"


class SourceType(Enum):
    """Kind of ingestion event that produced a batch."""

    STATEMENT = "statement"
    SCREENSHOT = "screenshot"
    SYNC = "sync"


def normalize_account_name(name: Optional[str]) -> str:
    """Case-fold and collapse whitespace for name comparisons."""
    if not name:
        return ""
    return re.sub(r"\s+", " ", name.strip()).casefold()


@dataclass
class Account:
    """A user's financial account. Created lazily, never deleted here."""

    user_id: str
    display_name: str
    official_name: Optional[str] = None
    alias: Optional[str] = None
    last4: Optional[str] = None
    account_type: Optional[str] = None
    issuer: Optional[str] = None
    source: AccountSource = AccountSource.STATEMENT
    external_account_id: Optional[str] = None
    is_active: bool = True
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def name_keys(self) -> set[str]:
        """Normalized names this account answers to."""
        keys = {
            normalize_account_name(n)
            for n in (self.display_name, self.official_name, self.alias)
        }
        keys.discard("")
        return keys


@dataclass
class AccountContext:
    """
    Account information extracted alongside a batch of candidates.

    ``account_id`` is set when the user has already chosen an account, for
    example after answering a disambiguation prompt.
    """

    last4: Optional[str] = None
    official_name: Optional[str] = None
    account_number: Optional[str] = None
    account_id: Optional[str] = None
    issuer: Optional[str] = None
    account_type: Optional[str] = None
    source_type: SourceType = SourceType.STATEMENT

    @property
    def effective_last4(self) -> Optional[str]:
        """Explicit last-4, else the last four digits of the account number."""
        if self.last4:
            digits = re.sub(r"\D", "", self.last4)
            return digits[-4:] if digits else None
        if self.account_number:
            digits = re.sub(r"\D", "", self.account_number)
            if len(digits) >= 4:
                return digits[-4:]
        return None


class ResolutionStatus(Enum):
    """Outcome of account resolution."""

    RESOLVED = "resolved"
    CREATED = "created"
    NEEDS_DISAMBIGUATION = "needs_disambiguation"
    DEFERRED = "deferred"


@dataclass
class AccountResolution:
    """Result of matching extracted account details against known accounts."""

    status: ResolutionStatus
    account: Optional[Account] = None
    candidates: list[Account] = field(default_factory=list)
    reason: str = ""
    # Lookup problems that were tolerated on the way to this outcome
    warnings: list[str] = field(default_factory=list)

    @property
    def is_resolved(self) -> bool:
        return self.status in (ResolutionStatus.RESOLVED, ResolutionStatus.CREATED)

    @property
    def needs_selection(self) -> bool:
        """Whether the caller must prompt the user to pick an account."""
        return self.status in (
            ResolutionStatus.NEEDS_DISAMBIGUATION,
            ResolutionStatus.DEFERRED,
        )
