"""Custom exceptions for the ledger reconciliation package."""


class ReconciliationError(Exception):
    """Base exception for reconciliation errors."""

    pass


class CandidateParseError(ReconciliationError):
    """Error reading a candidate, ledger or account file."""

    pass


class ConfigurationError(ReconciliationError):
    """Error in configuration."""

    pass


class StoreLookupError(ReconciliationError):
    """A read against the transaction or account store failed."""

    pass


class AccountResolutionError(ReconciliationError):
    """An account could neither be found nor created."""

    pass


class ReportGenerationError(ReconciliationError):
    """Error generating Excel report."""

    pass
