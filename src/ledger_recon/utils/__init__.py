"""Utility modules."""

from .exceptions import (
    ReconciliationError,
    CandidateParseError,
    ConfigurationError,
    StoreLookupError,
    AccountResolutionError,
    ReportGenerationError,
)
from .logging_config import setup_logging, get_logger

__all__ = [
    "ReconciliationError",
    "CandidateParseError",
    "ConfigurationError",
    "StoreLookupError",
    "AccountResolutionError",
    "ReportGenerationError",
    "setup_logging",
    "get_logger",
]
