"""Transaction and account storage contracts."""

from .base import TransactionStore
from .memory import InMemoryStore

__all__ = ["TransactionStore", "InMemoryStore"]
