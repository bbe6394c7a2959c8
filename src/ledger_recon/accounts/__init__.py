"""Account resolution."""

from .resolver import AccountResolver

__all__ = ["AccountResolver"]
