"""Loaders for candidate, ledger and account CSV files."""

from .csv_loader import CsvLoader

__all__ = ["CsvLoader"]
