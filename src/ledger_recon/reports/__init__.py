"""Excel audit reports."""

from .excel_generator import ExcelReportGenerator

__all__ = ["ExcelReportGenerator"]
