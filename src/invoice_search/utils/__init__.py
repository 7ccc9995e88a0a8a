"""Utility modules for invoice search."""

from .text_processing import TextProcessor, preserve_case, build_searchable_text
from .validators import validate_invoice, validate_invoices_batch, validate_filters
from .logging_config import setup_logging, StructuredLogger

__all__ = [
    "TextProcessor",
    "preserve_case",
    "build_searchable_text",
    "validate_invoice",
    "validate_invoices_batch",
    "validate_filters",
    "setup_logging",
    "StructuredLogger",
]
