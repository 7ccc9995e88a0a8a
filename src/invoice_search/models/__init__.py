"""Data models for invoice search system."""

from .invoice import Invoice, InvoiceItem, InvoiceModel, InvoiceItemModel
from .query import (
    AmountRange,
    DateRange,
    PreprocessedQuery,
    SearchCriteria,
    SearchFilters,
    SearchFiltersModel,
)
from .result import CacheStats, FuzzyMatchResult, InvoiceRow, PhoneticCandidate, SearchResult

__all__ = [
    "Invoice",
    "InvoiceItem",
    "InvoiceModel",
    "InvoiceItemModel",
    "AmountRange",
    "DateRange",
    "PreprocessedQuery",
    "SearchCriteria",
    "SearchFilters",
    "SearchFiltersModel",
    "CacheStats",
    "FuzzyMatchResult",
    "InvoiceRow",
    "PhoneticCandidate",
    "SearchResult",
]
