"""
Invoice Search

Natural-language search over purchase invoices: free-form queries are
corrected against the live vendor and product vocabulary, turned into date
and amount filters, and ranked by embedding similarity.
"""

from .api.service import InvoiceSearchService
from .config import SearchSettings
from .core.engine import HybridSearchEngine
from .core.preprocessing import QueryPreprocessor
from .models.invoice import Invoice, InvoiceItem
from .models.query import PreprocessedQuery, SearchFilters
from .models.result import SearchResult

__version__ = "1.0.0"

__all__ = [
    "InvoiceSearchService",
    "HybridSearchEngine",
    "QueryPreprocessor",
    "SearchSettings",
    "Invoice",
    "InvoiceItem",
    "PreprocessedQuery",
    "SearchFilters",
    "SearchResult",
]
