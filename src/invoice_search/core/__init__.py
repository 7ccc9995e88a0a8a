"""Core components for invoice search."""

from .exceptions import (
    InvoiceSearchError,
    ValidationError,
    ConfigurationError,
    EmbeddingError,
    StoreError,
    PhoneticUnavailableError,
    SearchError
)
from .preprocessing import QueryPreprocessor
from .vocabulary import VocabularyCache
from .fuzzy import FuzzyEntityCorrector
from .embeddings import EmbeddingGateway, HashingEmbeddingGateway, GeminiEmbeddingGateway
from .engine import HybridSearchEngine

__all__ = [
    "HybridSearchEngine",
    "QueryPreprocessor",
    "VocabularyCache",
    "FuzzyEntityCorrector",
    "EmbeddingGateway",
    "HashingEmbeddingGateway",
    "GeminiEmbeddingGateway",
    "InvoiceSearchError",
    "ValidationError",
    "ConfigurationError",
    "EmbeddingError",
    "StoreError",
    "PhoneticUnavailableError",
    "SearchError"
]
