"""High-level API service for invoice search."""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import date
from decimal import Decimal
from typing import Any, AsyncIterator, Dict, List, Optional

import numpy as np
from pydantic import ValidationError as PydanticValidationError

from ..config import SearchSettings
from ..core.embeddings import EmbeddingGateway, GeminiEmbeddingGateway, HashingEmbeddingGateway
from ..core.engine import HybridSearchEngine
from ..core.exceptions import (
    ConfigurationError,
    EmbeddingError,
    InvoiceSearchError,
    SearchError,
    ValidationError,
)
from ..core.fuzzy import FuzzyEntityCorrector
from ..core.preprocessing import QueryPreprocessor
from ..core.vocabulary import VocabularyCache
from ..models.invoice import Invoice
from ..models.query import SearchFilters, SearchFiltersModel
from ..models.result import SearchResult
from ..store.base import InvoiceStore
from ..store.memory import InMemoryInvoiceStore
from ..store.postgres import PostgresInvoiceStore
from ..utils.logging_config import setup_logging
from ..utils.text_processing import build_searchable_text

logger = logging.getLogger(__name__)


def build_store(settings: SearchSettings) -> InvoiceStore:
    """PostgreSQL when a database URL is configured, in-memory otherwise."""
    if settings.database_url:
        return PostgresInvoiceStore(settings.database_url)
    return InMemoryInvoiceStore()


def build_embeddings(settings: SearchSettings) -> EmbeddingGateway:
    if settings.embedding_backend == "gemini":
        return GeminiEmbeddingGateway(
            api_key=settings.gemini_api_key,
            model=settings.embedding_model,
            timeout=settings.embedding_timeout_seconds
        )
    if settings.embedding_backend == "hashing":
        return HashingEmbeddingGateway(dimension=settings.embedding_dimension)
    raise ConfigurationError(f"Unknown embedding backend: {settings.embedding_backend}")


class InvoiceSearchService:
    """
    Caller-facing facade over the hybrid search engine.

    Owns the store, the embedding gateway and the vocabulary cache, and
    exposes search, cache statistics and embedding maintenance.
    """

    def __init__(
        self,
        settings: Optional[SearchSettings] = None,
        store: Optional[InvoiceStore] = None,
        embeddings: Optional[EmbeddingGateway] = None,
        preprocessor: Optional[QueryPreprocessor] = None,
        configure_logging: bool = True
    ):
        """
        Initialize invoice search service.

        Args:
            settings: Service configuration, defaults to the environment
            store: Invoice store, built from settings when omitted
            embeddings: Embedding gateway, built from settings when omitted
            preprocessor: Query preprocessor
            configure_logging: Whether to set up logging from settings
        """
        self.settings = settings or SearchSettings.from_env()
        if configure_logging:
            setup_logging(level=self.settings.log_level)

        self.store = store or build_store(self.settings)
        self.embeddings = embeddings or build_embeddings(self.settings)
        self.vocabulary = VocabularyCache(self.store, ttl_seconds=self.settings.vocabulary_ttl_seconds)
        self.corrector = (
            FuzzyEntityCorrector(self.vocabulary) if self.settings.enable_fuzzy_correction else None
        )
        self.engine = HybridSearchEngine(
            store=self.store,
            embeddings=self.embeddings,
            preprocessor=preprocessor,
            corrector=self.corrector,
            embedding_timeout=self.settings.embedding_timeout_seconds
        )

        self._initialized = False
        logger.info("Invoice search service initialized")

    async def initialize(self) -> None:
        """Warm the vocabulary cache and mark the service ready."""
        await self.vocabulary.refresh_if_stale()
        self._initialized = True
        logger.info("Service initialization complete")

    async def search(self, text: str, filters: Optional[SearchFilters] = None) -> List[SearchResult]:
        """
        Search invoices.

        Args:
            text: Free-form query
            filters: Explicit filters, default limit from settings

        Returns:
            Ranked search results

        Raises:
            ValidationError: If filters are invalid
            SearchError: If search fails
        """
        self._check_initialized()
        filters = filters or SearchFilters(limit=self.settings.default_limit)

        try:
            results = await self.engine.search(text, filters)
            logger.debug(f"Search returned {len(results)} results")
            return results

        except InvoiceSearchError:
            raise
        except Exception as e:
            logger.error(f"Search failed: {str(e)}")
            raise SearchError(f"Search failed: {str(e)}") from e

    async def search_text(
        self,
        text: str,
        branch_id: Optional[int] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        amount_min: Optional[Decimal] = None,
        amount_max: Optional[Decimal] = None,
        limit: Optional[int] = None
    ) -> List[SearchResult]:
        """
        Convenience method validating loose keyword arguments.

        Raises:
            ValidationError: If any argument is out of range
        """
        try:
            request = SearchFiltersModel(
                query=text or "",
                branch_id=branch_id,
                date_from=date_from,
                date_to=date_to,
                amount_min=amount_min,
                amount_max=amount_max,
                limit=limit or self.settings.default_limit
            )
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid search request: {e}") from e

        return await self.search(request.query, request.to_filters())

    def get_cache_stats(self) -> Dict[str, Any]:
        """Vendor count, product count and last refresh time of the vocabulary cache."""
        return self.vocabulary.stats().to_dict()

    async def get_stats(self) -> Dict[str, Any]:
        """Get service and engine statistics."""
        self._check_initialized()

        return {
            'service': {
                'initialized': self._initialized,
                'store': type(self.store).__name__,
                'fuzzy_correction': self.settings.enable_fuzzy_correction
            },
            'engine': self.engine.get_stats(),
            'vocabulary': self.get_cache_stats()
        }

    async def health_check(self) -> Dict[str, Any]:
        """Perform comprehensive health check."""
        try:
            if not self._initialized:
                return {
                    'status': 'not_initialized',
                    'message': 'Service not initialized'
                }

            return await self.engine.health_check()

        except Exception as e:
            logger.error(f"Health check failed: {str(e)}")
            return {
                'status': 'error',
                'message': str(e)
            }

    async def index_invoices(self, invoices: List[Invoice]) -> int:
        """
        Add invoices to the in-memory store and embed those without a vector.

        Returns:
            Number of embeddings generated

        Raises:
            ConfigurationError: If the store is not in-memory
            ValidationError: If any invoice is invalid
            EmbeddingError: If embedding fails
        """
        if not isinstance(self.store, InMemoryInvoiceStore):
            raise ConfigurationError("index_invoices requires the in-memory store")

        self.store.add_invoices(invoices)

        generated = 0
        for invoice in invoices:
            if invoice.embedding is None:
                await self.generate_and_store_embedding(invoice.id)
                generated += 1

        await self.vocabulary.refresh()
        logger.info(f"Indexed {len(invoices)} invoices ({generated} embeddings generated)")
        return generated

    async def generate_and_store_embedding(self, invoice_id: int) -> np.ndarray:
        """
        Rebuild and store the embedding of one stored invoice.

        Raises:
            ValidationError: If the invoice does not exist
            EmbeddingError: If embedding fails
            StoreError: If the store cannot be read or written
        """
        invoice = await self.store.get_invoice(invoice_id)
        if invoice is None:
            raise ValidationError(f"Invoice with id {invoice_id} not found")

        text = build_searchable_text(invoice)
        try:
            embedding = await asyncio.wait_for(
                self.embeddings.generate_embedding(text),
                timeout=self.settings.embedding_timeout_seconds
            )
        except asyncio.TimeoutError as e:
            raise EmbeddingError(f"Embedding timed out for invoice {invoice_id}") from e

        await self.store.update_embedding(invoice_id, embedding)
        logger.debug(f"Stored embedding for invoice {invoice_id}: '{text}'")
        return embedding

    def _check_initialized(self) -> None:
        """Check if service is properly initialized."""
        if not self._initialized:
            raise InvoiceSearchError("Service not initialized. Call initialize() first.")

    async def close(self) -> None:
        """Clean up resources and close the service."""
        try:
            await self.embeddings.close()
            await self.store.close()
            self._initialized = False
            logger.info("Service closed successfully")

        except Exception as e:
            logger.error(f"Error during service shutdown: {str(e)}")

    @classmethod
    @asynccontextmanager
    async def create(cls, settings: Optional[SearchSettings] = None, **kwargs) -> AsyncIterator['InvoiceSearchService']:
        """
        Create and manage service lifecycle with context manager.

        Args:
            settings: Service configuration
            **kwargs: Additional service components

        Yields:
            Initialized invoice search service
        """
        service = cls(settings=settings, **kwargs)

        try:
            await service.initialize()
            yield service
        finally:
            await service.close()
