"""Hybrid search orchestrator: structured filters fused with semantic ranking."""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Tuple

from ..models.query import AmountRange, DateRange, PreprocessedQuery, SearchCriteria, SearchFilters
from ..models.result import InvoiceRow, SearchResult
from ..store.base import InvoiceStore
from ..utils.logging_config import StructuredLogger
from ..utils.validators import validate_filters
from .embeddings import EmbeddingGateway
from .exceptions import EmbeddingError, SearchError, ValidationError
from .fuzzy import FuzzyEntityCorrector
from .preprocessing import QueryPreprocessor

logger = logging.getLogger(__name__)


def _ordered(low, high, dimension: str, log: StructuredLogger) -> Tuple[Any, Any]:
    if low is not None and high is not None and low > high:
        log.warning(f"Inverted {dimension} range {low} > {high}, swapping bounds")
        return high, low
    return low, high


def merge_criteria(
    preprocessed: PreprocessedQuery,
    filters: SearchFilters,
    log: Optional[StructuredLogger] = None
) -> SearchCriteria:
    """
    Combine text-derived and caller-supplied filters.

    Per dimension, values extracted from the text win; caller values are
    used only where the text produced nothing. Branch id is caller-only.
    """
    log = log or StructuredLogger(__name__)

    if preprocessed.date_from is not None or preprocessed.date_to is not None:
        date_from, date_to = preprocessed.date_from, preprocessed.date_to
    else:
        date_from, date_to = filters.date_from, filters.date_to

    if preprocessed.amount_min is not None or preprocessed.amount_max is not None:
        amount_min, amount_max = preprocessed.amount_min, preprocessed.amount_max
    else:
        amount_min, amount_max = filters.amount_min, filters.amount_max

    date_from, date_to = _ordered(date_from, date_to, "date", log)
    amount_min, amount_max = _ordered(amount_min, amount_max, "amount", log)

    return SearchCriteria(
        branch_id=filters.branch_id,
        date_range=DateRange(date_from, date_to),
        amount_range=AmountRange(amount_min, amount_max)
    )


class HybridSearchEngine:
    """
    Runs one search request end to end.

    Optional fuzzy correction, preprocessing, filter merging, then either a
    similarity scan ranked client-side or a filter-only scan. Failures on
    the ranking path raise SearchError; failures while correcting the query
    only cost recall.
    """

    def __init__(
        self,
        store: InvoiceStore,
        embeddings: EmbeddingGateway,
        preprocessor: Optional[QueryPreprocessor] = None,
        corrector: Optional[FuzzyEntityCorrector] = None,
        embedding_timeout: float = 15.0
    ):
        """
        Initialize hybrid search engine.

        Args:
            store: Invoice store
            embeddings: Embedding gateway for residual query text
            preprocessor: Query preprocessor
            corrector: Fuzzy corrector run before preprocessing, or None to skip
            embedding_timeout: Seconds to wait for one embedding
        """
        if embedding_timeout <= 0:
            raise ValueError("Embedding timeout must be positive")

        self.store = store
        self.embeddings = embeddings
        self.preprocessor = preprocessor or QueryPreprocessor()
        self.corrector = corrector
        self.embedding_timeout = embedding_timeout

        self._stats = {
            'total_searches': 0,
            'semantic_searches': 0,
            'filter_only_searches': 0,
            'empty_searches': 0,
            'failed_searches': 0,
            'avg_search_time': 0.0
        }

        logger.info("Hybrid search engine initialized")

    async def search(self, query: str, filters: Optional[SearchFilters] = None) -> List[SearchResult]:
        """
        Search invoices with free-form text and explicit filters.

        Args:
            query: Free-form query text
            filters: Caller filters and result limit

        Returns:
            At most ``filters.limit`` results, best first

        Raises:
            ValidationError: If filters are invalid
            SearchError: If embedding or the store query fails
        """
        filters = filters or SearchFilters()
        validate_filters(filters)

        log = StructuredLogger.for_request(__name__, query=query)
        start_time = time.perf_counter()

        try:
            text = await self._correct(query or "", log)
            preprocessed = self.preprocessor.preprocess(text)
            criteria = merge_criteria(preprocessed, filters, log)

            if criteria.is_empty and not preprocessed.has_semantic_content:
                log.info("Nothing to search on: no residual text and no filters")
                self._stats['empty_searches'] += 1
                return []

            if preprocessed.has_semantic_content:
                rows = await self._semantic_rows(preprocessed.normalized_query, criteria, filters.limit, log)
                self._stats['semantic_searches'] += 1
            else:
                rows = await self.store.scan_by_filters(criteria, filters.limit)
                self._stats['filter_only_searches'] += 1

            results = [SearchResult.from_row(row, rank) for rank, row in enumerate(rows, 1)]

        except (ValidationError, SearchError):
            self._stats['failed_searches'] += 1
            raise
        except Exception as e:
            self._stats['failed_searches'] += 1
            log.exception(f"Search failed: {str(e)}")
            raise SearchError(f"Search failed: {str(e)}") from e

        search_time = time.perf_counter() - start_time
        self._update_search_stats(search_time)
        log.info(f"Search completed: {len(results)} results in {search_time:.3f}s")
        return results

    async def _correct(self, query: str, log: StructuredLogger) -> str:
        if self.corrector is None or not query.strip():
            return query
        try:
            return await self.corrector.correct(query)
        except Exception as e:
            log.warning(f"Fuzzy correction failed, using query as typed: {str(e)}")
            return query

    async def _semantic_rows(
        self,
        text: str,
        criteria: SearchCriteria,
        limit: int,
        log: StructuredLogger
    ) -> List[InvoiceRow]:
        log.debug(f"Embedding residual text: '{text}'")
        try:
            with log.timed("embedding"):
                embedding = await asyncio.wait_for(
                    self.embeddings.generate_embedding(text),
                    timeout=self.embedding_timeout
                )
        except asyncio.TimeoutError as e:
            raise EmbeddingError(f"Embedding timed out after {self.embedding_timeout}s") from e

        with log.timed("similarity scan"):
            rows = await self.store.scan_with_similarity(criteria, embedding)
        rows.sort(key=lambda row: row.score, reverse=True)
        return rows[:limit]

    def _update_search_stats(self, search_time: float) -> None:
        """Update search performance statistics."""
        self._stats['total_searches'] += 1

        total_searches = self._stats['total_searches']
        current_avg = self._stats['avg_search_time']
        self._stats['avg_search_time'] = (
            (current_avg * (total_searches - 1) + search_time) / total_searches
        )

    def get_stats(self) -> Dict[str, Any]:
        """Get engine statistics."""
        return {
            **self._stats,
            **self.embeddings.get_stats(),
            'fuzzy_correction': self.corrector is not None,
            'phonetic_matching': self.store.supports_phonetic,
            'embedding_timeout': self.embedding_timeout
        }

    async def health_check(self) -> Dict[str, Any]:
        """Perform health check of the search engine."""
        try:
            is_ready = self.embeddings.is_configured
            return {
                'status': 'healthy' if is_ready else 'not_ready',
                'is_ready': is_ready,
                'stats': self.get_stats(),
                'timestamp': time.time()
            }

        except Exception as e:
            logger.error(f"Health check failed: {str(e)}")
            return {
                'status': 'unhealthy',
                'error': str(e),
                'timestamp': time.time()
            }
