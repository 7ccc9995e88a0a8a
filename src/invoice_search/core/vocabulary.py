"""Entity vocabulary cache backing fuzzy and phonetic correction."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Tuple

from ..models.result import CacheStats
from ..store.base import InvoiceStore

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class VocabularySnapshot:
    """Immutable view of the vocabulary at one refresh."""
    vendors: Tuple[str, ...] = ()
    products: Tuple[str, ...] = ()
    last_refreshed: Optional[datetime] = None


class VocabularyCache:
    """
    Process-wide snapshot of distinct vendor and product names.

    Readers always see one complete snapshot: a refresh builds a new
    ``VocabularySnapshot`` and swaps the reference in a single assignment.
    Concurrent refreshes are not serialised; the last one to finish wins.
    """

    def __init__(
        self,
        store: InvoiceStore,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], datetime] = utcnow
    ):
        """
        Initialize vocabulary cache.

        Args:
            store: Source of distinct vendor and product names
            ttl_seconds: Snapshot lifetime before the next refresh
            clock: Returns the current time
        """
        if ttl_seconds < 0:
            raise ValueError("TTL cannot be negative")

        self.store = store
        self.ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock
        self._snapshot = VocabularySnapshot()
        self._refresh_count = 0

    @property
    def snapshot(self) -> VocabularySnapshot:
        return self._snapshot

    @property
    def vendors(self) -> Tuple[str, ...]:
        return self._snapshot.vendors

    @property
    def products(self) -> Tuple[str, ...]:
        return self._snapshot.products

    def is_stale(self, now: Optional[datetime] = None) -> bool:
        """Check whether the snapshot is missing or older than the TTL."""
        last_refreshed = self._snapshot.last_refreshed
        if last_refreshed is None:
            return True
        now = now or self._clock()
        return now - last_refreshed > self.ttl

    async def refresh_if_stale(self, now: Optional[datetime] = None) -> bool:
        """
        Refresh the snapshot when it is stale.

        Args:
            now: Evaluation time, defaults to the cache clock

        Returns:
            True if a new snapshot was published
        """
        now = now or self._clock()
        if not self.is_stale(now):
            return False
        return await self.refresh(now)

    async def refresh(self, now: Optional[datetime] = None) -> bool:
        """
        Load vendor and product names from the store and publish a new snapshot.

        Store failures are logged and the previous snapshot stays in place.
        """
        try:
            vendors = await self.store.distinct_vendor_names()
            products = await self.store.distinct_product_names()
        except Exception as e:
            logger.warning(f"Vocabulary refresh failed, keeping previous snapshot: {str(e)}")
            return False

        self._snapshot = VocabularySnapshot(
            vendors=tuple(vendors),
            products=tuple(products),
            last_refreshed=now or self._clock()
        )
        self._refresh_count += 1
        logger.info(f"Vocabulary refreshed: {len(vendors)} vendors, {len(products)} products")
        return True

    def stats(self) -> CacheStats:
        snapshot = self._snapshot
        return CacheStats(
            vendor_count=len(snapshot.vendors),
            product_count=len(snapshot.products),
            last_refreshed=snapshot.last_refreshed
        )

    @property
    def refresh_count(self) -> int:
        return self._refresh_count
