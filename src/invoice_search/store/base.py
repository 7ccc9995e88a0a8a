"""Invoice store port consumed by the search core."""

from abc import ABC, abstractmethod
from typing import List, Optional

import numpy as np

from ..core.exceptions import PhoneticUnavailableError
from ..models.invoice import Invoice
from ..models.query import SearchCriteria
from ..models.result import InvoiceRow, PhoneticCandidate


class InvoiceStore(ABC):
    """Port for invoice persistence with vector and phonetic capabilities."""

    @abstractmethod
    async def scan_with_similarity(
        self,
        criteria: SearchCriteria,
        query_embedding: np.ndarray
    ) -> List[InvoiceRow]:
        """
        Return every embedded invoice matching the criteria with its similarity.

        Similarity is ``1 - cosine_distance(query_embedding, row_embedding)``.
        Rows come back unordered; ranking belongs to the caller.

        Raises:
            StoreError: Store unreachable or query failed
        """
        raise NotImplementedError

    @abstractmethod
    async def scan_by_filters(self, criteria: SearchCriteria, limit: int) -> List[InvoiceRow]:
        """
        Return up to ``limit`` invoices matching the criteria, newest first.

        Raises:
            StoreError: Store unreachable or query failed
        """
        raise NotImplementedError

    @abstractmethod
    async def distinct_vendor_names(self) -> List[str]:
        """Return distinct non-blank vendor names."""
        raise NotImplementedError

    @abstractmethod
    async def distinct_product_names(self) -> List[str]:
        """Return distinct non-blank product names."""
        raise NotImplementedError

    @property
    def supports_phonetic(self) -> bool:
        """Whether ``phonetic_vendor_candidates`` can be called."""
        return False

    async def phonetic_vendor_candidates(self, token: str, limit: int = 5) -> List[PhoneticCandidate]:
        """
        Compare a token with the first token of every distinct vendor name.

        Candidates are ranked by Soundex match, then metaphone match, both
        descending, then edit distance ascending.

        Raises:
            PhoneticUnavailableError: Store has no phonetic functions
            StoreError: Query failed
        """
        raise PhoneticUnavailableError(f"{type(self).__name__} does not support phonetic matching")

    @abstractmethod
    async def get_invoice(self, invoice_id: int) -> Optional[Invoice]:
        """Load one invoice with its items, or None if it does not exist."""
        raise NotImplementedError

    @abstractmethod
    async def update_embedding(self, invoice_id: int, embedding: np.ndarray) -> None:
        """Store the embedding vector for an invoice."""
        raise NotImplementedError

    async def close(self) -> None:
        """Release connections held by the store."""
        return None
