"""In-process invoice store with vector and phonetic matching."""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, List, Optional

import jellyfish
import numpy as np
from rapidfuzz.distance import Levenshtein
from sklearn.metrics.pairwise import cosine_similarity

from ..models.invoice import Invoice
from ..models.query import SearchCriteria
from ..models.result import InvoiceRow, PhoneticCandidate
from ..utils.validators import validate_invoices_batch
from .base import InvoiceStore
from ..core.exceptions import StoreError

logger = logging.getLogger(__name__)


def _to_row(invoice: Invoice, similarity: Optional[float]) -> InvoiceRow:
    return InvoiceRow(
        id=invoice.id,
        invoice_number=invoice.invoice_number,
        invoice_date=invoice.invoice_date,
        vendor_name=invoice.vendor_name,
        vendor_reference=invoice.vendor_reference,
        bill_number=invoice.bill_number,
        narration=invoice.narration,
        total_amount=invoice.total_amount,
        similarity_score=similarity
    )


class InMemoryInvoiceStore(InvoiceStore):
    """
    Invoice store kept in process memory.

    Similarity uses scikit-learn cosine similarity over the stored vectors;
    phonetic matching uses Soundex and Metaphone codes from jellyfish.
    """

    def __init__(
        self,
        invoices: Optional[Iterable[Invoice]] = None,
        enable_phonetic: bool = True,
        executor: Optional[ThreadPoolExecutor] = None
    ):
        """
        Initialize in-memory store.

        Args:
            invoices: Initial invoices
            enable_phonetic: Whether phonetic vendor matching is offered
            executor: Thread pool for similarity computation
        """
        self._invoices: Dict[int, Invoice] = {}
        self._enable_phonetic = enable_phonetic
        self._executor = executor or ThreadPoolExecutor(max_workers=2)
        if invoices:
            self.add_invoices(list(invoices))

    def add_invoices(self, invoices: List[Invoice]) -> None:
        """
        Add or replace invoices.

        Raises:
            ValidationError: If any invoice is invalid
        """
        validate_invoices_batch(invoices)
        for invoice in invoices:
            self._invoices[invoice.id] = invoice
        logger.debug(f"Stored {len(invoices)} invoices ({len(self._invoices)} total)")

    def __len__(self) -> int:
        return len(self._invoices)

    def all_invoices(self) -> List[Invoice]:
        return list(self._invoices.values())

    def _matching(self, criteria: SearchCriteria) -> List[Invoice]:
        matched = []
        for invoice in self._invoices.values():
            if criteria.branch_id is not None and invoice.branch_id != criteria.branch_id:
                continue
            if not criteria.date_range.contains(invoice.invoice_date):
                continue
            if not criteria.amount_range.contains(invoice.total_amount):
                continue
            matched.append(invoice)
        return matched

    async def scan_with_similarity(
        self,
        criteria: SearchCriteria,
        query_embedding: np.ndarray
    ) -> List[InvoiceRow]:
        candidates = [inv for inv in self._matching(criteria) if inv.embedding is not None]
        if not candidates:
            return []

        try:
            similarities = await asyncio.get_running_loop().run_in_executor(
                self._executor, self._similarities, query_embedding, candidates
            )
        except ValueError as e:
            raise StoreError(f"Similarity scan failed: {e}") from e

        return [
            _to_row(invoice, float(score))
            for invoice, score in zip(candidates, similarities)
        ]

    def _similarities(self, query_embedding: np.ndarray, invoices: List[Invoice]) -> np.ndarray:
        """Compute cosine similarities synchronously in thread pool."""
        matrix = np.vstack([np.asarray(inv.embedding, dtype=np.float32) for inv in invoices])
        query = np.asarray(query_embedding, dtype=np.float32).reshape(1, -1)
        return cosine_similarity(query, matrix).flatten()

    async def scan_by_filters(self, criteria: SearchCriteria, limit: int) -> List[InvoiceRow]:
        matched = sorted(
            self._matching(criteria),
            key=lambda inv: (inv.invoice_date, inv.id),
            reverse=True
        )
        return [_to_row(invoice, 1.0) for invoice in matched[:limit]]

    async def distinct_vendor_names(self) -> List[str]:
        names = (inv.vendor_name.strip() for inv in self._invoices.values() if inv.vendor_name)
        return list(dict.fromkeys(name for name in names if name))

    async def distinct_product_names(self) -> List[str]:
        names = (
            item.product_name.strip()
            for inv in self._invoices.values()
            for item in inv.items
        )
        return list(dict.fromkeys(name for name in names if name))

    @property
    def supports_phonetic(self) -> bool:
        return self._enable_phonetic

    async def phonetic_vendor_candidates(self, token: str, limit: int = 5) -> List[PhoneticCandidate]:
        if not self._enable_phonetic:
            return await super().phonetic_vendor_candidates(token, limit)

        token_soundex = jellyfish.soundex(token)
        token_metaphone = jellyfish.metaphone(token)
        candidates = []
        for vendor_name in await self.distinct_vendor_names():
            first_token = vendor_name.split()[0]
            candidates.append(PhoneticCandidate(
                vendor_name=vendor_name,
                first_token=first_token,
                soundex_match=jellyfish.soundex(first_token) == token_soundex,
                metaphone_match=jellyfish.metaphone(first_token) == token_metaphone,
                edit_distance=Levenshtein.distance(first_token.lower(), token.lower())
            ))

        candidates.sort(key=lambda c: (not c.soundex_match, not c.metaphone_match, c.edit_distance))
        return candidates[:limit]

    async def get_invoice(self, invoice_id: int) -> Optional[Invoice]:
        return self._invoices.get(invoice_id)

    async def update_embedding(self, invoice_id: int, embedding: np.ndarray) -> None:
        invoice = self._invoices.get(invoice_id)
        if invoice is None:
            raise StoreError(f"Invoice with id {invoice_id} not found")
        invoice.embedding = np.asarray(embedding, dtype=np.float32)

    async def close(self) -> None:
        self._executor.shutdown(wait=True)
