"""Pytest configuration and shared fixtures."""

import asyncio
from datetime import date
from decimal import Decimal
from typing import List, Optional

import numpy as np
import pytest

from invoice_search.config import SearchSettings
from invoice_search.core.embeddings import EmbeddingGateway, HashingEmbeddingGateway
from invoice_search.core.exceptions import EmbeddingError, StoreError
from invoice_search.core.preprocessing import QueryPreprocessor
from invoice_search.models.invoice import Invoice, InvoiceItem
from invoice_search.models.query import SearchCriteria
from invoice_search.models.result import InvoiceRow, PhoneticCandidate
from invoice_search.store.base import InvoiceStore
from invoice_search.store.memory import InMemoryInvoiceStore
from invoice_search.utils.text_processing import build_searchable_text
from invoice_search.api.service import InvoiceSearchService

# Wednesday
FIXED_TODAY = date(2024, 6, 19)


def make_invoice(
    invoice_id: int,
    vendor: Optional[str],
    products: List[str],
    invoice_date: date,
    amount: str,
    branch_id: int = 1
) -> Invoice:
    return Invoice(
        id=invoice_id,
        invoice_number=f"PI-2024-{invoice_id:04d}",
        invoice_date=invoice_date,
        branch_id=branch_id,
        vendor_name=vendor,
        vendor_reference=f"REF-{invoice_id}",
        bill_number=f"BILL-{invoice_id}",
        narration=f"Purchase from {vendor}" if vendor else None,
        total_amount=Decimal(amount),
        items=[InvoiceItem(product_name=name, quantity=Decimal("1"), price=Decimal(amount)) for name in products]
    )


@pytest.fixture
def sample_invoices() -> List[Invoice]:
    """Create sample purchase invoices for testing."""
    return [
        make_invoice(1, "Gaurav Enterprises", ["Dell Laptop", "Wireless Mouse"], date(2024, 5, 10), "52000.00"),
        make_invoice(2, "Deen Traders", ["Office Chair"], date(2024, 5, 22), "4800.00"),
        make_invoice(3, "Sharma Electronics", ["HP Printer", "Printer Cartridge"], date(2024, 6, 3), "15500.00", branch_id=2),
        make_invoice(4, "Kumar Stationers", ["A4 Paper", "Ball Pens"], date(2024, 4, 15), "1200.00", branch_id=2),
        make_invoice(5, "Gaurav Enterprises", ["Monitor Stand"], date(2024, 6, 12), "5100.00"),
        make_invoice(6, "Mehta Furniture", ["Conference Table"], date(2023, 12, 5), "75000.00"),
    ]


@pytest.fixture
def preprocessor() -> QueryPreprocessor:
    """Preprocessor with a fixed reference date."""
    return QueryPreprocessor(today=lambda: FIXED_TODAY)


@pytest.fixture
async def embeddings():
    """Local hashing embedding gateway."""
    gateway = HashingEmbeddingGateway(dimension=1024)
    yield gateway
    await gateway.close()


@pytest.fixture
def memory_store(sample_invoices) -> InMemoryInvoiceStore:
    """In-memory store holding the sample invoices without embeddings."""
    return InMemoryInvoiceStore(sample_invoices)


@pytest.fixture
async def indexed_store(memory_store, embeddings) -> InMemoryInvoiceStore:
    """In-memory store with every sample invoice embedded."""
    for invoice in memory_store.all_invoices():
        vector = await embeddings.generate_embedding(build_searchable_text(invoice))
        await memory_store.update_embedding(invoice.id, vector)
    yield memory_store
    await memory_store.close()


@pytest.fixture
def settings() -> SearchSettings:
    """Settings for an in-memory service with hashing embeddings."""
    return SearchSettings(
        embedding_backend="hashing",
        embedding_dimension=1024,
        vocabulary_ttl_seconds=300,
        log_level="WARNING"
    )


@pytest.fixture
async def search_service(settings, preprocessor):
    """Create and initialize a search service for testing."""
    async with InvoiceSearchService.create(
        settings=settings,
        store=InMemoryInvoiceStore(),
        preprocessor=preprocessor,
        configure_logging=False
    ) as service:
        yield service


@pytest.fixture
async def populated_service(search_service, sample_invoices):
    """Create a search service with sample invoices indexed."""
    await search_service.index_invoices(sample_invoices)
    return search_service


class RecordingStore(InvoiceStore):
    """Store double that records calls and can be told to fail."""

    def __init__(
        self,
        rows: Optional[List[InvoiceRow]] = None,
        vendors: Optional[List[str]] = None,
        products: Optional[List[str]] = None,
        candidates: Optional[List[PhoneticCandidate]] = None
    ):
        self.rows = rows or []
        self.vendors = vendors or []
        self.products = products or []
        self.candidates = candidates
        self.fail_scan = False
        self.fail_vocabulary = False
        self.fail_phonetic = False
        self.calls: List[str] = []
        self.last_criteria: Optional[SearchCriteria] = None
        self.last_limit: Optional[int] = None

    async def scan_with_similarity(self, criteria, query_embedding):
        self.calls.append("scan_with_similarity")
        self.last_criteria = criteria
        if self.fail_scan:
            raise StoreError("connection refused")
        return list(self.rows)

    async def scan_by_filters(self, criteria, limit):
        self.calls.append("scan_by_filters")
        self.last_criteria = criteria
        self.last_limit = limit
        if self.fail_scan:
            raise StoreError("connection refused")
        return list(self.rows)[:limit]

    async def distinct_vendor_names(self):
        self.calls.append("distinct_vendor_names")
        if self.fail_vocabulary:
            raise StoreError("vocabulary unavailable")
        return list(self.vendors)

    async def distinct_product_names(self):
        self.calls.append("distinct_product_names")
        if self.fail_vocabulary:
            raise StoreError("vocabulary unavailable")
        return list(self.products)

    @property
    def supports_phonetic(self) -> bool:
        return self.candidates is not None

    async def phonetic_vendor_candidates(self, token, limit=5):
        self.calls.append("phonetic_vendor_candidates")
        if self.fail_phonetic:
            raise StoreError("phonetic query failed")
        return list(self.candidates or [])[:limit]

    async def get_invoice(self, invoice_id):
        return None

    async def update_embedding(self, invoice_id, embedding):
        raise StoreError(f"Invoice with id {invoice_id} not found")


class RecordingEmbeddings(EmbeddingGateway):
    """Embedding double returning a fixed vector."""

    def __init__(self, vector: Optional[np.ndarray] = None, delay: float = 0.0):
        self.vector = vector if vector is not None else np.ones(4, dtype=np.float32)
        self.delay = delay
        self.fail = False
        self.texts: List[str] = []

    async def generate_embedding(self, text):
        self.texts.append(text)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise EmbeddingError("Gemini API not configured. Set GEMINI_API_KEY.")
        return self.vector


def make_row(row_id: int, score: Optional[float], invoice_date: date = FIXED_TODAY, **fields) -> InvoiceRow:
    return InvoiceRow(
        id=row_id,
        invoice_number=fields.pop("invoice_number", f"PI-{row_id}"),
        invoice_date=invoice_date,
        similarity_score=score,
        **fields
    )


@pytest.fixture
def recording_store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture
def recording_embeddings() -> RecordingEmbeddings:
    return RecordingEmbeddings()
