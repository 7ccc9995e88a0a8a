"""Tests for the in-memory invoice store."""

from datetime import date
from decimal import Decimal

import numpy as np
import pytest

from invoice_search.core.exceptions import PhoneticUnavailableError, StoreError, ValidationError
from invoice_search.models.query import AmountRange, DateRange, SearchCriteria
from invoice_search.store.memory import InMemoryInvoiceStore
from conftest import make_invoice


class TestFilterScan:
    """Test filter-only scans."""

    async def test_newest_first_with_limit(self, memory_store):
        rows = await memory_store.scan_by_filters(SearchCriteria(), limit=3)

        assert [row.id for row in rows] == [5, 3, 2]
        assert all(row.similarity_score == 1.0 for row in rows)

    async def test_branch_filter(self, memory_store):
        rows = await memory_store.scan_by_filters(SearchCriteria(branch_id=2), limit=10)
        assert {row.id for row in rows} == {3, 4}

    async def test_date_and_amount_filters(self, memory_store):
        criteria = SearchCriteria(
            date_range=DateRange(date(2024, 5, 1), date(2024, 5, 31)),
            amount_range=AmountRange(Decimal("4000"), Decimal("6000"))
        )

        rows = await memory_store.scan_by_filters(criteria, limit=10)

        assert [row.id for row in rows] == [2]

    async def test_bounds_are_inclusive(self, memory_store):
        criteria = SearchCriteria(amount_range=AmountRange(Decimal("1200"), Decimal("1200")))
        rows = await memory_store.scan_by_filters(criteria, limit=10)
        assert [row.id for row in rows] == [4]


class TestSimilarityScan:
    """Test similarity scans."""

    async def test_only_embedded_invoices(self, memory_store):
        await memory_store.update_embedding(1, np.array([1.0, 0.0], dtype=np.float32))
        await memory_store.update_embedding(2, np.array([0.0, 1.0], dtype=np.float32))

        rows = await memory_store.scan_with_similarity(SearchCriteria(), np.array([1.0, 0.0]))
        scores = {row.id: row.similarity_score for row in rows}

        assert set(scores) == {1, 2}
        assert scores[1] == pytest.approx(1.0)
        assert scores[2] == pytest.approx(0.0)

    async def test_filters_apply(self, indexed_store, embeddings):
        query = await embeddings.generate_embedding("Printer")
        rows = await indexed_store.scan_with_similarity(SearchCriteria(branch_id=2), query)

        assert {row.id for row in rows} == {3, 4}

    async def test_no_embeddings(self, memory_store):
        assert await memory_store.scan_with_similarity(SearchCriteria(), np.ones(4)) == []

    async def test_dimension_mismatch(self, memory_store):
        await memory_store.update_embedding(1, np.ones(4, dtype=np.float32))

        with pytest.raises(StoreError):
            await memory_store.scan_with_similarity(SearchCriteria(), np.ones(8))


class TestVocabularyAndPhonetics:
    """Test distinct names and phonetic candidates."""

    async def test_distinct_vendor_names(self, memory_store):
        vendors = await memory_store.distinct_vendor_names()

        assert vendors.count("Gaurav Enterprises") == 1
        assert len(vendors) == 5

    async def test_distinct_product_names(self, memory_store):
        products = await memory_store.distinct_product_names()

        assert "Printer Cartridge" in products
        assert len(products) == 9

    async def test_blank_vendor_excluded(self):
        store = InMemoryInvoiceStore([make_invoice(1, "  ", ["Pen"], date(2024, 1, 1), "10")])
        assert await store.distinct_vendor_names() == []
        await store.close()

    async def test_phonetic_candidates_ranked(self, memory_store):
        candidates = await memory_store.phonetic_vendor_candidates("Gowrav")

        assert candidates[0].vendor_name == "Gaurav Enterprises"
        assert candidates[0].first_token == "Gaurav"
        assert candidates[0].soundex_match
        assert candidates[0].edit_distance == 2

    async def test_phonetic_limit(self, memory_store):
        assert len(await memory_store.phonetic_vendor_candidates("Gowrav", limit=2)) == 2

    async def test_phonetic_disabled(self, sample_invoices):
        store = InMemoryInvoiceStore(sample_invoices, enable_phonetic=False)

        assert not store.supports_phonetic
        with pytest.raises(PhoneticUnavailableError):
            await store.phonetic_vendor_candidates("Gowrav")
        await store.close()


class TestMaintenance:
    """Test loading and embedding updates."""

    async def test_get_invoice(self, memory_store):
        invoice = await memory_store.get_invoice(3)

        assert invoice.vendor_name == "Sharma Electronics"
        assert await memory_store.get_invoice(99) is None

    async def test_update_missing_invoice(self, memory_store):
        with pytest.raises(StoreError, match="not found"):
            await memory_store.update_embedding(99, np.ones(4))

    def test_duplicate_ids_rejected(self):
        invoice = make_invoice(1, "Deen Traders", [], date(2024, 1, 1), "10")

        with pytest.raises(ValidationError, match="Duplicate"):
            InMemoryInvoiceStore([invoice, invoice])

    def test_empty_batch_rejected(self, memory_store):
        with pytest.raises(ValidationError):
            memory_store.add_invoices([])

    def test_len(self, memory_store):
        assert len(memory_store) == 6
