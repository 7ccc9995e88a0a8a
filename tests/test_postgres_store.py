"""Tests for the PostgreSQL store using a fake connection pool."""

from contextlib import asynccontextmanager
from datetime import date
from decimal import Decimal

import asyncpg
import numpy as np
import pytest

from invoice_search.core.exceptions import PhoneticUnavailableError, StoreError
from invoice_search.models.query import AmountRange, DateRange, SearchCriteria
from invoice_search.store.postgres import (
    PostgresInvoiceStore,
    build_where_clause,
    format_vector,
    parse_vector,
)


class FakeConnection:
    def __init__(self, results=None, error=None, status="UPDATE 1"):
        self.results = list(results or [])
        self.error = error
        self.status = status
        self.queries = []

    async def fetch(self, sql, *args):
        self.queries.append((sql, args))
        if self.error is not None:
            raise self.error
        return self.results.pop(0) if self.results else []

    async def execute(self, sql, *args):
        self.queries.append((sql, args))
        if self.error is not None:
            raise self.error
        return self.status


class FakePool:
    def __init__(self, connection):
        self.connection = connection
        self.closed = False

    @asynccontextmanager
    async def acquire(self):
        yield self.connection

    async def close(self):
        self.closed = True


def store_with(connection) -> PostgresInvoiceStore:
    store = PostgresInvoiceStore("postgresql://localhost/invoices")
    store._pool = FakePool(connection)
    return store


def invoice_record(**overrides):
    record = {
        "id": 1,
        "invoice_number": "PI-1",
        "invoice_date": date(2024, 5, 10),
        "vendor_name": "Gaurav Enterprises",
        "vendor_reference": None,
        "bill_number": "B-1",
        "narration": None,
        "total_amount": Decimal("52000.00"),
        "similarity_score": 0.8,
    }
    record.update(overrides)
    return record


class TestSqlHelpers:
    """Test SQL and vector helpers."""

    def test_empty_criteria(self):
        assert build_where_clause(SearchCriteria()) == ([], [])

    def test_all_criteria_numbered_from_offset(self):
        criteria = SearchCriteria(
            branch_id=2,
            date_range=DateRange(date(2024, 5, 1), date(2024, 5, 31)),
            amount_range=AmountRange(Decimal("4500"), Decimal("5500"))
        )

        conditions, args = build_where_clause(criteria, first_param=2)

        assert conditions == [
            '"branchId" = $2',
            '"invoiceDate" >= $3',
            '"invoiceDate" <= $4',
            '"totalAmount" >= $5',
            '"totalAmount" <= $6',
        ]
        assert args == [2, date(2024, 5, 1), date(2024, 5, 31), Decimal("4500"), Decimal("5500")]

    def test_open_ended_range(self):
        criteria = SearchCriteria(amount_range=AmountRange(maximum=Decimal("100")))
        assert build_where_clause(criteria) == (['"totalAmount" <= $1'], [Decimal("100")])

    def test_vector_text_format(self):
        text = format_vector(np.array([0.5, -1.0, 0.25], dtype=np.float32))

        assert text == "[0.5,-1.0,0.25]"
        np.testing.assert_allclose(parse_vector(text), [0.5, -1.0, 0.25])

    def test_parse_empty_vector(self):
        assert parse_vector(None) is None
        assert parse_vector("") is None


class TestScans:
    """Test query construction and row mapping."""

    async def test_similarity_scan(self):
        connection = FakeConnection(results=[[invoice_record()]])
        store = store_with(connection)
        criteria = SearchCriteria(branch_id=1)

        rows = await store.scan_with_similarity(criteria, np.array([1.0, 0.0], dtype=np.float32))

        sql, args = connection.queries[0]
        assert "1 - (embedding <=> $1::vector)" in sql
        assert "embedding IS NOT NULL" in sql
        assert '"branchId" = $2' in sql
        assert "ORDER BY" not in sql
        assert args == ("[1.0,0.0]", 1)
        assert rows[0].vendor_name == "Gaurav Enterprises"
        assert rows[0].similarity_score == 0.8

    async def test_filter_scan(self):
        connection = FakeConnection(results=[[invoice_record(similarity_score=1.0)]])
        store = store_with(connection)
        criteria = SearchCriteria(date_range=DateRange(start=date(2024, 5, 1)))

        rows = await store.scan_by_filters(criteria, limit=20)

        sql, args = connection.queries[0]
        assert 'ORDER BY "invoiceDate" DESC' in sql
        assert "LIMIT $2" in sql
        assert args == (date(2024, 5, 1), 20)
        assert rows[0].similarity_score == 1.0

    async def test_filter_scan_without_criteria(self):
        connection = FakeConnection()
        store = store_with(connection)

        await store.scan_by_filters(SearchCriteria(), limit=5)

        sql, args = connection.queries[0]
        assert "WHERE 1=1" in sql
        assert args == (5,)

    async def test_query_failure_becomes_store_error(self):
        store = store_with(FakeConnection(error=asyncpg.exceptions.UndefinedTableError("relation missing")))

        with pytest.raises(StoreError, match="query failed"):
            await store.scan_by_filters(SearchCriteria(), limit=5)

    async def test_distinct_names(self):
        connection = FakeConnection(results=[[{"name": "Deen Traders"}], [{"name": "Office Chair"}]])
        store = store_with(connection)

        assert await store.distinct_vendor_names() == ["Deen Traders"]
        assert await store.distinct_product_names() == ["Office Chair"]


class TestPhonetic:
    """Test phonetic candidate lookup."""

    async def test_candidates(self):
        connection = FakeConnection(results=[[{
            "vendor_name": "Gaurav Enterprises",
            "first_token": "Gaurav",
            "soundex_match": True,
            "metaphone_match": True,
            "edit_distance": 2,
        }]])
        store = store_with(connection)

        candidates = await store.phonetic_vendor_candidates("Gowrav", limit=3)

        sql, args = connection.queries[0]
        assert "soundex(first_token) = soundex($1)" in sql
        assert args == ("Gowrav", 3)
        assert candidates[0].first_token == "Gaurav"
        assert candidates[0].edit_distance == 2

    async def test_missing_extension_disables_phonetic(self):
        connection = FakeConnection(
            error=asyncpg.exceptions.UndefinedFunctionError("function soundex(text) does not exist")
        )
        store = store_with(connection)

        with pytest.raises(PhoneticUnavailableError):
            await store.phonetic_vendor_candidates("Gowrav")

        assert not store.supports_phonetic
        with pytest.raises(PhoneticUnavailableError):
            await store.phonetic_vendor_candidates("Gowrav")
        assert len(connection.queries) == 1

    async def test_other_failures_keep_phonetic_enabled(self):
        store = store_with(FakeConnection(error=asyncpg.exceptions.QueryCanceledError("timeout")))

        with pytest.raises(StoreError) as exc_info:
            await store.phonetic_vendor_candidates("Gowrav")

        assert not isinstance(exc_info.value, PhoneticUnavailableError)
        assert store.supports_phonetic


class TestMaintenance:
    """Test invoice loading and embedding updates."""

    async def test_get_invoice_with_items(self):
        record = invoice_record(branch_id=1, embedding="[0.5,0.5]")
        items = [
            {"product_name": "Dell Laptop", "quantity": Decimal("1"), "price": Decimal("50000"), "product_code": None},
            {"product_name": " ", "quantity": Decimal("1"), "price": Decimal("0"), "product_code": None},
        ]
        store = store_with(FakeConnection(results=[[record], items]))

        invoice = await store.get_invoice(1)

        assert invoice.product_names == ["Dell Laptop"]
        assert invoice.branch_id == 1
        np.testing.assert_allclose(invoice.embedding, [0.5, 0.5])

    async def test_get_missing_invoice(self):
        store = store_with(FakeConnection())
        assert await store.get_invoice(42) is None

    async def test_update_embedding(self):
        connection = FakeConnection(status="UPDATE 1")
        store = store_with(connection)

        await store.update_embedding(1, np.array([0.25, 0.75], dtype=np.float32))

        sql, args = connection.queries[0]
        assert "SET embedding = $1::vector" in sql
        assert args == ("[0.25,0.75]", 1)

    async def test_update_missing_invoice(self):
        store = store_with(FakeConnection(status="UPDATE 0"))

        with pytest.raises(StoreError, match="not found"):
            await store.update_embedding(10, np.ones(2))

    async def test_close_releases_pool(self):
        store = store_with(FakeConnection())
        pool = store._pool

        await store.close()

        assert pool.closed
        assert store._pool is None

    async def test_connect_failure(self, monkeypatch):
        async def refuse(**kwargs):
            raise OSError("connection refused")

        monkeypatch.setattr(asyncpg, "create_pool", refuse)
        store = PostgresInvoiceStore("postgresql://localhost/invoices")

        with pytest.raises(StoreError, match="Failed to connect"):
            await store.distinct_vendor_names()
