"""PostgreSQL invoice store backed by pgvector and fuzzystrmatch."""

import asyncio
import json
import logging
from typing import Any, List, Optional, Tuple

import asyncpg
import numpy as np

from ..models.invoice import Invoice, InvoiceItem
from ..models.query import SearchCriteria
from ..models.result import InvoiceRow, PhoneticCandidate
from .base import InvoiceStore
from ..core.exceptions import PhoneticUnavailableError, StoreError

logger = logging.getLogger(__name__)

INVOICE_COLUMNS = """
    id,
    "invoiceNumber" AS invoice_number,
    "invoiceDate" AS invoice_date,
    "vendorName" AS vendor_name,
    "vendorReference" AS vendor_reference,
    "billNumber" AS bill_number,
    narration,
    "totalAmount" AS total_amount
"""


def build_where_clause(criteria: SearchCriteria, first_param: int = 1) -> Tuple[List[str], List[Any]]:
    """
    Translate criteria into SQL conditions with positional parameters.

    Args:
        criteria: Non-similarity predicates
        first_param: Number of the first ``$n`` placeholder to use

    Returns:
        Conditions to be AND-ed together and their parameter values
    """
    conditions: List[str] = []
    args: List[Any] = []

    def add(template: str, value: Any) -> None:
        args.append(value)
        conditions.append(template.format(f"${first_param + len(args) - 1}"))

    if criteria.branch_id is not None:
        add('"branchId" = {}', criteria.branch_id)
    if criteria.date_range.start is not None:
        add('"invoiceDate" >= {}', criteria.date_range.start)
    if criteria.date_range.end is not None:
        add('"invoiceDate" <= {}', criteria.date_range.end)
    if criteria.amount_range.minimum is not None:
        add('"totalAmount" >= {}', criteria.amount_range.minimum)
    if criteria.amount_range.maximum is not None:
        add('"totalAmount" <= {}', criteria.amount_range.maximum)

    return conditions, args


def format_vector(embedding: np.ndarray) -> str:
    """Render a vector in pgvector's text input format."""
    return "[" + ",".join(repr(float(x)) for x in np.asarray(embedding).ravel()) + "]"


def parse_vector(text: Optional[str]) -> Optional[np.ndarray]:
    """Parse pgvector's text output format."""
    if not text:
        return None
    return np.asarray(json.loads(text), dtype=np.float32)


def _record_to_row(record: Any) -> InvoiceRow:
    return InvoiceRow(
        id=record["id"],
        invoice_number=record["invoice_number"],
        invoice_date=record["invoice_date"],
        vendor_name=record["vendor_name"],
        vendor_reference=record["vendor_reference"],
        bill_number=record["bill_number"],
        narration=record["narration"],
        total_amount=record["total_amount"],
        similarity_score=record["similarity_score"]
    )


class PostgresInvoiceStore(InvoiceStore):
    """
    Invoice store over the ``PurchaseInvoice`` / ``PurchaseInvoiceItem`` tables.

    Requires the ``vector`` extension; phonetic matching additionally needs
    ``fuzzystrmatch`` and is switched off the first time its functions are
    found missing.
    """

    def __init__(self, dsn: str, min_size: int = 1, max_size: int = 10):
        """
        Initialize PostgreSQL store.

        Args:
            dsn: Connection string
            min_size: Minimum pool size
            max_size: Maximum pool size
        """
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self._pool: Optional[asyncpg.Pool] = None
        self._pool_lock = asyncio.Lock()
        self._phonetic_available = True

    async def _get_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            async with self._pool_lock:
                if self._pool is None:
                    try:
                        self._pool = await asyncpg.create_pool(
                            dsn=self.dsn, min_size=self.min_size, max_size=self.max_size
                        )
                    except (OSError, asyncpg.PostgresError) as e:
                        raise StoreError(f"Failed to connect to invoice store: {e}") from e
        return self._pool

    async def _fetch(self, sql: str, *args: Any) -> List[asyncpg.Record]:
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                return await conn.fetch(sql, *args)
        except (OSError, asyncpg.PostgresError) as e:
            raise StoreError(f"Invoice store query failed: {e}") from e

    async def scan_with_similarity(
        self,
        criteria: SearchCriteria,
        query_embedding: np.ndarray
    ) -> List[InvoiceRow]:
        conditions, args = build_where_clause(criteria, first_param=2)
        where = " AND ".join(["embedding IS NOT NULL"] + conditions)
        # No ORDER BY on the distance: callers sort client-side
        sql = f"""
            SELECT {INVOICE_COLUMNS},
                   1 - (embedding <=> $1::vector) AS similarity_score
              FROM "PurchaseInvoice"
             WHERE {where}
        """
        records = await self._fetch(sql, format_vector(query_embedding), *args)
        return [_record_to_row(record) for record in records]

    async def scan_by_filters(self, criteria: SearchCriteria, limit: int) -> List[InvoiceRow]:
        conditions, args = build_where_clause(criteria)
        where = " AND ".join(conditions) if conditions else "1=1"
        sql = f"""
            SELECT {INVOICE_COLUMNS},
                   1.0::float8 AS similarity_score
              FROM "PurchaseInvoice"
             WHERE {where}
             ORDER BY "invoiceDate" DESC
             LIMIT ${len(args) + 1}
        """
        records = await self._fetch(sql, *args, limit)
        return [_record_to_row(record) for record in records]

    async def distinct_vendor_names(self) -> List[str]:
        records = await self._fetch(
            """
            SELECT "vendorName" AS name
              FROM "PurchaseInvoice"
             WHERE "vendorName" IS NOT NULL AND btrim("vendorName") <> ''
             GROUP BY "vendorName"
            """
        )
        return [record["name"] for record in records]

    async def distinct_product_names(self) -> List[str]:
        records = await self._fetch(
            """
            SELECT "productName" AS name
              FROM "PurchaseInvoiceItem"
             WHERE "productName" IS NOT NULL AND btrim("productName") <> ''
             GROUP BY "productName"
            """
        )
        return [record["name"] for record in records]

    @property
    def supports_phonetic(self) -> bool:
        return self._phonetic_available

    async def phonetic_vendor_candidates(self, token: str, limit: int = 5) -> List[PhoneticCandidate]:
        if not self._phonetic_available:
            raise PhoneticUnavailableError("fuzzystrmatch functions are not installed")

        sql = """
            SELECT vendor_name,
                   first_token,
                   soundex(first_token) = soundex($1) AS soundex_match,
                   dmetaphone(first_token) = dmetaphone($1) AS metaphone_match,
                   levenshtein(lower(first_token), lower($1)) AS edit_distance
              FROM (
                    SELECT DISTINCT "vendorName" AS vendor_name,
                           split_part(btrim("vendorName"), ' ', 1) AS first_token
                      FROM "PurchaseInvoice"
                     WHERE "vendorName" IS NOT NULL AND btrim("vendorName") <> ''
                   ) vendors
             ORDER BY soundex_match DESC, metaphone_match DESC, edit_distance ASC
             LIMIT $2
        """
        try:
            records = await self._fetch(sql, token, limit)
        except StoreError as e:
            if isinstance(e.__cause__, asyncpg.exceptions.UndefinedFunctionError):
                self._phonetic_available = False
                logger.warning("Phonetic matching disabled: fuzzystrmatch extension is missing")
                raise PhoneticUnavailableError(str(e.__cause__)) from e
            raise

        return [
            PhoneticCandidate(
                vendor_name=record["vendor_name"],
                first_token=record["first_token"],
                soundex_match=bool(record["soundex_match"]),
                metaphone_match=bool(record["metaphone_match"]),
                edit_distance=int(record["edit_distance"])
            )
            for record in records
        ]

    async def get_invoice(self, invoice_id: int) -> Optional[Invoice]:
        records = await self._fetch(
            f"""
            SELECT {INVOICE_COLUMNS},
                   "branchId" AS branch_id,
                   embedding::text AS embedding
              FROM "PurchaseInvoice"
             WHERE id = $1
            """,
            invoice_id
        )
        if not records:
            return None

        record = records[0]
        items = await self._fetch(
            """
            SELECT "productName" AS product_name, quantity, price, "productCode" AS product_code
              FROM "PurchaseInvoiceItem"
             WHERE "purchaseInvoiceId" = $1
             ORDER BY "srNo", id
            """,
            invoice_id
        )

        return Invoice(
            id=record["id"],
            invoice_number=record["invoice_number"],
            invoice_date=record["invoice_date"],
            branch_id=record["branch_id"],
            vendor_name=record["vendor_name"],
            vendor_reference=record["vendor_reference"],
            bill_number=record["bill_number"],
            narration=record["narration"],
            total_amount=record["total_amount"],
            items=[
                InvoiceItem(
                    product_name=item["product_name"],
                    quantity=item["quantity"],
                    price=item["price"],
                    product_code=item["product_code"]
                )
                for item in items
                if item["product_name"] and item["product_name"].strip()
            ],
            embedding=parse_vector(record["embedding"])
        )

    async def update_embedding(self, invoice_id: int, embedding: np.ndarray) -> None:
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                status = await conn.execute(
                    'UPDATE "PurchaseInvoice" SET embedding = $1::vector, "updatedAt" = NOW() WHERE id = $2',
                    format_vector(embedding),
                    invoice_id
                )
        except (OSError, asyncpg.PostgresError) as e:
            raise StoreError(f"Failed to store embedding for invoice {invoice_id}: {e}") from e

        if status.endswith(" 0"):
            raise StoreError(f"Invoice with id {invoice_id} not found")

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
