"""Search result and matching data models."""

import math
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional, Union
from dataclasses import dataclass


@dataclass
class InvoiceRow:
    """
    Raw invoice row as returned by a store scan.

    Text and amount columns may be null; the amount may arrive as a string
    from drivers that stringify numerics.
    """
    id: int
    invoice_number: Optional[str]
    invoice_date: Optional[date]
    vendor_name: Optional[str] = None
    vendor_reference: Optional[str] = None
    bill_number: Optional[str] = None
    narration: Optional[str] = None
    total_amount: Optional[Union[Decimal, float, int, str]] = None
    similarity_score: Optional[float] = None

    @property
    def score(self) -> float:
        """Similarity as a finite float; null, NaN and infinite scores count as 0."""
        if self.similarity_score is None:
            return 0.0
        value = float(self.similarity_score)
        return value if math.isfinite(value) else 0.0


def _coerce_amount(value: Optional[Union[Decimal, float, int, str]]) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal("0")


@dataclass
class SearchResult:
    """
    Ranked invoice match.

    Attributes:
        id: Invoice identifier
        invoice_number: Invoice number
        invoice_date: Invoice date
        vendor_name: Vendor name ("" when unknown)
        vendor_reference: Vendor reference ("" when unknown)
        bill_number: Bill number ("" when unknown)
        narration: Narration ("" when unknown)
        total_amount: Invoice total (0 when unknown)
        similarity_score: 1 - cosine distance, or 1.0 for filter-only matches
        rank: Result ranking position (1-based)
    """
    id: int
    invoice_number: str
    invoice_date: Optional[date]
    vendor_name: str
    vendor_reference: str
    bill_number: str
    narration: str
    total_amount: Decimal
    similarity_score: float
    rank: int

    def __post_init__(self) -> None:
        """Validate search result."""
        if self.rank <= 0:
            raise ValueError("Rank must be positive")

    @classmethod
    def from_row(cls, row: InvoiceRow, rank: int) -> 'SearchResult':
        """Map a store row, coalescing nulls to empty text and zero amounts."""
        return cls(
            id=row.id,
            invoice_number=row.invoice_number or "",
            invoice_date=row.invoice_date,
            vendor_name=row.vendor_name or "",
            vendor_reference=row.vendor_reference or "",
            bill_number=row.bill_number or "",
            narration=row.narration or "",
            total_amount=_coerce_amount(row.total_amount),
            similarity_score=row.score,
            rank=rank
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "invoice_date": self.invoice_date.isoformat() if self.invoice_date else None,
            "vendor_name": self.vendor_name,
            "vendor_reference": self.vendor_reference,
            "bill_number": self.bill_number,
            "narration": self.narration,
            "total_amount": float(self.total_amount),
            "similarity_score": round(self.similarity_score, 4),
            "rank": self.rank
        }


@dataclass(frozen=True)
class FuzzyMatchResult:
    """Outcome of correcting one token or phrase."""
    original: str
    corrected: str
    was_changed: bool
    confidence: float

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError("Confidence must be between 0.0 and 1.0")

    @classmethod
    def unchanged(cls, token: str) -> 'FuzzyMatchResult':
        return cls(original=token, corrected=token, was_changed=False, confidence=0.0)


@dataclass(frozen=True)
class PhoneticCandidate:
    """
    Vendor compared phonetically against a query token.

    Attributes:
        vendor_name: Full vendor name as stored
        first_token: First whitespace token of the vendor name
        soundex_match: Soundex codes of token and first token are equal
        metaphone_match: Metaphone codes of token and first token are equal
        edit_distance: Levenshtein distance between token and first token
    """
    vendor_name: str
    first_token: str
    soundex_match: bool
    metaphone_match: bool
    edit_distance: int


@dataclass(frozen=True)
class CacheStats:
    """Vocabulary cache snapshot summary."""
    vendor_count: int
    product_count: int
    last_refreshed: Optional[datetime]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "vendor_count": self.vendor_count,
            "product_count": self.product_count,
            "last_refreshed": self.last_refreshed.isoformat() if self.last_refreshed else None,
        }
