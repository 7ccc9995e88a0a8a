"""Query data models: caller filters and preprocessed queries."""

from datetime import date
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple
from dataclasses import dataclass, field
from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_LIMIT = 20
MAX_LIMIT = 1000


@dataclass(frozen=True)
class DateRange:
    """Inclusive calendar date range."""
    start: Optional[date] = None
    end: Optional[date] = None

    def __post_init__(self) -> None:
        """Validate date range."""
        if self.start and self.end and self.start > self.end:
            raise ValueError("Start date must be before or equal to end date")

    def contains(self, value: date) -> bool:
        """Check if date falls within range."""
        if self.start and value < self.start:
            return False
        if self.end and value > self.end:
            return False
        return True

    @property
    def is_set(self) -> bool:
        return self.start is not None or self.end is not None


@dataclass(frozen=True)
class AmountRange:
    """Inclusive amount range."""
    minimum: Optional[Decimal] = None
    maximum: Optional[Decimal] = None

    def __post_init__(self) -> None:
        """Validate amount range."""
        if self.minimum is not None and self.maximum is not None and self.minimum > self.maximum:
            raise ValueError("Minimum amount must be less than or equal to maximum amount")

    def contains(self, value: Decimal) -> bool:
        """Check if amount falls within range."""
        if self.minimum is not None and value < self.minimum:
            return False
        if self.maximum is not None and value > self.maximum:
            return False
        return True

    @property
    def is_set(self) -> bool:
        return self.minimum is not None or self.maximum is not None


@dataclass
class SearchFilters:
    """
    Explicit filters supplied by the caller.

    Attributes:
        branch_id: Restrict to one branch (never derived from query text)
        date_from: Earliest invoice date
        date_to: Latest invoice date
        amount_min: Smallest invoice total
        amount_max: Largest invoice total
        limit: Maximum number of results to return
    """
    branch_id: Optional[int] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    amount_min: Optional[Decimal] = None
    amount_max: Optional[Decimal] = None
    limit: int = DEFAULT_LIMIT

    def __post_init__(self) -> None:
        """Validate filter parameters."""
        if self.limit <= 0:
            raise ValueError("Limit must be positive")
        if self.limit > MAX_LIMIT:
            raise ValueError(f"Limit cannot exceed {MAX_LIMIT}")
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError("date_from must be before or equal to date_to")
        if self.amount_min is not None and self.amount_max is not None and self.amount_min > self.amount_max:
            raise ValueError("amount_min must be less than or equal to amount_max")


class SearchFiltersModel(BaseModel):
    """Pydantic model for search request validation in API contexts."""

    query: str = Field("", description="Free-form search text")
    branch_id: Optional[int] = Field(None, gt=0, description="Branch filter")
    date_from: Optional[date] = Field(None, description="Earliest invoice date")
    date_to: Optional[date] = Field(None, description="Latest invoice date")
    amount_min: Optional[Decimal] = Field(None, ge=0, description="Smallest invoice total")
    amount_max: Optional[Decimal] = Field(None, ge=0, description="Largest invoice total")
    limit: int = Field(DEFAULT_LIMIT, ge=1, le=MAX_LIMIT, description="Maximum results to return")

    @field_validator('query')
    @classmethod
    def validate_query(cls, v: str) -> str:
        """Trim surrounding whitespace."""
        return v.strip()

    @model_validator(mode='after')
    def validate_ranges(self) -> 'SearchFiltersModel':
        """Reject inverted ranges."""
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError('date_from must be before or equal to date_to')
        if self.amount_min is not None and self.amount_max is not None and self.amount_min > self.amount_max:
            raise ValueError('amount_min must be less than or equal to amount_max')
        return self

    def to_filters(self) -> SearchFilters:
        """Convert to SearchFilters dataclass."""
        return SearchFilters(
            branch_id=self.branch_id,
            date_from=self.date_from,
            date_to=self.date_to,
            amount_min=self.amount_min,
            amount_max=self.amount_max,
            limit=self.limit
        )


@dataclass(frozen=True)
class PreprocessedQuery:
    """
    Structured view of a free-form query.

    Attributes:
        normalized_query: Residual text for embedding; empty means no semantic content
        date_from: Start of extracted date range
        date_to: End of extracted date range
        amount_min: Lower bound of extracted amount range
        amount_max: Upper bound of extracted amount range
        vendor_names: Vendor candidates in order of discovery
        product_names: Product candidates in order of discovery
    """
    normalized_query: str = ""
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    amount_min: Optional[Decimal] = None
    amount_max: Optional[Decimal] = None
    vendor_names: Tuple[str, ...] = field(default_factory=tuple)
    product_names: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def has_semantic_content(self) -> bool:
        return bool(self.normalized_query)

    @property
    def date_range(self) -> DateRange:
        return DateRange(self.date_from, self.date_to)

    @property
    def amount_range(self) -> AmountRange:
        return AmountRange(self.amount_min, self.amount_max)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging and serialization."""
        return {
            "normalized_query": self.normalized_query,
            "date_from": self.date_from.isoformat() if self.date_from else None,
            "date_to": self.date_to.isoformat() if self.date_to else None,
            "amount_min": str(self.amount_min) if self.amount_min is not None else None,
            "amount_max": str(self.amount_max) if self.amount_max is not None else None,
            "vendor_names": list(self.vendor_names),
            "product_names": list(self.product_names),
        }


@dataclass(frozen=True)
class SearchCriteria:
    """Non-similarity predicates handed to the invoice store."""
    branch_id: Optional[int] = None
    date_range: DateRange = field(default_factory=DateRange)
    amount_range: AmountRange = field(default_factory=AmountRange)

    @property
    def is_empty(self) -> bool:
        return self.branch_id is None and not self.date_range.is_set and not self.amount_range.is_set
