"""Purchase invoice data model with validation."""

from datetime import date
from decimal import Decimal
from typing import List, Optional
from dataclasses import dataclass, field

import numpy as np
from pydantic import BaseModel, Field, field_validator


@dataclass
class InvoiceItem:
    """
    A single line item of a purchase invoice.

    Attributes:
        product_name: Product name as recorded on the invoice
        quantity: Quantity purchased
        price: Unit price
        product_code: Optional product code
    """
    product_name: str
    quantity: Decimal = Decimal("1")
    price: Decimal = Decimal("0")
    product_code: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate item after initialization."""
        if not self.product_name or not self.product_name.strip():
            raise ValueError("Product name cannot be empty")
        if self.quantity < 0:
            raise ValueError("Quantity cannot be negative")

    @property
    def total(self) -> Decimal:
        return self.quantity * self.price


@dataclass
class Invoice:
    """
    Purchase invoice with the fields used for search.

    Attributes:
        id: Store identifier
        invoice_number: Human-facing invoice number
        invoice_date: Invoice date
        branch_id: Branch the invoice was booked in
        vendor_name: Vendor display name
        vendor_reference: Vendor's own reference
        bill_number: Vendor bill number
        narration: Free-text narration
        total_amount: Invoice total
        items: Line items
        embedding: Vector for semantic ranking, None until generated
    """
    id: int
    invoice_number: str
    invoice_date: date
    branch_id: Optional[int] = None
    vendor_name: Optional[str] = None
    vendor_reference: Optional[str] = None
    bill_number: Optional[str] = None
    narration: Optional[str] = None
    total_amount: Decimal = Decimal("0")
    items: List[InvoiceItem] = field(default_factory=list)
    embedding: Optional[np.ndarray] = None

    def __post_init__(self) -> None:
        """Validate invoice after initialization."""
        if self.id <= 0:
            raise ValueError("Invoice ID must be positive")
        if not self.invoice_number or not self.invoice_number.strip():
            raise ValueError("Invoice number cannot be empty")
        if not isinstance(self.invoice_date, date):
            raise ValueError(f"Invalid invoice date: {self.invoice_date}")

    @property
    def product_names(self) -> List[str]:
        return [item.product_name for item in self.items]


class InvoiceItemModel(BaseModel):
    """Pydantic model for line item validation in API contexts."""

    product_name: str = Field(..., min_length=1, description="Product name")
    quantity: Decimal = Field(Decimal("1"), ge=0, description="Quantity purchased")
    price: Decimal = Field(Decimal("0"), ge=0, description="Unit price")
    product_code: Optional[str] = Field(None, description="Product code")

    @field_validator('product_name')
    @classmethod
    def validate_product_name(cls, v: str) -> str:
        """Ensure product name is not just whitespace."""
        if not v.strip():
            raise ValueError('Product name cannot be empty or whitespace only')
        return v.strip()

    def to_item(self) -> InvoiceItem:
        """Convert to InvoiceItem dataclass."""
        return InvoiceItem(
            product_name=self.product_name,
            quantity=self.quantity,
            price=self.price,
            product_code=self.product_code
        )


class InvoiceModel(BaseModel):
    """Pydantic model for invoice validation in API contexts."""

    id: int = Field(..., gt=0, description="Invoice identifier")
    invoice_number: str = Field(..., min_length=1, max_length=20, description="Invoice number")
    invoice_date: date = Field(..., description="Invoice date")
    branch_id: Optional[int] = Field(None, description="Branch identifier")
    vendor_name: Optional[str] = Field(None, max_length=255, description="Vendor name")
    vendor_reference: Optional[str] = Field(None, max_length=255, description="Vendor reference")
    bill_number: Optional[str] = Field(None, max_length=50, description="Vendor bill number")
    narration: Optional[str] = Field(None, description="Narration")
    total_amount: Decimal = Field(Decimal("0"), ge=0, description="Invoice total")
    items: List[InvoiceItemModel] = Field(default_factory=list, description="Line items")

    @field_validator('vendor_name')
    @classmethod
    def validate_vendor_name(cls, v: Optional[str]) -> Optional[str]:
        """Normalise blank vendor names to None."""
        if v is None or not v.strip():
            return None
        return v.strip()

    def to_invoice(self) -> Invoice:
        """Convert to Invoice dataclass."""
        return Invoice(
            id=self.id,
            invoice_number=self.invoice_number,
            invoice_date=self.invoice_date,
            branch_id=self.branch_id,
            vendor_name=self.vendor_name,
            vendor_reference=self.vendor_reference,
            bill_number=self.bill_number,
            narration=self.narration,
            total_amount=self.total_amount,
            items=[item.to_item() for item in self.items]
        )
