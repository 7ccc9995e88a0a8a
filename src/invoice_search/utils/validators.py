"""Input validation utilities."""

from datetime import date
from decimal import Decimal
from typing import List

from ..models.invoice import Invoice
from ..models.query import SearchFilters, MAX_LIMIT
from ..core.exceptions import ValidationError


def validate_invoice(invoice: Invoice) -> None:
    """
    Validate invoice object.

    Args:
        invoice: Invoice to validate

    Raises:
        ValidationError: If invoice is invalid
    """
    try:
        if not isinstance(invoice, Invoice):
            raise ValidationError("Invalid invoice type")

        if invoice.id <= 0:
            raise ValidationError("Invoice ID must be positive")

        if not invoice.invoice_number or not invoice.invoice_number.strip():
            raise ValidationError("Invoice number is required")

        if not isinstance(invoice.invoice_date, date):
            raise ValidationError("Invoice date must be a date object")

        if not isinstance(invoice.total_amount, Decimal):
            raise ValidationError("Total amount must be a Decimal")

        if invoice.total_amount < 0:
            raise ValidationError("Total amount cannot be negative")

        if invoice.embedding is not None and invoice.embedding.ndim != 1:
            raise ValidationError("Embedding must be a one-dimensional vector")

    except Exception as e:
        if isinstance(e, ValidationError):
            raise
        raise ValidationError(f"Invoice validation failed: {str(e)}")


def validate_invoices_batch(invoices: List[Invoice]) -> None:
    """
    Validate a batch of invoices.

    Args:
        invoices: List of invoices to validate

    Raises:
        ValidationError: If any invoice is invalid
    """
    if not invoices:
        raise ValidationError("Invoice list cannot be empty")

    if len(invoices) > 10000:
        raise ValidationError("Cannot process more than 10,000 invoices in a single batch")

    # Check for duplicate IDs
    invoice_ids = set()
    for invoice in invoices:
        validate_invoice(invoice)

        if invoice.id in invoice_ids:
            raise ValidationError(f"Duplicate invoice ID found: {invoice.id}")
        invoice_ids.add(invoice.id)


def validate_filters(filters: SearchFilters) -> None:
    """
    Validate caller-supplied search filters.

    Args:
        filters: Filters to validate

    Raises:
        ValidationError: If filters are invalid
    """
    if not isinstance(filters, SearchFilters):
        raise ValidationError("Invalid filters type")

    if filters.limit <= 0:
        raise ValidationError("Limit must be positive")

    if filters.limit > MAX_LIMIT:
        raise ValidationError(f"Limit cannot exceed {MAX_LIMIT}")

    if filters.branch_id is not None and filters.branch_id <= 0:
        raise ValidationError("Branch ID must be positive")

    for name in ("amount_min", "amount_max"):
        value = getattr(filters, name)
        if value is not None and value < 0:
            raise ValidationError(f"{name} cannot be negative")
