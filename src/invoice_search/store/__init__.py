"""Invoice store port and implementations."""

from .base import InvoiceStore
from .memory import InMemoryInvoiceStore
from .postgres import PostgresInvoiceStore

__all__ = ["InvoiceStore", "InMemoryInvoiceStore", "PostgresInvoiceStore"]
