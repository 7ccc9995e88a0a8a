"""Custom exceptions for invoice search system."""


class InvoiceSearchError(Exception):
    """Base exception for invoice search operations."""
    pass


class ValidationError(InvoiceSearchError):
    """Exception raised during input validation."""
    pass


class ConfigurationError(InvoiceSearchError):
    """Exception raised for configuration issues."""
    pass


class EmbeddingError(InvoiceSearchError):
    """Exception raised when the embedding provider fails or is not configured."""
    pass


class StoreError(InvoiceSearchError):
    """Exception raised during invoice store operations."""
    pass


class PhoneticUnavailableError(StoreError):
    """Exception raised when the store has no phonetic matching capability."""
    pass


class SearchError(InvoiceSearchError):
    """Exception raised during search operations."""
    pass
