from __future__ import annotations


class CatalogError(Exception):
    """Base class for lab test catalog errors."""


class InvalidInput(CatalogError):
    """Raised when a submitted test fails validation. Nothing is written."""


class RecordNotFound(CatalogError):
    def __init__(self, position: int, size: int):
        super().__init__(f"No test at position {position} (store holds {size})")
        self.position = position
        self.size = size


class StorageError(CatalogError):
    """Raised when the backing medium cannot be read or written."""


class StoreNotOpen(CatalogError):
    """Raised when a request arrives before the store was opened."""
