"""Exception types raised by the sync pipeline.

Only BootstrapError and PersistenceError end a run. CategoryFetchError and
NormalizationSkip are handled inside the component that raises them.
"""

from typing import Optional

__all__ = [
    "SyncError",
    "BootstrapError",
    "CategoryFetchError",
    "NormalizationSkip",
    "PersistenceError",
]


class SyncError(Exception):
    """Base class for all pipeline errors."""
    pass


class BootstrapError(SyncError):
    """Raised when the storefront build token cannot be resolved."""
    pass


class CategoryFetchError(SyncError):
    """Raised when one category listing cannot be fetched or decoded."""

    def __init__(self, category: str, reason: str):
        super().__init__(f"Failed to fetch category {category}: {reason}")
        self.category = category
        self.reason = reason


class NormalizationSkip(SyncError):
    """Raised when an upstream product cannot be turned into records."""

    def __init__(self, product_id: Optional[str], reason: str):
        super().__init__(f"Skipping product {product_id or '<no id>'}: {reason}")
        self.product_id = product_id
        self.reason = reason


class PersistenceError(SyncError):
    """Raised when a write or read against the store fails during a sync step."""

    def __init__(self, step: str, batch_index: int, cause: Exception):
        super().__init__(f"Sync step '{step}' failed on batch {batch_index}: {cause}")
        self.step = step
        self.batch_index = batch_index
        self.cause = cause
