"""Storefront catalog sync package."""

__version__ = "0.1.0"

# Re-export main components for convenient imports
from storesync.config import CATEGORIES, DB_PATH
from storesync.db import CatalogStore, init_db
from storesync.errors import (
    BootstrapError,
    CategoryFetchError,
    NormalizationSkip,
    PersistenceError,
)
from storesync.normalize import normalize_product
from storesync.sync import SyncEngine
from storesync.tags import classify_tag
from storesync.workflows import RunStatus, RunSummary, run_sync

__all__ = [
    # Version
    "__version__",
    # Config
    "CATEGORIES",
    "DB_PATH",
    # Errors
    "BootstrapError",
    "CategoryFetchError",
    "NormalizationSkip",
    "PersistenceError",
    # Core
    "CatalogStore",
    "init_db",
    "classify_tag",
    "normalize_product",
    "SyncEngine",
    "RunStatus",
    "RunSummary",
    "run_sync",
]
