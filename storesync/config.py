"""Configuration and constants for the catalog sync."""

import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv

__all__ = [
    "STORE_BASE_URL",
    "STORE_REGION",
    "STORE_LANGUAGE",
    "CATEGORIES",
    "HEADERS",
    "REQUEST_TIMEOUT",
    "MAX_RETRIES",
    "RETRY_BACKOFF_BASE",
    "MAX_RETRY_BACKOFF",
    "RETRY_STATUS_CODES",
    "FETCH_WORKERS",
    "DB_PATH",
    "WRITE_BATCH_SIZE",
    "DEFAULT_CURRENCY",
    "DEFAULT_STATUS",
    "AVAILABLE_STATUS",
    "LINK_TYPE_RELATED",
    "LOG_DIR",
]

# Determine project root (parent of the 'storesync' directory)
_PROJECT_ROOT = Path(__file__).parent.parent

# Load .env before any of the overrides below are read
load_dotenv(dotenv_path=_PROJECT_ROOT / ".env")


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if not raw:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


# Upstream storefront
STORE_BASE_URL = os.getenv("STORESYNC_BASE_URL", "https://store.ui.com")
STORE_REGION = os.getenv("STORESYNC_REGION", "us")
STORE_LANGUAGE = os.getenv("STORESYNC_LANGUAGE", "en")

# Categories to sync. Order matters: a product listed in several categories
# is attributed to the first one in this list.
CATEGORIES: List[str] = _env_list(
    "STORESYNC_CATEGORIES",
    [
        "all-cloud-gateways",
        "all-switching",
        "all-wifi",
        "all-cameras-nvrs",
        "all-door-access",
        "all-integrations",
        "all-advanced-hosting",
        "accessories-cables-dacs",
    ],
)

HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; storesync catalog monitor)",
    "Accept": "text/html,application/json",
}

# Every upstream call carries this timeout (seconds)
REQUEST_TIMEOUT = float(os.getenv("STORESYNC_REQUEST_TIMEOUT", "15"))

# Retry settings with exponential backoff
MAX_RETRIES = int(os.getenv("STORESYNC_MAX_RETRIES", "2"))
RETRY_BACKOFF_BASE = 2.0  # 2^attempt seconds
MAX_RETRY_BACKOFF = 30.0
RETRY_STATUS_CODES = {429, 502, 503, 504}

# Category fetch pool size (1 = sequential)
FETCH_WORKERS = int(os.getenv("STORESYNC_FETCH_WORKERS", "4"))

# Persistence
DB_PATH = os.getenv("STORESYNC_DB_PATH", str(_PROJECT_ROOT / "data" / "catalog.db"))
WRITE_BATCH_SIZE = int(os.getenv("STORESYNC_WRITE_BATCH_SIZE", "500"))

# Normalization defaults
DEFAULT_CURRENCY = "USD"
DEFAULT_STATUS = "Unknown"
AVAILABLE_STATUS = "Available"
LINK_TYPE_RELATED = "related"

LOG_DIR = Path(os.getenv("STORESYNC_LOG_DIR", str(_PROJECT_ROOT / "logs")))
