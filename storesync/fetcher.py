"""Fetch the nested subcategory/product listing for one category."""

from typing import Any, Callable, Dict, List, Optional

import requests  # type: ignore[import-untyped]

from storesync.config import STORE_BASE_URL, STORE_LANGUAGE, STORE_REGION
from storesync.errors import CategoryFetchError
from storesync.http_client import http_get
from storesync.logging_config import get_logger, log_sync_event

__all__ = ["category_data_url", "fetch_category_data", "fetch_category", "iter_products"]

logger = get_logger("fetcher")


def category_data_url(
    build_id: str,
    category_slug: str,
    base_url: str = STORE_BASE_URL,
    region: str = STORE_REGION,
    language: str = STORE_LANGUAGE,
) -> str:
    """Build the data API URL for a category listing."""
    return (
        f"{base_url}/_next/data/{build_id}/{region}/{language}/category/{category_slug}.json"
        f"?store={region}&language={language}&category={category_slug}"
    )


def fetch_category_data(
    build_id: str,
    category_slug: str,
    session: Optional[requests.Session] = None,
) -> List[Dict[str, Any]]:
    """Fetch and decode the subcategory list for a category.

    Raises:
        CategoryFetchError: On network failure, timeout, non-2xx status or
            a body that is not the expected JSON document
    """
    url = category_data_url(build_id, category_slug)

    try:
        resp = http_get(url, session=session)
    except requests.exceptions.HTTPError as e:
        status = e.response.status_code if e.response is not None else "unknown"
        raise CategoryFetchError(category_slug, f"HTTP {status}") from e
    except requests.exceptions.RequestException as e:
        raise CategoryFetchError(category_slug, f"{type(e).__name__}: {e}") from e

    try:
        data = resp.json()
    except ValueError as e:
        raise CategoryFetchError(category_slug, "response is not valid JSON") from e

    if not isinstance(data, dict):
        raise CategoryFetchError(category_slug, "unexpected response shape")

    page_props = data.get("pageProps") or {}
    if not isinstance(page_props, dict):
        raise CategoryFetchError(category_slug, "unexpected response shape")
    sub_categories = page_props.get("subCategories") or []
    if not isinstance(sub_categories, list):
        raise CategoryFetchError(category_slug, "subCategories is not a list")
    return sub_categories


def fetch_category(
    build_id: str,
    category_slug: str,
    session: Optional[requests.Session] = None,
    on_error: Optional[Callable[[CategoryFetchError], None]] = None,
) -> List[Dict[str, Any]]:
    """Fetch a category listing, treating any failure as an empty category.

    A failed category is logged and yields no products so the other
    categories of the run can still be synced. ``on_error`` is called with
    the error so callers can report which categories failed.
    """
    logger.info(f"Fetching data for category: {category_slug}")
    try:
        sub_categories = fetch_category_data(build_id, category_slug, session=session)
    except CategoryFetchError as e:
        logger.error(str(e))
        log_sync_event(
            "category_failed",
            {"category": category_slug, "reason": e.reason},
            logger_name="fetcher",
        )
        if on_error is not None:
            on_error(e)
        return []

    product_count = sum(1 for _ in iter_products(sub_categories))
    logger.info(
        f"  {category_slug}: {len(sub_categories)} subcategories, {product_count} products"
    )
    log_sync_event(
        "category_fetched",
        {
            "category": category_slug,
            "subcategories": len(sub_categories),
            "products": product_count,
        },
        logger_name="fetcher",
    )
    return sub_categories


def iter_products(sub_categories: List[Dict[str, Any]]):
    """Yield raw product objects in listing order, skipping empty subcategories."""
    for sub in sub_categories:
        products = sub.get("products") if isinstance(sub, dict) else None
        if not products:
            continue
        for product in products:
            if isinstance(product, dict):
                yield product
