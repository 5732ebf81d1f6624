"""Shared fixtures for the storesync test suite.

Nothing here touches the network: upstream calls go through a fake
storefront that routes requests by URL.
"""

import json
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock
from urllib.parse import parse_qs, urlparse

import pytest
import requests

from storesync.db import CatalogStore


def make_response(status_code: int = 200, body: Any = "", url: str = "https://store.test/"):
    """Build a real requests.Response so raise_for_status/json behave normally."""
    resp = requests.Response()
    resp.status_code = status_code
    if isinstance(body, (dict, list)):
        body = json.dumps(body)
    resp._content = body.encode("utf-8")
    resp.encoding = "utf-8"
    resp.url = url
    return resp


def build_raw_product(
    product_id: str = "prod-1",
    name: str = "Dream Machine Pro",
    slug: str = "udm-pro",
    status: Optional[str] = "Available",
    variants: Optional[List[Dict[str, Any]]] = None,
    tags: Optional[List[str]] = None,
    options: Optional[List[Dict[str, Any]]] = None,
    sections: Optional[List[Dict[str, Any]]] = None,
    linked: Optional[List[str]] = None,
) -> Dict[str, Any]:
    """Upstream product payload in the shape of the category data API."""
    if variants is None:
        variants = [{
            "id": f"{product_id}-v1",
            "sku": f"SKU-{product_id}",
            "hasUiCare": True,
            "isVisibleInStore": True,
            "displayPrice": {"amount": 37900, "currency": "USD"},
            "displayRegularPrice": None,
        }]
    return {
        "id": product_id,
        "slug": slug,
        "name": name,
        "title": f"{name} title",
        "shortDescription": "Short description",
        "collectionSlug": None,
        "subcategoryId": "sub-1",
        "status": status,
        "minDisplayPrice": {"amount": 37900, "currency": "USD"},
        "minDisplayRegularPrice": None,
        "thumbnail": {"url": f"https://images.test/{slug}.png"},
        "tags": [{"name": t} for t in (tags or [])],
        "variants": variants,
        "options": options or [],
        "technicalSpecification": {"id": "ts", "sections": sections or []},
        "linkedProducts": [{"id": i, "slug": i, "name": i} for i in (linked or [])],
    }


def build_variant(
    sku: str,
    amount: Optional[int] = 9900,
    regular: Optional[int] = None,
    variant_id: Optional[str] = None,
) -> Dict[str, Any]:
    return {
        "id": variant_id or f"v-{sku}",
        "sku": sku,
        "hasUiCare": False,
        "isVisibleInStore": True,
        "displayPrice": {"amount": amount, "currency": "USD"} if amount is not None else None,
        "displayRegularPrice": (
            {"amount": regular, "currency": "USD"} if regular is not None else None
        ),
    }


class FakeStorefront:
    """Routes session.get calls to canned landing page and category responses.

    Args:
        categories: category slug -> list of raw products (one subcategory)
        failures: category slug -> HTTP status to return instead
        build_id: token embedded in the landing page; None for a page without it
    """

    def __init__(
        self,
        categories: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        failures: Optional[Dict[str, int]] = None,
        build_id: Optional[str] = "build-123",
    ):
        self.categories = categories or {}
        self.failures = failures or {}
        self.build_id = build_id
        self.session = MagicMock(spec=requests.Session)
        self.session.get.side_effect = self.get

    def landing_html(self) -> str:
        if self.build_id is None:
            return "<html><head></head><body>maintenance</body></html>"
        next_data = json.dumps({"buildId": self.build_id, "page": "/[store]/[language]"})
        return (
            "<html><head></head><body>"
            f'<script id="__NEXT_DATA__" type="application/json">{next_data}</script>'
            "</body></html>"
        )

    def get(self, url: str, timeout: Optional[float] = None):
        assert timeout is not None, "upstream calls must carry a timeout"
        if "/_next/data/" not in url:
            return make_response(200, self.landing_html(), url)

        category = parse_qs(urlparse(url).query)["category"][0]
        if category in self.failures:
            return make_response(self.failures[category], "Internal Server Error", url)
        products = self.categories.get(category, [])
        body = {"pageProps": {"subCategories": [{"id": f"{category}-sub", "products": products}]}}
        return make_response(200, body, url)


@pytest.fixture
def temp_db(tmp_path):
    """Path to a fresh SQLite database."""
    return str(tmp_path / "catalog.db")


@pytest.fixture
def store(temp_db):
    """Initialized catalog store on a temporary database."""
    return CatalogStore(temp_db)


@pytest.fixture
def raw_product():
    """Factory for upstream product payloads."""
    return build_raw_product


@pytest.fixture
def raw_variant():
    """Factory for upstream variant payloads."""
    return build_variant


@pytest.fixture
def http_response():
    """Factory for requests.Response objects."""
    return make_response


@pytest.fixture
def storefront():
    """Factory for fake storefront sessions."""
    return FakeStorefront
