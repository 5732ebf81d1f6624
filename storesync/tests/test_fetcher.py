"""Tests for category fetching and HTTP failure handling."""

from unittest.mock import MagicMock

import pytest
import requests

from storesync.errors import CategoryFetchError
from storesync.fetcher import (
    category_data_url,
    fetch_category,
    fetch_category_data,
    iter_products,
)


@pytest.fixture
def no_sleep(monkeypatch):
    """Skip backoff delays."""
    sleeps = []
    monkeypatch.setattr("storesync.http_client.time.sleep", sleeps.append)
    return sleeps


def _session(*responses):
    session = MagicMock(spec=requests.Session)
    session.get.side_effect = list(responses)
    return session


class TestCategoryDataUrl:
    def test_url_shape(self):
        url = category_data_url("abc123", "all-switching")
        assert url == (
            "https://store.ui.com/_next/data/abc123/us/en/category/all-switching.json"
            "?store=us&language=en&category=all-switching"
        )


class TestFetchCategory:
    def test_returns_subcategories(self, storefront, raw_product):
        fake = storefront(categories={"all-wifi": [raw_product("p1"), raw_product("p2")]})

        subs = fetch_category("build-123", "all-wifi", session=fake.session)

        assert len(subs) == 1
        assert [p["id"] for p in subs[0]["products"]] == ["p1", "p2"]

    def test_every_call_has_timeout(self, storefront):
        fake = storefront()
        fetch_category("build-123", "all-wifi", session=fake.session)
        assert fake.session.get.call_args.kwargs["timeout"] > 0

    def test_http_error_yields_empty_list(self, storefront):
        fake = storefront(failures={"all-wifi": 500})
        errors = []

        subs = fetch_category("build-123", "all-wifi", session=fake.session, on_error=errors.append)

        assert subs == []
        assert len(errors) == 1
        assert errors[0].category == "all-wifi"
        assert errors[0].reason == "HTTP 500"

    def test_404_is_not_retried(self, storefront):
        fake = storefront(failures={"all-wifi": 404})
        assert fetch_category("build-123", "all-wifi", session=fake.session) == []
        assert fake.session.get.call_count == 1

    def test_timeout_yields_empty_list(self, no_sleep):
        session = MagicMock(spec=requests.Session)
        session.get.side_effect = requests.exceptions.Timeout("read timed out")

        assert fetch_category("build-123", "all-wifi", session=session) == []

    def test_invalid_json_yields_empty_list(self, http_response):
        session = _session(http_response(200, "<html>not json</html>"))
        assert fetch_category("build-123", "all-wifi", session=session) == []

    def test_missing_page_props_is_empty(self, http_response):
        session = _session(http_response(200, {"notFound": True}))
        assert fetch_category("build-123", "all-wifi", session=session) == []


class TestRetries:
    def test_retries_transient_status(self, http_response, no_sleep):
        body = {"pageProps": {"subCategories": [{"id": "s", "products": []}]}}
        session = _session(http_response(503, "busy"), http_response(200, body))

        subs = fetch_category_data("build-123", "all-wifi", session=session)

        assert subs == [{"id": "s", "products": []}]
        assert session.get.call_count == 2
        assert len(no_sleep) == 1

    def test_gives_up_after_max_retries(self, http_response, no_sleep):
        session = MagicMock(spec=requests.Session)
        session.get.return_value = http_response(503, "busy")

        with pytest.raises(CategoryFetchError, match="HTTP 503"):
            fetch_category_data("build-123", "all-wifi", session=session)


class TestIterProducts:
    def test_skips_subcategories_without_products(self):
        subs = [
            {"id": "a", "products": [{"id": "p1"}]},
            {"id": "b"},
            {"id": "c", "products": None},
            {"id": "d", "products": [{"id": "p2"}, {"id": "p3"}]},
        ]
        assert [p["id"] for p in iter_products(subs)] == ["p1", "p2", "p3"]
