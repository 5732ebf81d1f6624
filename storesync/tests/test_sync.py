"""Tests for the ordered sync engine."""

import sqlite3
from unittest.mock import patch

import pytest

from storesync.errors import PersistenceError
from storesync.models import SyncBatch
from storesync.normalize import normalize_product
from storesync.sync import SyncEngine, build_links, dedupe_records

RUN_1 = "2024-11-29T06:00:00+00:00"
RUN_2 = "2024-11-30T06:00:00+00:00"


COLOR_OPTION = {"title": "Color", "values": [{"title": "White"}, {"title": "Black"}]}


def spec_section(label, features):
    return {
        "section": {"label": label},
        "features": [
            {"value": value, "note": None, "feature": {"label": name, "icon": None, "note": None}}
            for name, value in features
        ],
    }


def snapshot(store, product_id, skus):
    """Stored rows for one product, without run timestamps or surrogate child ids."""
    def strip(row, *keys):
        return {k: v for k, v in row.items() if k not in keys}

    return {
        "product": strip(store.get_product(product_id), "last_updated"),
        "variants": [strip(store.get_variant(sku), "last_updated") for sku in skus],
        "children": {
            table: [strip(row, "id") for row in store.get_child_rows(table, product_id)]
            for table in ("product_tags", "product_options", "product_specs", "linked_products")
        },
    }


def make_batch(*raws, category="all-switching", now=RUN_1):
    batch = SyncBatch()
    for raw in raws:
        batch.add(normalize_product(raw, category, now))
    return batch


class TestHelpers:
    def test_dedupe_keeps_first(self):
        records = [("a", 1), ("b", 2), ("a", 3)]
        assert dedupe_records(records, key=lambda r: r[0]) == [("a", 1), ("b", 2)]

    def test_build_links_drops_unknown_and_self(self):
        links = {"p1": ["p2", "p1", "gone"], "p2": ["p1", "p1"]}
        records = build_links(links, ["p1", "p2"])
        assert [(r.product_id, r.linked_product_id, r.link_type) for r in records] == [
            ("p1", "p2", "related"),
            ("p2", "p1", "related"),
        ]

    def test_rejects_zero_batch_size(self, store):
        with pytest.raises(ValueError):
            SyncEngine(store, batch_size=0)


class TestApply:
    def test_writes_every_table(self, store, raw_product, raw_variant):
        batch = make_batch(
            raw_product("p1", slug="a", tags=["feature:poe", "sale"], linked=["p2"],
                        variants=[raw_variant("A1"), raw_variant("A2", amount=7900, regular=9900)]),
            raw_product("p2", slug="b", options=[{"title": "Color", "values": [{"title": "White"}]}]),
        )

        result = SyncEngine(store).apply(batch, RUN_1)

        assert result.products == 2
        assert result.variants == 3
        assert result.history == 3
        assert result.tags == 2
        assert result.options == 1
        assert result.linked_products == 1
        assert result.unresolved_skus == []
        assert store.get_history("A2")[0]["discount_percent"] == 20

    def test_empty_batch_is_noop(self, store):
        result = SyncEngine(store).apply(SyncBatch(), RUN_1)
        assert result.as_dict() == {
            "products": 0, "variants": 0, "history": 0, "tags": 0,
            "options": 0, "specs": 0, "linked_products": 0,
        }
        assert store.count_rows("products") == 0

    def test_rerun_only_appends_history(self, store, raw_product, raw_variant):
        def raw():
            return raw_product(
                tags=["sale", "badge"],
                options=[COLOR_OPTION, {"title": "Size", "values": [{"title": "1U"}]}],
                sections=[spec_section("Networking", [("Throughput", "10 Gbps"), ("Ports", "8")])],
                variants=[raw_variant("A1"), raw_variant("A2", amount=7900, regular=9900)],
            )

        engine = SyncEngine(store)
        engine.apply(make_batch(raw()), RUN_1)
        before = snapshot(store, "prod-1", ["A1", "A2"])

        engine.apply(make_batch(raw(), now=RUN_2), RUN_2)
        after = snapshot(store, "prod-1", ["A1", "A2"])

        assert after == before
        assert store.count_rows("variant_history") == 4
        assert store.get_product("prod-1")["last_updated"] == RUN_2
        for sku in ("A1", "A2"):
            history = store.get_history(sku)
            assert [h["recorded_at"] for h in history] == [RUN_1, RUN_2]
            assert {h["variant_id"] for h in history} == {store.get_variant(sku)["id"]}

    def test_shrinking_tag_set_removes_stale_tags(self, store, raw_product):
        engine = SyncEngine(store)
        engine.apply(make_batch(raw_product(tags=["sale", "badge", "poe:24v"])), RUN_1)
        engine.apply(make_batch(raw_product(tags=["sale"])), RUN_2)

        rows = store.get_child_rows("product_tags", "prod-1")
        assert [r["tag_name"] for r in rows] == ["sale"]

    def test_tags_cleared_when_product_has_none(self, store, raw_product):
        engine = SyncEngine(store)
        engine.apply(make_batch(raw_product(tags=["sale"])), RUN_1)
        engine.apply(make_batch(raw_product(tags=[])), RUN_2)

        assert store.get_child_rows("product_tags", "prod-1") == []

    def test_shrinking_options_and_specs(self, store, raw_product):
        engine = SyncEngine(store)
        engine.apply(make_batch(raw_product(
            options=[COLOR_OPTION, {"title": "Size", "values": [{"title": "1U"}]}],
            sections=[
                spec_section("Networking", [("Throughput", "10 Gbps"), ("Ports", "8")]),
                spec_section("Power", [("Max draw", "30 W")]),
            ],
        )), RUN_1)
        engine.apply(make_batch(raw_product(
            options=[COLOR_OPTION],
            sections=[spec_section("Networking", [("Ports", "8")])],
        )), RUN_2)

        options = store.get_child_rows("product_options", "prod-1")
        specs = store.get_child_rows("product_specs", "prod-1")
        assert [(o["option_title"], o["option_values"]) for o in options] == [
            ("Color", ["White", "Black"]),
        ]
        assert [(s["spec_section"], s["spec_label"]) for s in specs] == [("Networking", "Ports")]

    def test_options_and_specs_cleared_when_gone(self, store, raw_product):
        engine = SyncEngine(store)
        engine.apply(make_batch(raw_product(
            options=[COLOR_OPTION], sections=[spec_section("Power", [("Max draw", "30 W")])],
        )), RUN_1)
        engine.apply(make_batch(raw_product()), RUN_2)

        assert store.get_child_rows("product_options", "prod-1") == []
        assert store.get_child_rows("product_specs", "prod-1") == []

    def test_links_limited_to_batch(self, store, raw_product):
        batch = make_batch(
            raw_product("p1", slug="a", linked=["p2", "p3"]),
            raw_product("p2", slug="b"),
        )
        SyncEngine(store).apply(batch, RUN_1)

        rows = store.get_child_rows("linked_products", "p1")
        assert [r["linked_product_id"] for r in rows] == ["p2"]
        assert store.count_rows("linked_products") == 1

    def test_duplicate_skus_write_once(self, store, raw_product, raw_variant):
        batch = make_batch(raw_product(variants=[raw_variant("DUP"), raw_variant("DUP", amount=1)]))
        result = SyncEngine(store).apply(batch, RUN_1)

        assert result.variants == 1
        assert store.get_variant("DUP")["current_price"] == 99.0

    def test_batch_size_one(self, store, raw_product):
        batch = make_batch(*[raw_product(f"p{i}", slug=f"s{i}", tags=["sale"]) for i in range(5)])
        result = SyncEngine(store, batch_size=1).apply(batch, RUN_1)

        assert result.products == 5
        assert result.history == 5
        assert store.count_rows("product_tags") == 5


class TestFailures:
    def test_variant_failure_stops_before_history(self, store, raw_product):
        engine = SyncEngine(store)
        with patch.object(
            store, "upsert_variants", side_effect=sqlite3.OperationalError("disk I/O error")
        ):
            with pytest.raises(PersistenceError) as exc_info:
                engine.apply(make_batch(raw_product()), RUN_1)

        assert exc_info.value.step == "variants"
        assert exc_info.value.batch_index == 0
        assert store.count_rows("products") == 1
        assert store.count_rows("variant_history") == 0

    def test_failure_reports_batch_index(self, store, raw_product):
        batch = make_batch(raw_product("p1", slug="a"), raw_product("p2", slug="b"))
        calls = []

        def flaky(chunk):
            calls.append(chunk)
            if len(calls) == 2:
                raise sqlite3.OperationalError("database is locked")
            return len(chunk)

        with patch.object(store, "upsert_products", side_effect=flaky):
            with pytest.raises(PersistenceError) as exc_info:
                SyncEngine(store, batch_size=1).apply(batch, RUN_1)

        assert exc_info.value.step == "products"
        assert exc_info.value.batch_index == 1

    def test_unresolved_sku_gets_no_history(self, store, raw_product):
        with patch.object(store, "get_variant_ids", return_value={}):
            result = SyncEngine(store).apply(make_batch(raw_product()), RUN_1)

        assert result.unresolved_skus == ["SKU-prod-1"]
        assert result.history == 0
        assert store.count_rows("variant_history") == 0
