"""Apply a normalized batch to the catalog store.

Steps run strictly in this order, each depending on the previous one:

1. upsert products by id
2. upsert variants by SKU, then read back their durable ids
3. append one history snapshot per variant
4. replace tags, options and specs of every product in the batch
5. replace related-product links, restricted to products in the batch

A failing step raises PersistenceError naming the step and batch. Earlier
steps are not rolled back; upserts make the next run converge.
"""

import sqlite3
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Hashable, Iterable, List, Optional, Sequence, TypeVar

from storesync.config import LINK_TYPE_RELATED, WRITE_BATCH_SIZE
from storesync.db import CatalogStore
from storesync.errors import PersistenceError
from storesync.logging_config import get_logger, log_sync_event
from storesync.models import HistoryRecord, LinkedProductRecord, SyncBatch, VariantRecord

__all__ = ["SyncResult", "SyncEngine", "dedupe_records", "build_links"]

logger = get_logger("sync")

T = TypeVar("T")


@dataclass
class SyncResult:
    """Row counts written per step."""

    products: int = 0
    variants: int = 0
    history: int = 0
    tags: int = 0
    options: int = 0
    specs: int = 0
    linked_products: int = 0
    unresolved_skus: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict[str, int]:
        return {
            "products": self.products,
            "variants": self.variants,
            "history": self.history,
            "tags": self.tags,
            "options": self.options,
            "specs": self.specs,
            "linked_products": self.linked_products,
        }


def dedupe_records(records: Iterable[T], key: Callable[[T], Hashable]) -> List[T]:
    """Keep the first record for each key, preserving order."""
    unique: Dict[Hashable, T] = {}
    for record in records:
        unique.setdefault(key(record), record)
    return list(unique.values())


def build_links(
    links: Dict[str, List[str]],
    known_ids: Iterable[str],
    link_type: str = LINK_TYPE_RELATED,
) -> List[LinkedProductRecord]:
    """Directed links whose target is in ``known_ids``; never dangling, never self."""
    known = set(known_ids)
    records = [
        LinkedProductRecord(product_id=source, linked_product_id=target, link_type=link_type)
        for source, targets in links.items()
        for target in targets
        if target in known and target != source
    ]
    return dedupe_records(records, key=lambda r: (r.product_id, r.linked_product_id))


class SyncEngine:
    """Writes a SyncBatch to a CatalogStore in dependency order."""

    def __init__(self, store: CatalogStore, batch_size: int = WRITE_BATCH_SIZE) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self.store = store
        self.batch_size = batch_size

    def _batched(
        self,
        step: str,
        items: Sequence[Any],
        write: Callable[[Sequence[Any]], int],
    ) -> int:
        written = 0
        for index, start in enumerate(range(0, len(items), self.batch_size)):
            chunk = items[start:start + self.batch_size]
            try:
                written += write(chunk)
            except sqlite3.Error as e:
                logger.error(f"Error in step {step} (batch {index}, {len(chunk)} rows): {e}")
                raise PersistenceError(step, index, e) from e
        self._log_step(step, written)
        return written

    def _log_step(self, step: str, rows: int) -> None:
        logger.info(f"  {step}: {rows} rows")
        log_sync_event("sync_step", {"step": step, "rows": rows}, logger_name="sync")

    def _replace(self, step: str, table: str, product_ids: List[str], rows: Sequence[Any]) -> int:
        # Delete and insert go per product chunk so each call covers
        # complete child sets
        rows_by_product: Dict[str, List[Any]] = {}
        for row in rows:
            rows_by_product.setdefault(row.product_id, []).append(row)

        written = 0
        for index, start in enumerate(range(0, len(product_ids), self.batch_size)):
            chunk_ids = product_ids[start:start + self.batch_size]
            chunk_rows = [r for pid in chunk_ids for r in rows_by_product.get(pid, [])]
            try:
                written += self.store.replace_children(table, chunk_ids, chunk_rows)
            except sqlite3.Error as e:
                logger.error(f"Error in step {step} (batch {index}): {e}")
                raise PersistenceError(step, index, e) from e
        self._log_step(step, written)
        return written

    def resolve_variant_ids(self, variants: Sequence[VariantRecord]) -> Dict[str, int]:
        sku_to_id: Dict[str, int] = {}
        skus = [v.sku for v in variants]
        for index, start in enumerate(range(0, len(skus), self.batch_size)):
            try:
                sku_to_id.update(self.store.get_variant_ids(skus[start:start + self.batch_size]))
            except sqlite3.Error as e:
                raise PersistenceError("variant_ids", index, e) from e
        return sku_to_id

    def build_history(
        self,
        variants: Sequence[VariantRecord],
        sku_to_id: Dict[str, int],
        now: str,
        unresolved: Optional[List[str]] = None,
    ) -> List[HistoryRecord]:
        history: List[HistoryRecord] = []
        for variant in variants:
            variant_id = sku_to_id.get(variant.sku)
            if variant_id is None:
                logger.warning(f"Could not find variant ID for SKU: {variant.sku}")
                if unresolved is not None:
                    unresolved.append(variant.sku)
                continue
            history.append(HistoryRecord(
                variant_id=variant_id,
                sku=variant.sku,
                price=variant.current_price,
                regular_price=variant.regular_price,
                discount_percent=variant.discount_percent,
                in_stock=variant.in_stock,
                status=variant.status,
                recorded_at=now,
            ))
        return history

    def apply(self, batch: SyncBatch, now: str) -> SyncResult:
        """Write ``batch`` to the store, stamping history with ``now``.

        Raises:
            PersistenceError: If any step fails
        """
        result = SyncResult()
        if not batch.products:
            return result

        products = dedupe_records(batch.products, key=lambda p: p.id)
        product_ids = [p.id for p in products]
        variants = dedupe_records(batch.variants, key=lambda v: v.sku)

        logger.info(f"Saving {len(products)} products to database...")

        # 1. Products first: everything else references them
        result.products = self._batched("products", products, self.store.upsert_products)

        # 2. Variants, then their durable ids for history rows
        result.variants = self._batched("variants", variants, self.store.upsert_variants)
        sku_to_id = self.resolve_variant_ids(variants)

        # 3. One snapshot per variant per run
        history = self.build_history(variants, sku_to_id, now, result.unresolved_skus)
        result.history = self._batched("history", history, self.store.insert_history)

        # 4. Child tables, replaced wholesale for every product in the batch
        tags = dedupe_records(batch.tags, key=lambda t: (t.product_id, t.tag_name))
        options = dedupe_records(batch.options, key=lambda o: (o.product_id, o.option_title))
        specs = dedupe_records(
            batch.specs, key=lambda s: (s.product_id, s.spec_section, s.spec_label)
        )
        result.tags = self._replace("tags", "product_tags", product_ids, tags)
        result.options = self._replace("options", "product_options", product_ids, options)
        result.specs = self._replace("specs", "product_specs", product_ids, specs)

        # 5. Related-product links, only between products synced in this run
        links = build_links(batch.links, product_ids)
        result.linked_products = self._replace(
            "linked_products", "linked_products", product_ids, links
        )

        return result
