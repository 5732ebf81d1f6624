"""Cross-category deduplication of upstream products."""

import logging
import threading
from typing import Any, Dict, Iterable, Optional, Set

from storesync.errors import NormalizationSkip
from storesync.logging_config import get_logger, log_sync_event
from storesync.models import NormalizedProduct
from storesync.normalize import normalize_product, restrict_variants

__all__ = ["SeenProducts", "Deduplicator"]

logger = get_logger("dedup")


class SeenProducts:
    """Thread-safe set of upstream product ids already claimed in this run."""

    def __init__(self, ids: Optional[Iterable[str]] = None) -> None:
        self._ids: Set[str] = set(ids or ())
        self._lock = threading.Lock()

    def claim(self, product_id: str) -> bool:
        """Mark ``product_id`` as seen. Returns False if it was already claimed."""
        with self._lock:
            if product_id in self._ids:
                return False
            self._ids.add(product_id)
            return True

    def __contains__(self, product_id: object) -> bool:
        with self._lock:
            return product_id in self._ids

    def __len__(self) -> int:
        with self._lock:
            return len(self._ids)


class Deduplicator:
    """Normalizes each upstream product at most once per run.

    The first category that lists a product wins; later sightings are
    dropped before normalization and counted as duplicates. A product that
    fails normalization is still claimed, so a later category cannot
    resurrect it with a different category slug.

    SKUs are owned the same way: a SKU already kept for one product is
    dropped from any later product, whose price range and variant count are
    then recomputed from the variants it keeps.
    """

    def __init__(self, seen: Optional[SeenProducts] = None) -> None:
        self.seen = seen if seen is not None else SeenProducts()
        self.duplicates = 0
        self.skipped = 0
        self.sku_owners: Dict[str, str] = {}
        self._lock = threading.Lock()

    def _claim_skus(self, normalized: NormalizedProduct) -> NormalizedProduct:
        product_id = normalized.product.id
        kept = []
        with self._lock:
            for variant in normalized.variants:
                owner = self.sku_owners.setdefault(variant.sku, product_id)
                if owner == product_id:
                    kept.append(variant)
                else:
                    logger.warning(
                        f"SKU {variant.sku} of {product_id} already belongs to {owner}, dropping it"
                    )

        if not kept:
            raise NormalizationSkip(product_id, "every SKU belongs to another product")
        if len(kept) == len(normalized.variants):
            return normalized
        return restrict_variants(normalized, kept)

    def normalize(
        self,
        raw: Dict[str, Any],
        category_slug: str,
        now: str,
    ) -> Optional[NormalizedProduct]:
        """Normalize ``raw`` unless its id was already seen.

        Returns None for duplicates and for products that cannot be
        normalized (the latter are logged as skipped).
        """
        product_id = raw.get("id")
        if isinstance(product_id, (str, int)) and not isinstance(product_id, bool):
            if not self.seen.claim(str(product_id)):
                with self._lock:
                    self.duplicates += 1
                logger.debug(f"Already processed {product_id}, skipping listing in {category_slug}")
                return None

        try:
            return self._claim_skus(normalize_product(raw, category_slug, now))
        except NormalizationSkip as e:
            with self._lock:
                self.skipped += 1
            logger.warning(str(e))
            log_sync_event(
                "product_skipped",
                {"product_id": e.product_id, "category": category_slug, "reason": e.reason},
                level=logging.WARNING,
                logger_name="dedup",
            )
            return None
