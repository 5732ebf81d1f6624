"""Record types written to the catalog store.

Field names match the column names of the respective tables so records can
be written with ``asdict()``.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

__all__ = [
    "ProductRecord",
    "VariantRecord",
    "TagRecord",
    "OptionRecord",
    "SpecRecord",
    "LinkedProductRecord",
    "HistoryRecord",
    "NormalizedProduct",
    "SyncBatch",
]


@dataclass
class ProductRecord:
    """One catalog entry. Price range and discount flag are derived from its variants."""

    id: str
    name: str
    slug: str
    category_slug: str
    subcategory_id: Optional[str]
    url: str
    status: str
    currency: str
    has_discount: bool
    variant_count: int
    last_updated: str
    title: Optional[str] = None
    short_description: Optional[str] = None
    collection_slug: Optional[str] = None
    image_url: Optional[str] = None
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None


@dataclass
class VariantRecord:
    """One purchasable SKU. The durable ``id`` is assigned by the store."""

    product_id: str
    variant_id: str
    sku: str
    currency: str
    in_stock: bool
    status: str
    is_visible: bool
    has_ui_care: bool
    last_updated: str
    display_name: Optional[str] = None
    current_price: Optional[Decimal] = None
    regular_price: Optional[Decimal] = None
    discount_percent: Optional[int] = None


@dataclass
class TagRecord:
    product_id: str
    tag_name: str
    tag_type: str
    tag_value: str


@dataclass
class OptionRecord:
    product_id: str
    option_title: str
    option_values: List[str] = field(default_factory=list)


@dataclass
class SpecRecord:
    product_id: str
    spec_section: str
    spec_label: str
    spec_value: Optional[str] = None
    spec_icon: Optional[str] = None
    spec_note: Optional[str] = None


@dataclass
class LinkedProductRecord:
    product_id: str
    linked_product_id: str
    link_type: str


@dataclass
class HistoryRecord:
    """Append-only price/stock snapshot of one variant at one run."""

    variant_id: int
    sku: str
    in_stock: bool
    status: str
    recorded_at: str
    price: Optional[Decimal] = None
    regular_price: Optional[Decimal] = None
    discount_percent: Optional[int] = None


@dataclass
class NormalizedProduct:
    """Everything produced from one upstream product object."""

    product: ProductRecord
    variants: List[VariantRecord] = field(default_factory=list)
    tags: List[TagRecord] = field(default_factory=list)
    options: List[OptionRecord] = field(default_factory=list)
    specs: List[SpecRecord] = field(default_factory=list)
    # Upstream ids of related products, resolved against the batch at sync time
    linked_product_ids: List[str] = field(default_factory=list)


@dataclass
class SyncBatch:
    """Accumulated records for one run, in first-sighting order."""

    products: List[ProductRecord] = field(default_factory=list)
    variants: List[VariantRecord] = field(default_factory=list)
    tags: List[TagRecord] = field(default_factory=list)
    options: List[OptionRecord] = field(default_factory=list)
    specs: List[SpecRecord] = field(default_factory=list)
    links: Dict[str, List[str]] = field(default_factory=dict)

    def add(self, normalized: NormalizedProduct) -> None:
        self.products.append(normalized.product)
        self.variants.extend(normalized.variants)
        self.tags.extend(normalized.tags)
        self.options.extend(normalized.options)
        self.specs.extend(normalized.specs)
        self.links[normalized.product.id] = list(normalized.linked_product_ids)

    @property
    def product_ids(self) -> List[str]:
        return [p.id for p in self.products]

    def counts(self) -> Dict[str, Any]:
        return {
            "products": len(self.products),
            "variants": len(self.variants),
            "tags": len(self.tags),
            "options": len(self.options),
            "specs": len(self.specs),
        }

    def __len__(self) -> int:
        return len(self.products)
