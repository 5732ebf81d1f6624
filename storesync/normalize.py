"""Turn raw upstream product objects into relational records."""

from dataclasses import replace
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from storesync.config import (
    AVAILABLE_STATUS,
    DEFAULT_CURRENCY,
    DEFAULT_STATUS,
    STORE_BASE_URL,
    STORE_LANGUAGE,
    STORE_REGION,
)
from storesync.errors import NormalizationSkip
from storesync.logging_config import get_logger
from storesync.models import (
    NormalizedProduct,
    OptionRecord,
    ProductRecord,
    SpecRecord,
    TagRecord,
    VariantRecord,
)
from storesync.tags import classify_tag

__all__ = [
    "to_major_units",
    "calculate_discount",
    "product_url",
    "normalize_product",
    "restrict_variants",
]

logger = get_logger("normalize")

CENT = Decimal("0.01")


def to_major_units(amount: Any) -> Optional[Decimal]:
    """Convert an integer minor-unit amount (cents) to a major-unit Decimal.

    >>> to_major_units(9900)
    Decimal('99.00')

    Raises:
        ValueError: If the amount is not numeric
    """
    if amount is None:
        return None
    if isinstance(amount, bool):
        raise ValueError(f"Invalid price amount: {amount!r}")
    try:
        value = Decimal(str(amount))
    except InvalidOperation as e:
        raise ValueError(f"Invalid price amount: {amount!r}") from e
    if not value.is_finite():
        raise ValueError(f"Invalid price amount: {amount!r}")
    return (value / 100).quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_discount(current: Optional[Decimal], regular: Optional[Decimal]) -> Optional[int]:
    """Whole discount percent of ``current`` against ``regular``.

    Returns None unless both prices are present and ``regular`` is positive.
    Halves round up, so 12.5 becomes 13 and -12.5 becomes -12.
    """
    if current is None or regular is None or regular <= 0:
        return None
    percent = (1 - Decimal(current) / Decimal(regular)) * 100
    return int((percent + Decimal("0.5")).to_integral_value(rounding=ROUND_FLOOR))


def product_url(
    category_slug: str,
    slug: str,
    base_url: str = STORE_BASE_URL,
    region: str = STORE_REGION,
    language: str = STORE_LANGUAGE,
) -> str:
    return f"{base_url}/{region}/{language}/pro/category/{category_slug}/products/{slug}"


def _money(obj: Any, product_id: str, field_name: str) -> Optional[Decimal]:
    if not isinstance(obj, dict):
        return None
    try:
        return to_major_units(obj.get("amount"))
    except ValueError as e:
        raise NormalizationSkip(product_id, f"{field_name}: {e}") from e


def _currency(obj: Any) -> Optional[str]:
    if isinstance(obj, dict) and obj.get("currency"):
        return str(obj["currency"])
    return None


def _text(value: Any, product_id: str, field_name: str) -> Optional[str]:
    """Scalar upstream field as text; None or empty becomes None."""
    if value is None or value == "":
        return None
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise NormalizationSkip(
            product_id, f"{field_name}: expected text, got {type(value).__name__}"
        )
    return str(value)


def _obj(value: Any, product_id: str, field_name: str) -> Dict[str, Any]:
    """Nested upstream object; a missing one reads as empty."""
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise NormalizationSkip(
            product_id, f"{field_name}: expected object, got {type(value).__name__}"
        )
    return value


def _items(value: Any, product_id: str, field_name: str) -> List[Dict[str, Any]]:
    """Nested upstream list whose entries must all be objects."""
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, dict) for item in value):
        raise NormalizationSkip(product_id, f"{field_name}: expected a list of objects")
    return value


def _first(raw: Dict[str, Any], *keys: str) -> Any:
    """First non-None value among alternative upstream field names."""
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return None


def _variants(raw: Dict[str, Any], product_id: str, status: str, now: str) -> List[VariantRecord]:
    variants: List[VariantRecord] = []
    seen_skus = set()
    in_stock = status == AVAILABLE_STATUS

    for variant in raw.get("variants") or []:
        if not isinstance(variant, dict):
            continue
        sku = _text(variant.get("sku"), product_id, "sku")
        if not sku:
            logger.warning(f"Dropping variant {variant.get('id')} of {product_id}: no SKU")
            continue
        if sku in seen_skus:
            logger.warning(f"Dropping repeated SKU {sku} of {product_id}")
            continue
        seen_skus.add(sku)

        current_price = _money(variant.get("displayPrice"), product_id, "displayPrice")
        regular_price = _money(
            variant.get("displayRegularPrice"), product_id, "displayRegularPrice"
        )

        variants.append(VariantRecord(
            product_id=product_id,
            variant_id=_text(variant.get("id"), product_id, "variant id") or sku,
            sku=sku,
            display_name=None,
            current_price=current_price,
            regular_price=regular_price,
            discount_percent=calculate_discount(current_price, regular_price),
            currency=_currency(variant.get("displayPrice")) or DEFAULT_CURRENCY,
            in_stock=in_stock,
            status=status,
            is_visible=bool(_first(variant, "isVisibleInStore", "isVisible")),
            has_ui_care=bool(_first(variant, "hasUiCare", "hasCarePlan")),
            last_updated=now,
        ))

    return variants


def _tags(raw: Dict[str, Any], product_id: str) -> List[TagRecord]:
    tags: List[TagRecord] = []
    for tag in raw.get("tags") or []:
        name = tag.get("name") if isinstance(tag, dict) else tag
        if not name:
            continue
        tag_type, tag_value = classify_tag(str(name))
        tags.append(TagRecord(
            product_id=product_id,
            tag_name=str(name),
            tag_type=tag_type,
            tag_value=tag_value,
        ))
    return tags


def _options(raw: Dict[str, Any], product_id: str) -> List[OptionRecord]:
    options: List[OptionRecord] = []
    for option in raw.get("options") or []:
        if not isinstance(option, dict) or not option.get("title"):
            continue
        values = [
            str(value["title"])
            for value in option.get("values") or []
            if isinstance(value, dict) and value.get("title") is not None
        ]
        options.append(OptionRecord(
            product_id=product_id,
            option_title=str(option["title"]),
            option_values=values,
        ))
    return options


def _specs(raw: Dict[str, Any], product_id: str) -> List[SpecRecord]:
    specs: List[SpecRecord] = []
    technical = _obj(raw.get("technicalSpecification"), product_id, "technicalSpecification")
    for section in _items(technical.get("sections"), product_id, "sections"):
        heading = _obj(section.get("section"), product_id, "section")
        section_label = _text(heading.get("label"), product_id, "section label")
        if not section_label:
            continue
        for feature in _items(section.get("features"), product_id, "features"):
            definition = _obj(feature.get("feature"), product_id, "feature")
            label = _text(definition.get("label"), product_id, "feature label")
            if not label:
                continue
            specs.append(SpecRecord(
                product_id=product_id,
                spec_section=section_label,
                spec_label=label,
                spec_value=_text(feature.get("value"), product_id, "feature value"),
                spec_icon=_text(definition.get("icon"), product_id, "feature icon"),
                spec_note=(
                    _text(feature.get("note"), product_id, "feature note")
                    or _text(definition.get("note"), product_id, "feature note")
                ),
            ))
    return specs


def _variant_summary(variants: List[VariantRecord]) -> Dict[str, Any]:
    """Product fields derived from its variant set."""
    prices = [v.current_price for v in variants if v.current_price is not None]
    return {
        "min_price": min(prices) if prices else None,
        "max_price": max(prices) if prices else None,
        "has_discount": any(v.regular_price is not None for v in variants),
        "variant_count": len(variants),
    }


def restrict_variants(
    normalized: NormalizedProduct, variants: List[VariantRecord]
) -> NormalizedProduct:
    """Return ``normalized`` with only ``variants``, product fields recomputed."""
    product = replace(normalized.product, **_variant_summary(variants))
    return replace(normalized, product=product, variants=list(variants))


def normalize_product(raw: Dict[str, Any], category_slug: str, now: str) -> NormalizedProduct:
    """Build the full record set for one upstream product.

    Args:
        raw: Product object from the category listing
        category_slug: Category the product is attributed to
        now: Run timestamp (ISO 8601), used for every ``last_updated``

    Raises:
        NormalizationSkip: If required fields are missing, a field has the
            wrong type, a price is malformed, or the product has no
            purchasable variant
    """
    raw_id = raw.get("id")
    if isinstance(raw_id, (dict, list)):
        raise NormalizationSkip(None, "malformed id")
    if not raw_id:
        raise NormalizationSkip(None, "missing id")
    product_id = str(raw_id)

    name = _text(raw.get("name"), product_id, "name")
    slug = _text(raw.get("slug"), product_id, "slug")
    if not name or not slug:
        raise NormalizationSkip(product_id, "missing name or slug")

    status = _text(raw.get("status"), product_id, "status") or DEFAULT_STATUS
    variants = _variants(raw, product_id, status, now)
    if not variants:
        raise NormalizationSkip(product_id, f"no variants ({name})")

    min_price_obj = _first(raw, "minDisplayPrice", "minPrice")
    thumbnail = _obj(raw.get("thumbnail"), product_id, "thumbnail")

    product = ProductRecord(
        id=product_id,
        name=name,
        title=_text(raw.get("title"), product_id, "title"),
        short_description=_text(raw.get("shortDescription"), product_id, "shortDescription"),
        slug=slug,
        category_slug=category_slug,
        subcategory_id=_text(raw.get("subcategoryId"), product_id, "subcategoryId"),
        collection_slug=_text(raw.get("collectionSlug"), product_id, "collectionSlug"),
        image_url=_text(thumbnail.get("url"), product_id, "thumbnail url"),
        url=product_url(category_slug, slug),
        status=status,
        currency=_currency(min_price_obj) or DEFAULT_CURRENCY,
        last_updated=now,
        **_variant_summary(variants),
    )

    linked_ids = [
        str(link["id"])
        for link in raw.get("linkedProducts") or []
        if isinstance(link, dict) and link.get("id") and str(link["id"]) != product_id
    ]

    return NormalizedProduct(
        product=product,
        variants=variants,
        tags=_tags(raw, product_id),
        options=_options(raw, product_id),
        specs=_specs(raw, product_id),
        linked_product_ids=linked_ids,
    )
