"""Classify raw upstream tag strings into (type, value) pairs.

Classification is an ordered list of rules. Each rule either returns a
``(type, value)`` pair or ``None`` to pass the tag on to the next rule; the
last rule always matches. New upstream tag conventions are supported by
inserting a rule into TAG_RULES.

Examples:
    'feature:10g-sfp-plus' -> ('feature', '10g-sfp-plus')
    'black-friday'         -> ('promo', 'black-friday')
    'pro-sort-weight:5020' -> ('sort', '5020')
"""

from typing import Callable, List, Optional, Tuple

__all__ = [
    "TagClass",
    "TagRule",
    "PROMO_KEYWORDS",
    "UI_KEYWORDS",
    "TAG_RULES",
    "classify_tag",
]

TagClass = Tuple[str, str]
TagRule = Callable[[str], Optional[TagClass]]

# Prefixes before the colon that map to a fixed type
FIXED_PREFIX_TYPES = {
    "feature": "feature",
    "poe": "poe",
}

# Case-insensitive substring matches
PROMO_KEYWORDS = ("black-friday", "holiday-offer", "cyber-monday", "sale", "new", "limited")
UI_KEYWORDS = ("support-banner", "banner", "badge")


def namespaced_rule(tag: str) -> Optional[TagClass]:
    """'prefix:value' tags. Unknown prefixes become the type themselves."""
    if ":" not in tag:
        return None
    prefix, _, suffix = tag.partition(":")
    if prefix in FIXED_PREFIX_TYPES:
        return FIXED_PREFIX_TYPES[prefix], suffix
    if "sort" in prefix:
        return "sort", suffix
    return prefix, suffix


def _keyword_rule(tag_type: str, keywords: Tuple[str, ...]) -> TagRule:
    def rule(tag: str) -> Optional[TagClass]:
        lowered = tag.lower()
        if any(keyword in lowered for keyword in keywords):
            return tag_type, tag
        return None

    rule.__name__ = f"{tag_type}_rule"
    return rule


def fallback_rule(tag: str) -> TagClass:
    return "other", tag


TAG_RULES: List[TagRule] = [
    namespaced_rule,
    _keyword_rule("promo", PROMO_KEYWORDS),
    _keyword_rule("ui", UI_KEYWORDS),
    fallback_rule,
]


def classify_tag(tag: str, rules: Optional[List[TagRule]] = None) -> TagClass:
    """Map a raw tag string to its (type, value) pair using the first matching rule."""
    for rule in rules if rules is not None else TAG_RULES:
        result = rule(tag)
        if result is not None:
            return result
    return fallback_rule(tag)
