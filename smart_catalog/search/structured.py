"""Exact filter search over the catalog plus the aggregate counts used by count queries."""

from __future__ import annotations

import logging
import time
from collections import Counter
from typing import Any, Dict, List, Optional

from ..catalog import CatalogItem, CatalogStore
from ..utils import normalize_text, numeric_part, truncate
from .filters import Filters, Provenance, ScoredCandidate

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 100

# User wording (English and Spanish) -> category slug. Keys are normalize_text output.
CATEGORY_SYNONYMS = {
    "computadores": "laptops",
    "computadoras": "laptops",
    "portatiles": "laptops",
    "notebooks": "laptops",
    "notebook": "laptops",
    "ordenadores": "laptops",
    "computers": "laptops",
    "laptop": "laptops",
    "tabletas": "tablets",
    "tableta": "tablets",
    "tablet": "tablets",
    "accesorios": "mobile-accessories",
    "accesorios moviles": "mobile-accessories",
    "accessories": "mobile-accessories",
    "mobile accessories": "mobile-accessories",
    "telefonos": "phones",
    "celulares": "phones",
    "smartphones": "phones",
    "phone": "phones",
    "auriculares": "audio",
    "headphones": "audio",
}

# Canonical specification key -> every key name that means the same attribute.
SPECIFICATION_KEY_GROUPS = {
    "gpu": ["gpu", "graphics_card", "graphics", "video_card"],
    "cpu": ["cpu", "processor"],
    "ram_gb": ["ram_gb", "ram", "memory", "RAM"],
    "storage_gb": ["storage_gb", "storage"],
    "os": ["os", "operating_system"],
}


def normalize_category_token(token: str) -> str:
    """Map a user category word to its canonical slug when a synonym is known."""
    return CATEGORY_SYNONYMS.get(normalize_text(token), str(token).strip())


def canonical_specification_key(key: str) -> str:
    lowered = str(key).strip().lower()
    for canonical, aliases in SPECIFICATION_KEY_GROUPS.items():
        if lowered in (alias.lower() for alias in aliases):
            return canonical
    return lowered


def specification_key_variations(key: str) -> List[str]:
    """Purpose: List every stored key name that may hold the requested attribute.
    Inputs/Outputs: Input is a requested key; output is a de-duplicated key list.
    Side Effects / State: None.
    Dependencies: Uses SPECIFICATION_KEY_GROUPS via canonical_specification_key.
    Failure Modes: Unknown keys yield only their literal/lower/upper variants.
    If Removed: "graphics_card" no longer matches products storing "gpu".
    Testing Notes: "video_card" should include "gpu"; "memory" should include "ram_gb".
    """
    key_str = str(key)
    variations = [key_str, key_str.lower(), key_str.upper()]
    variations.extend(SPECIFICATION_KEY_GROUPS.get(canonical_specification_key(key_str), []))
    unique: List[str] = []
    for variation in variations:
        if variation and variation not in unique:
            unique.append(variation)
    return unique


def specification_value_variations(value: Any) -> List[str]:
    """The literal value and its numeric-only form ("32GB" -> ["32GB", "32"])."""
    literal = str(value).strip()
    values = [literal, numeric_part(literal)]
    unique: List[str] = []
    for candidate in values:
        if candidate and candidate not in unique:
            unique.append(candidate)
    return unique


class StructuredSearch:
    """Exact/substring filter matching with fail-closed category and brand resolution."""

    def __init__(self, store: CatalogStore) -> None:
        self._store = store

    def search(self, filters: Filters, limit: int = DEFAULT_LIMIT) -> List[ScoredCandidate]:
        """Purpose: Return active items satisfying every present filter, score 1.0.
        Inputs/Outputs: Inputs are Filters and limit; output is ScoredCandidates in catalog order.
        Side Effects / State: Logs filters, result size and duration.
        Dependencies: Uses CatalogStore lookups and _matching_items.
        Failure Modes: Unresolvable category/brand returns an empty list.
        If Removed: Filter-only queries and the strict hybrid gate stop working.
        Testing Notes: Unknown category must return [] rather than the whole catalog.
        """
        logger.info("structured search filters=%s limit=%s", filters.to_dict(), limit)
        start = time.perf_counter()
        items = self._matching_items(filters)
        results = [
            ScoredCandidate(item=item, score=1.0, provenance=Provenance.STRUCTURED)
            for item in items[: max(limit, 0)]
        ]
        logger.info(
            "structured search found=%s took=%.1fms",
            len(results),
            (time.perf_counter() - start) * 1000,
        )
        return results

    def count(self, filters: Filters) -> Dict[str, Any]:
        """Purpose: Aggregate totals for count queries.
        Inputs/Outputs: Input is Filters; output has total, by_category, by_brand,
            in_stock and with_price.
        Side Effects / State: None beyond logging.
        Dependencies: Shares _matching_items with search so counts agree with listings.
        Failure Modes: Unresolvable category/brand yields all-zero statistics.
        If Removed: "how many laptops" cannot be answered.
        Testing Notes: Compare totals against a hand-counted fixture catalog.
        """
        items = self._matching_items(filters)
        by_category = Counter(item.category.name for item in items if item.category)
        by_brand = Counter(item.brand.name for item in items if item.brand)
        statistics = {
            "total": len(items),
            "by_category": dict(by_category.most_common()),
            "by_brand": dict(by_brand.most_common()),
            "in_stock": sum(1 for item in items if item.in_stock),
            "with_price": sum(1 for item in items if item.price is not None),
        }
        logger.info("structured count filters=%s total=%s", filters.to_dict(), statistics["total"])
        return statistics

    def _matching_items(self, filters: Filters) -> List[CatalogItem]:
        items = self._store.active_items()

        if filters.category and filters.category.strip():
            category = self._store.find_category(normalize_category_token(filters.category))
            if category is None:
                category = self._store.find_category(filters.category)
            if category is None:
                logger.info("unknown category=%r, failing closed", filters.category)
                return []
            items = [item for item in items if item.category is not None and item.category.id == category.id]

        if filters.brand and filters.brand.strip():
            brand = self._store.find_brand(filters.brand)
            if brand is None:
                logger.info("unknown brand=%r, failing closed", filters.brand)
                return []
            items = [item for item in items if item.brand is not None and item.brand.id == brand.id]

        if filters.min_price is not None:
            items = [item for item in items if item.price is not None and item.price >= filters.min_price]
        if filters.max_price is not None:
            items = [item for item in items if item.price is not None and item.price <= filters.max_price]

        if filters.query and filters.query.strip():
            needle = filters.query.strip().lower()
            items = [
                item for item in items
                if needle in item.name.lower() or needle in (item.description or "").lower()
            ]

        if filters.in_stock is not None:
            items = [item for item in items if item.in_stock == filters.in_stock]

        for key, value in (filters.specifications or {}).items():
            if value is None or not str(value).strip():
                continue
            items = [item for item in items if _matches_specification(item, key, value)]
        return items


def _matches_specification(item: CatalogItem, key: str, value: Any) -> bool:
    """Purpose: Test one key/value constraint against an item's specifications.
    Inputs/Outputs: Inputs are item, requested key and value; output is True on match.
    Side Effects / State: None.
    Dependencies: Uses key and value variation helpers.
    Failure Modes: Items without any of the candidate keys never match.
    If Removed: Specification filters are ignored.
    Testing Notes: "32GB" should match a stored "32"; "RAM" should match "ram_gb".
    """
    specifications = item.specifications or {}
    values = [candidate.lower() for candidate in specification_value_variations(value)]
    for candidate_key in specification_key_variations(key):
        if candidate_key not in specifications:
            continue
        stored = str(specifications[candidate_key]).lower()
        if any(candidate in stored for candidate in values):
            logger.debug("specification match item=%s key=%s stored=%s", item.id, candidate_key, truncate(stored, 40))
            return True
    return False


def resolve_category_name(store: CatalogStore, token: Optional[str]) -> Optional[str]:
    """Canonical category slug for a token, or None when it does not resolve."""
    if not token:
        return None
    category = store.find_category(normalize_category_token(token)) or store.find_category(token)
    return category.slug if category else None
