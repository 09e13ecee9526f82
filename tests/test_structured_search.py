"""Structured filter search and count statistics."""

from smart_catalog.search.filters import Filters, Provenance
from smart_catalog.search.structured import (
    StructuredSearch,
    normalize_category_token,
    specification_key_variations,
    specification_value_variations,
)


def ids(candidates):
    return [candidate.item_id for candidate in candidates]


def test_category_filter_returns_active_matches_at_full_score(store):
    """Discontinued products never show up, every hit scores 1.0."""

    results = StructuredSearch(store).search(Filters(category="laptops"))

    assert ids(results) == ["A", "B"]
    assert all(candidate.score == 1.0 for candidate in results)
    assert all(candidate.provenance == Provenance.STRUCTURED for candidate in results)


def test_unknown_category_fails_closed(store):
    """An unresolvable category must not silently match the whole catalog."""

    assert StructuredSearch(store).search(Filters(category="spaceships")) == []
    assert StructuredSearch(store).search(Filters(brand="nobody")) == []


def test_category_synonyms_and_names_resolve(store):
    search = StructuredSearch(store)

    assert ids(search.search(Filters(category="computadores"))) == ["A", "B"]
    assert ids(search.search(Filters(category="Laptops"))) == ["A", "B"]
    assert ids(search.search(Filters(category="cat-tablets"))) == ["C"]
    assert normalize_category_token("Portátiles") == "laptops"


def test_price_bounds_exclude_items_without_price(store):
    search = StructuredSearch(store)

    assert ids(search.search(Filters(max_price=1500))) == ["A", "C"]
    assert ids(search.search(Filters(min_price=500))) == ["A", "B"]


def test_in_stock_is_tri_state(store):
    search = StructuredSearch(store)

    assert "C" not in ids(search.search(Filters(in_stock=True)))
    assert ids(search.search(Filters(in_stock=False))) == ["C"]


def test_specification_keys_and_numeric_values_are_normalized(store):
    """"32GB" under "RAM" matches a product storing memory: 32GB; "video_card" finds graphics_card."""

    search = StructuredSearch(store)

    assert ids(search.search(Filters(specifications={"RAM": "32GB"}))) == ["B"]
    assert ids(search.search(Filters(specifications={"ram_gb": "16GB"}))) == ["A"]
    assert ids(search.search(Filters(specifications={"video_card": "rtx"}))) == ["B"]
    assert "gpu" in specification_key_variations("graphics_card")
    assert specification_value_variations("32GB") == ["32GB", "32"]


def test_text_filter_matches_name_or_description(store):
    assert ids(StructuredSearch(store).search(Filters(query="stylus"))) == ["C"]


def test_limit_truncates_in_catalog_order(store):
    assert ids(StructuredSearch(store).search(Filters(brand="acme"), limit=1)) == ["A"]


def test_count_groups_by_category_and_brand(store):
    stats = StructuredSearch(store).count(Filters())

    assert stats["total"] == 4
    assert stats["by_category"] == {"Laptops": 2, "Tablets": 1, "Phones": 1}
    assert stats["by_brand"] == {"Acme": 2, "Zenith": 2}
    assert stats["in_stock"] == 3
    assert stats["with_price"] == 3


def test_count_with_unknown_brand_is_zero(store):
    stats = StructuredSearch(store).count(Filters(brand="nobody"))

    assert stats["total"] == 0
    assert stats["by_category"] == {}
