"""Text and JSON helpers."""

import importlib

import pytest

from smart_catalog.utils import extract_json_block, normalize_text, parse_number, safe_json_loads, slugify


def test_normalize_text_strips_accents_and_spaces():
    assert normalize_text("  Portátiles   Baratos ") == "portatiles baratos"
    assert slugify("Mobile Accessories!") == "mobile-accessories"


def test_parse_number_rejects_non_numbers():
    assert parse_number("1500") == 1500.0
    assert parse_number(99) == 99.0
    for value in ("abc", "", None, True, "nan", float("inf")):
        assert parse_number(value) is None


def test_json_extraction_handles_fences_and_prose():
    fenced = 'text\n```json\n{"a": 1}\n```\nmore'
    prose = 'Result: {"a": {"b": 2}} done'

    assert extract_json_block(fenced) == '{"a": 1}'
    assert safe_json_loads(prose) == {"a": {"b": 2}}
    assert safe_json_loads('{"a": ') is None
    assert safe_json_loads("[1, 2]") is None


@pytest.mark.parametrize(
    "module_name",
    [
        "smart_catalog.catalog",
        "smart_catalog.dispatcher",
        "smart_catalog.errors",
        "smart_catalog.providers",
        "smart_catalog.search.hybrid",
        "smart_catalog.search.structured",
    ],
)
def test_module_docstrings_are_attached(module_name):
    assert importlib.import_module(module_name).__doc__
