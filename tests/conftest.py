"""Shared fixtures: a small in-memory catalog and fake providers."""

from pathlib import Path
from typing import Dict, List, Optional

import pytest

from smart_catalog.catalog import Brand, CatalogItem, CatalogStore, Category
from smart_catalog.providers import GenerationResult

PROMPTS_DIR = Path(__file__).resolve().parent.parent / "smart_catalog" / "prompts"

LAPTOPS = Category(id="cat-laptops", name="Laptops", slug="laptops")
TABLETS = Category(id="cat-tablets", name="Tablets", slug="tablets")
PHONES = Category(id="cat-phones", name="Phones", slug="phones")
ACME = Brand(id="brand-acme", name="Acme", slug="acme")
ZENITH = Brand(id="brand-zenith", name="Zenith", slug="zenith")


def make_items() -> List[CatalogItem]:
    return [
        CatalogItem(
            id="A",
            name="Acme Swift 14",
            description="Light laptop for travel",
            price=999.0,
            category=LAPTOPS,
            brand=ACME,
            specifications={"ram_gb": "16", "gpu": "Integrated"},
            embedding=[1.0, 0.0, 0.0],
        ),
        CatalogItem(
            id="B",
            name="Zenith Pro 16",
            description="Workstation laptop",
            price=1999.0,
            category=LAPTOPS,
            brand=ZENITH,
            specifications={"memory": "32GB", "graphics_card": "RTX 4070"},
            embedding=[0.0, 1.0, 0.0],
        ),
        CatalogItem(
            id="C",
            name="Acme Tab 11",
            description="Tablet with stylus",
            price=399.0,
            in_stock=False,
            category=TABLETS,
            brand=ACME,
            embedding=[0.0, 0.0, 1.0],
        ),
        CatalogItem(
            id="D",
            name="Zenith Phone",
            description="Phone without a listed price",
            price=None,
            category=PHONES,
            brand=ZENITH,
        ),
        CatalogItem(
            id="E",
            name="Acme Swift 13 (retired)",
            price=899.0,
            category=LAPTOPS,
            brand=ACME,
            status="discontinued",
            embedding=[1.0, 0.0, 0.0],
        ),
    ]


@pytest.fixture
def store() -> CatalogStore:
    return CatalogStore([LAPTOPS, TABLETS, PHONES], [ACME, ZENITH], make_items(), embedding_dimensions=3)


class FakeEmbedder:
    """Returns canned vectors by exact text; unknown text gives None."""

    def __init__(self, vectors: Optional[Dict[str, List[float]]] = None) -> None:
        self.vectors = vectors or {}
        self.calls: List[str] = []

    def embed(self, text: str) -> Optional[List[float]]:
        self.calls.append(text)
        return self.vectors.get(text)


class FakeLLM(FakeEmbedder):
    """Replays scripted replies; an Exception instance in the script is raised instead."""

    def __init__(self, replies=None, vectors=None) -> None:
        super().__init__(vectors)
        self.replies = list(replies or [])
        self.requests: List[dict] = []

    def generate(self, messages, options=None) -> GenerationResult:
        self.requests.append({"messages": messages, "options": options or {}})
        reply = self.replies.pop(0) if self.replies else None
        if isinstance(reply, Exception):
            raise reply
        return GenerationResult(text=reply, finish_reason="stop")


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM()
