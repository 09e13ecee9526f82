"""Catalog records and the JSON-backed store behind structured and semantic search.

The store loads categories, brands and products from a catalog file into typed
records and answers the three questions search needs: resolve a category/brand
token, list the searchable products, and rank products by embedding distance.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .utils import slugify

logger = logging.getLogger(__name__)

ACTIVE_STATUS = "active"
STATUSES = ("active", "inactive", "discontinued")
CURRENCIES = ("USD", "EUR", "GBP")


@dataclass
class Category:
    """Product category with a unique, URL-safe slug."""
    id: str
    name: str
    slug: str
    description: str = ""


@dataclass
class Brand:
    """Product brand with a unique, URL-safe slug."""
    id: str
    name: str
    slug: str
    description: str = ""


@dataclass
class CatalogItem:
    """Normalized product record with optional embedding."""
    id: str
    name: str
    description: str = ""
    price: Optional[float] = None
    currency: str = "USD"
    in_stock: bool = True
    stock_quantity: Optional[int] = None
    category: Optional[Category] = None
    brand: Optional[Brand] = None
    specifications: Dict[str, Any] = field(default_factory=dict)
    embedding: Optional[List[float]] = None
    sku: Optional[str] = None
    status: str = ACTIVE_STATUS

    @property
    def formatted_price(self) -> Optional[str]:
        if self.price is None:
            return None
        return f"{self.currency} {round(float(self.price), 2)}"

    @property
    def category_name(self) -> str:
        return self.category.name if self.category else ""

    @property
    def brand_name(self) -> str:
        return self.brand.name if self.brand else ""


@dataclass
class CatalogMeta:
    """Metadata describing the catalog file version for logging."""
    file_name: str
    updated_at: str
    sha256: str


def embedding_text(item: CatalogItem) -> str:
    """Purpose: Build the text representation that gets embedded for an item.
    Inputs/Outputs: Input is a CatalogItem; output is a sentence-joined string.
    Side Effects / State: None.
    Dependencies: Used by CatalogStore.backfill_embeddings.
    Failure Modes: Missing brand/category/description are simply omitted.
    If Removed: Catalog embeddings cannot be generated consistently.
    Testing Notes: Ensure brand, category and specifications appear in order.
    """
    parts = [item.name]
    if item.brand:
        parts.append(f"by {item.brand.name}")
    if item.category:
        parts.append(f"in {item.category.name}")
    if item.description:
        parts.append(item.description)
    if item.specifications:
        parts.append(", ".join(f"{key}: {value}" for key, value in item.specifications.items()))
    return ". ".join(parts)


class CatalogStore:
    """In-memory catalog with slug/name lookups and cosine nearest-neighbour ranking."""

    def __init__(
        self,
        categories: Iterable[Category],
        brands: Iterable[Brand],
        items: Iterable[CatalogItem],
        embedding_dimensions: Optional[int] = None,
        path: Optional[Path] = None,
    ) -> None:
        """Purpose: Index categories, brands and products for lookup and search.
        Inputs/Outputs: Inputs are record iterables, optional embedding size and path.
        Side Effects / State: Drops embeddings that violate the dimensionality invariant.
        Dependencies: Uses numpy lazily for the embedding matrix.
        Failure Modes: Negative prices raise ValueError.
        If Removed: Search has no catalog to read from.
        Testing Notes: Build a store from a few records and verify lookups.
        """
        self._path = path
        self._categories: List[Category] = list(categories)
        self._brands: List[Brand] = list(brands)
        self._items: List[CatalogItem] = []
        self._by_id: Dict[str, CatalogItem] = {}
        self._dimensions = embedding_dimensions
        self._matrix: Optional[Tuple[List[CatalogItem], np.ndarray]] = None
        for item in items:
            self._add_item(item)

    @classmethod
    def from_file(cls, path: Path, embedding_dimensions: Optional[int] = None) -> "CatalogStore":
        """Purpose: Load and normalize catalog data from a JSON file.
        Inputs/Outputs: Input is the catalog path; returns a CatalogStore.
        Side Effects / State: Reads file contents and logs the file hash.
        Dependencies: Uses json, hashlib and the _parse_* helpers.
        Failure Modes: Missing files and JSON decode errors raise to the caller.
        If Removed: The app cannot boot with a real catalog.
        Testing Notes: Write a temp catalog file and verify record counts.
        """
        # Read bytes for hashing and parse JSON into typed records.
        raw_bytes = path.read_bytes()
        meta = CatalogMeta(
            file_name=path.name,
            updated_at=datetime.fromtimestamp(path.stat().st_mtime).isoformat(),
            sha256=hashlib.sha256(raw_bytes).hexdigest(),
        )
        data = json.loads(raw_bytes.decode("utf-8-sig"))
        if not isinstance(data, dict):
            data = {"products": data if isinstance(data, list) else []}

        categories = [_parse_category(raw) for raw in data.get("categories", []) if isinstance(raw, dict)]
        brands = [_parse_brand(raw) for raw in data.get("brands", []) if isinstance(raw, dict)]
        category_index = _index_records(categories)
        brand_index = _index_records(brands)
        items = [
            _parse_item(raw, category_index, brand_index)
            for raw in data.get("products", [])
            if isinstance(raw, dict)
        ]
        store = cls(categories, brands, items, embedding_dimensions=embedding_dimensions, path=path)
        logger.info(
            "catalog loaded file=%s sha256=%s categories=%s brands=%s products=%s",
            meta.file_name,
            meta.sha256[:12],
            len(categories),
            len(brands),
            len(items),
        )
        return store

    def _add_item(self, item: CatalogItem) -> None:
        if item.price is not None and item.price < 0:
            raise ValueError(f"Product {item.id} has a negative price")
        if item.embedding is not None and not self._valid_dimensions(item.embedding):
            logger.warning(
                "dropping embedding for product=%s dims=%s expected=%s",
                item.id,
                len(item.embedding),
                self._dimensions,
            )
            item.embedding = None
        self._items.append(item)
        self._by_id[item.id] = item

    def _valid_dimensions(self, vector: Sequence[float]) -> bool:
        if not vector:
            return False
        if self._dimensions is None:
            self._dimensions = len(vector)
        return len(vector) == self._dimensions

    @property
    def categories(self) -> List[Category]:
        return list(self._categories)

    @property
    def brands(self) -> List[Brand]:
        return list(self._brands)

    def active_items(self) -> List[CatalogItem]:
        """Return searchable products in catalog order."""
        return [item for item in self._items if item.status == ACTIVE_STATUS]

    def get(self, item_id: str) -> Optional[CatalogItem]:
        return self._by_id.get(str(item_id))

    def get_many(self, ids: Iterable[str]) -> List[CatalogItem]:
        """Return items in the order requested, skipping unknown ids and duplicates."""
        seen = set()
        found: List[CatalogItem] = []
        for item_id in ids:
            key = str(item_id)
            if key in seen:
                continue
            seen.add(key)
            item = self._by_id.get(key)
            if item is not None:
                found.append(item)
        return found

    def find_category(self, token: str) -> Optional[Category]:
        """Resolve a category by id, slug or case-insensitive name."""
        return _find_record(self._categories, token)

    def find_brand(self, token: str) -> Optional[Brand]:
        """Resolve a brand by id, slug or case-insensitive name."""
        return _find_record(self._brands, token)

    def nearest_neighbors(self, vector: Sequence[float], limit: int) -> List[Tuple[CatalogItem, float]]:
        """Purpose: Rank active items with embeddings by ascending cosine distance.
        Inputs/Outputs: Inputs are a query vector and a limit; output is (item, distance) pairs.
        Side Effects / State: Builds and caches the normalized embedding matrix.
        Dependencies: Uses numpy for the dot products.
        Failure Modes: A query vector of the wrong size returns an empty list.
        If Removed: Semantic search has no ranking source.
        Testing Notes: Orthogonal vectors give distance 1; identical vectors give 0.
        """
        if limit <= 0 or not vector:
            return []
        items, matrix = self._embedding_matrix()
        if not items:
            return []
        query = np.asarray(vector, dtype=np.float32)
        if query.shape[0] != matrix.shape[1]:
            logger.warning("query vector dims=%s do not match catalog dims=%s", query.shape[0], matrix.shape[1])
            return []
        norm = float(np.linalg.norm(query))
        if norm == 0.0:
            return []
        similarities = matrix @ (query / norm)
        distances = 1.0 - similarities
        order = np.argsort(distances, kind="stable")[:limit]
        return [(items[int(idx)], float(distances[int(idx)])) for idx in order]

    def _embedding_matrix(self) -> Tuple[List[CatalogItem], np.ndarray]:
        if self._matrix is None:
            items = [item for item in self.active_items() if item.embedding]
            if items:
                matrix = np.asarray([item.embedding for item in items], dtype=np.float32)
                norms = np.linalg.norm(matrix, axis=1, keepdims=True)
                norms[norms == 0] = 1.0
                matrix = matrix / norms
            else:
                matrix = np.zeros((0, self._dimensions or 0), dtype=np.float32)
            self._matrix = (items, matrix)
        return self._matrix

    def backfill_embeddings(self, embed: Callable[[str], Optional[List[float]]], save: bool = False) -> int:
        """Purpose: Compute embeddings for products that do not have one yet.
        Inputs/Outputs: Input is an embed callable; output is the number of items updated.
        Side Effects / State: Mutates item embeddings, resets the matrix cache,
            optionally rewrites the catalog file.
        Dependencies: Uses embedding_text and the provider's embed function.
        Failure Modes: Items whose embedding comes back empty or mis-sized are skipped.
        If Removed: A fresh catalog never gains a semantic signal.
        Testing Notes: Use a fake embed function and check counts and skipped items.
        """
        updated = 0
        for item in self._items:
            if item.embedding:
                continue
            vector = embed(embedding_text(item))
            if not vector or not self._valid_dimensions(vector):
                logger.warning("no usable embedding for product=%s", item.id)
                continue
            item.embedding = [float(value) for value in vector]
            updated += 1
        if updated:
            self._matrix = None
            if save:
                self.save()
        logger.info("embedding backfill updated=%s total=%s", updated, len(self._items))
        return updated

    def save(self, path: Optional[Path] = None) -> None:
        """Write the catalog back to disk in the format from_file reads."""
        target = path or self._path
        if target is None:
            raise ValueError("No catalog path to save to")
        payload = {
            "categories": [vars(category) for category in self._categories],
            "brands": [vars(brand) for brand in self._brands],
            "products": [_serialize_item(item) for item in self._items],
        }
        target.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")


def _find_record(records: List[Any], token: str) -> Optional[Any]:
    """Purpose: Find a category/brand record by id, slug or case-insensitive name.
    Inputs/Outputs: Inputs are records and a user token; output is a record or None.
    Side Effects / State: None.
    Dependencies: Uses slugify for a final slug comparison.
    Failure Modes: Blank tokens and unknown values return None.
    If Removed: Category/brand filters cannot resolve and always fail closed.
    Testing Notes: Verify "Laptops", "laptops" and the id all resolve the same record.
    """
    value = str(token or "").strip()
    if not value:
        return None
    lowered = value.lower()
    for record in records:
        if record.id == value or record.slug == value or record.name.lower() == lowered:
            return record
    slug = slugify(value)
    for record in records:
        if slug and record.slug == slug:
            return record
    return None


def _index_records(records: List[Any]) -> Dict[str, Any]:
    index: Dict[str, Any] = {}
    for record in records:
        index[record.id] = record
        index[record.slug] = record
    return index


def _parse_category(raw: Dict[str, Any]) -> Category:
    name = str(raw.get("name") or "").strip()
    slug = str(raw.get("slug") or slugify(name))
    return Category(id=str(raw.get("id") or slug), name=name, slug=slug, description=str(raw.get("description") or ""))


def _parse_brand(raw: Dict[str, Any]) -> Brand:
    name = str(raw.get("name") or "").strip()
    slug = str(raw.get("slug") or slugify(name))
    return Brand(id=str(raw.get("id") or slug), name=name, slug=slug, description=str(raw.get("description") or ""))


def _parse_item(raw: Dict[str, Any], categories: Dict[str, Category], brands: Dict[str, Brand]) -> CatalogItem:
    """Purpose: Convert a raw product dict into a CatalogItem.
    Inputs/Outputs: Inputs are the raw dict and category/brand indexes; output is a CatalogItem.
    Side Effects / State: None.
    Dependencies: Category/brand references may be ids or slugs.
    Failure Modes: Unknown references leave category/brand unset.
    If Removed: from_file cannot build products.
    Testing Notes: Reference a category by slug and by id and compare results.
    """
    price = raw.get("price")
    specifications = raw.get("specifications") if isinstance(raw.get("specifications"), dict) else {}
    embedding = raw.get("embedding") if isinstance(raw.get("embedding"), list) else None
    stock_quantity = raw.get("stock_quantity")
    return CatalogItem(
        id=str(raw.get("id") or raw.get("sku") or raw.get("name")),
        name=str(raw.get("name") or "").strip(),
        description=str(raw.get("description") or ""),
        price=float(price) if price is not None else None,
        currency=str(raw.get("currency") or "USD"),
        in_stock=bool(raw.get("in_stock", True)),
        stock_quantity=int(stock_quantity) if stock_quantity is not None else None,
        category=categories.get(str(raw.get("category") or raw.get("category_id") or "")),
        brand=brands.get(str(raw.get("brand") or raw.get("brand_id") or "")),
        specifications=dict(specifications),
        embedding=[float(value) for value in embedding] if embedding else None,
        sku=raw.get("sku"),
        status=str(raw.get("status") or ACTIVE_STATUS),
    )


def _serialize_item(item: CatalogItem) -> Dict[str, Any]:
    return {
        "id": item.id,
        "sku": item.sku,
        "name": item.name,
        "description": item.description,
        "price": item.price,
        "currency": item.currency,
        "in_stock": item.in_stock,
        "stock_quantity": item.stock_quantity,
        "category": item.category.slug if item.category else None,
        "brand": item.brand.slug if item.brand else None,
        "specifications": item.specifications,
        "status": item.status,
        "embedding": item.embedding,
    }
