from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..catalog import CatalogItem


class Provenance(str, Enum):
    """Which retrieval path produced a scored candidate."""
    STRUCTURED = "structured"
    SEMANTIC = "semantic"
    HYBRID = "hybrid"


@dataclass(frozen=True)
class Filters:
    """Structured constraints; a field left as None does not constrain its dimension."""
    category: Optional[str] = None
    brand: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    in_stock: Optional[bool] = None
    query: Optional[str] = None
    specifications: Dict[str, Any] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not any(
            (
                _present(self.category),
                _present(self.brand),
                self.min_price is not None,
                self.max_price is not None,
                self.in_stock is not None,
                _present(self.query),
                bool(self.specifications),
            )
        )

    def has_strict_constraint(self) -> bool:
        """Category and brand are hard gates in hybrid retrieval."""
        return _present(self.category) or _present(self.brand)

    def has_price_bound(self) -> bool:
        return self.min_price is not None or self.max_price is not None

    def to_dict(self) -> Dict[str, Any]:
        """Compact view for logs and API payloads; unset fields are left out."""
        data: Dict[str, Any] = {
            "category": self.category,
            "brand": self.brand,
            "min_price": self.min_price,
            "max_price": self.max_price,
            "in_stock": self.in_stock,
            "query": self.query,
        }
        compact = {key: value for key, value in data.items() if value is not None}
        if self.specifications:
            compact["specifications"] = dict(self.specifications)
        return compact


@dataclass
class ScoredCandidate:
    """A catalog item with a score in [0, 1] and its provenance."""
    item: CatalogItem
    score: float
    provenance: Provenance

    @property
    def item_id(self) -> str:
        return self.item.id


def _present(value: Optional[str]) -> bool:
    return bool(value and str(value).strip())


def sort_by_score(candidates: List[ScoredCandidate]) -> List[ScoredCandidate]:
    """Sort descending by score; Python's sort is stable so ties keep input order."""
    return sorted(candidates, key=lambda candidate: -candidate.score)
