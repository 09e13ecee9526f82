"""Hybrid retrieval: choose filters-only, text-only or merged search per query.

Merge policy:
    - strict (category and/or brand present): only structured matches survive;
      score (1 + semantic) / 2 when the item was also found semantically, else 0.8.
    - flexible (anything else): union of both sources; both -> (1 + semantic) / 2,
      structured only -> 0.8, semantic only -> semantic * 0.9.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional

from ..catalog import CatalogItem
from ..utils import truncate
from .filters import Filters, Provenance, ScoredCandidate, sort_by_score
from .semantic import SemanticSearch
from .structured import StructuredSearch

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 50
STRUCTURED_ONLY_SCORE = 0.8
SEMANTIC_ONLY_PENALTY = 0.9


class HybridRetriever:
    """Retrieval merge engine over structured and semantic search."""

    def __init__(self, structured: StructuredSearch, semantic: SemanticSearch, max_workers: int = 2) -> None:
        self._structured = structured
        self._semantic = semantic
        self._max_workers = max_workers

    def retrieve(self, query: str, filters: Optional[Filters] = None, limit: int = DEFAULT_LIMIT) -> List[ScoredCandidate]:
        """Purpose: Return up to `limit` ranked candidates for a query and filters.
        Inputs/Outputs: Inputs are free text (may be empty), Filters (may be empty) and
            limit; output is ScoredCandidates sorted by descending score.
        Side Effects / State: Logs the chosen mode, result size and duration.
        Dependencies: StructuredSearch, SemanticSearch, _merge.
        Failure Modes: Store errors propagate; embedding failures only remove the
            semantic signal.
        If Removed: Listing and comparison turns have no retrieval.
        Testing Notes: Filters-only and query-only calls must equal the single-source
            searches exactly.
        """
        filters = filters or Filters()
        query = (query or "").strip()
        has_filters = not filters.is_empty()
        has_query = bool(query)
        logger.info("hybrid retrieve query=%r filters=%s limit=%s", truncate(query, 60), filters.to_dict(), limit)
        start = time.perf_counter()

        if has_filters and not has_query:
            mode = "structured"
            results = self._structured.search(filters, limit=limit)
        elif has_query and not has_filters:
            mode = "semantic"
            results = self._semantic.search(query, limit=limit)
        else:
            mode = "strict" if filters.has_strict_constraint() else "flexible"
            results = self._hybrid(query, filters, limit)

        logger.info(
            "hybrid retrieve mode=%s returned=%s took=%.1fms",
            mode,
            len(results),
            (time.perf_counter() - start) * 1000,
        )
        return results

    def _hybrid(self, query: str, filters: Filters, limit: int) -> List[ScoredCandidate]:
        # Both searches are independent; merging waits for both.
        fetch = limit * 2
        with ThreadPoolExecutor(max_workers=self._max_workers) as pool:
            structured_future = pool.submit(self._structured.search, filters, fetch)
            semantic_future = pool.submit(self._semantic.search, query, fetch)
            structured = structured_future.result()
            semantic = semantic_future.result()
        merged = merge_candidates(structured, semantic, strict=filters.has_strict_constraint())
        return merged[:limit]


def merge_candidates(
    structured: List[ScoredCandidate],
    semantic: List[ScoredCandidate],
    strict: bool,
) -> List[ScoredCandidate]:
    """Purpose: Deduplicate and rescore candidates from both retrieval paths.
    Inputs/Outputs: Inputs are structured and semantic candidates and the merge mode;
        output is hybrid candidates sorted by descending score (ties keep input order).
    Side Effects / State: None.
    Dependencies: sort_by_score.
    Failure Modes: None; empty inputs give an empty list.
    If Removed: Hybrid queries cannot combine exact and approximate matches.
    Testing Notes: Strict mode must never emit a semantic-only item.
    """
    semantic_scores: Dict[str, float] = {}
    items: Dict[str, CatalogItem] = {}
    for candidate in semantic:
        if candidate.item_id not in semantic_scores:
            semantic_scores[candidate.item_id] = candidate.score
            items[candidate.item_id] = candidate.item
    structured_ids: List[str] = []
    for candidate in structured:
        if candidate.item_id in structured_ids:
            continue
        items.setdefault(candidate.item_id, candidate.item)
        structured_ids.append(candidate.item_id)

    if strict:
        ordered_ids = structured_ids
    else:
        ordered_ids = list(semantic_scores)
        ordered_ids.extend(item_id for item_id in structured_ids if item_id not in semantic_scores)

    structured_set = set(structured_ids)
    merged: List[ScoredCandidate] = []
    for item_id in ordered_ids:
        in_structured = item_id in structured_set
        in_semantic = item_id in semantic_scores
        if in_structured and in_semantic:
            score = (1.0 + semantic_scores[item_id]) / 2.0
        elif in_structured:
            score = STRUCTURED_ONLY_SCORE
        else:
            score = semantic_scores[item_id] * SEMANTIC_ONLY_PENALTY
        merged.append(ScoredCandidate(item=items[item_id], score=round(score, 4), provenance=Provenance.HYBRID))
    return sort_by_score(merged)
