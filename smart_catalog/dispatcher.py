"""Per-turn strategy selection: one handler for each query type."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .catalog import CatalogItem, CatalogStore
from .classifier import Classification, QueryType
from .conversation_store import Conversation
from .search.filters import Filters, Provenance, ScoredCandidate
from .search.hybrid import DEFAULT_LIMIT, HybridRetriever
from .search.structured import StructuredSearch, resolve_category_name

logger = logging.getLogger(__name__)

CONTEXTUAL_SCORE = 1.0


@dataclass
class DispatchResult:
    """Candidates (and, for counts, statistics) produced by one strategy."""
    query_type: QueryType
    candidates: List[ScoredCandidate] = field(default_factory=list)
    statistics: Optional[Dict[str, Any]] = None

    @property
    def items(self) -> List[CatalogItem]:
        return [candidate.item for candidate in self.candidates]

    @property
    def product_ids(self) -> List[str]:
        return [candidate.item_id for candidate in self.candidates]


Handler = Callable[[Classification, Conversation], DispatchResult]


class StrategyDispatcher:
    """Routes a Classification to listing, count, comparison, contextual or conversational handling."""

    def __init__(
        self,
        store: CatalogStore,
        retriever: HybridRetriever,
        structured: StructuredSearch,
        limit: int = DEFAULT_LIMIT,
    ) -> None:
        """Purpose: Wire the retrieval collaborators and the handler table.
        Inputs/Outputs: Inputs are the catalog, retriever, structured search and result
            limit; no return value.
        Side Effects / State: Builds the query type -> handler mapping.
        Dependencies: HybridRetriever, StructuredSearch, CatalogStore.
        Failure Modes: A QueryType without a handler raises ValueError at construction.
        If Removed: Classified turns cannot be executed.
        Testing Notes: Every QueryType member must have a handler.
        """
        self._store = store
        self._retriever = retriever
        self._structured = structured
        self._limit = limit
        self._handlers: Dict[QueryType, Handler] = {
            QueryType.LISTING: self._listing,
            QueryType.COUNT: self._count,
            QueryType.COMPARISON: self._comparison,
            QueryType.CONTEXTUAL: self._contextual,
            QueryType.CONVERSATIONAL: self._conversational,
        }
        missing = [query_type.value for query_type in QueryType if query_type not in self._handlers]
        if missing:
            raise ValueError(f"no strategy for query types: {missing}")

    def dispatch(self, classification: Classification, conversation: Conversation) -> DispatchResult:
        """Purpose: Execute the strategy for one classified turn.
        Inputs/Outputs: Inputs are the Classification and the current Conversation;
            output is a DispatchResult.
        Side Effects / State: Reads the catalog; logs the chosen strategy and size.
        Dependencies: Handler table built in __init__.
        Failure Modes: Retrieval and store errors propagate to the caller.
        If Removed: The orchestrator has nothing to render.
        Testing Notes: Contextual turns must only return previously shown items.
        """
        handler = self._handlers[classification.query_type]
        result = handler(classification, conversation)
        logger.info(
            "dispatch type=%s strategy=%s candidates=%s",
            classification.query_type.value,
            result.query_type.value,
            len(result.candidates),
        )
        return result

    def _listing(self, classification: Classification, conversation: Conversation) -> DispatchResult:
        candidates = self._retriever.retrieve(classification.search_query, classification.filters, limit=self._limit)
        return DispatchResult(query_type=QueryType.LISTING, candidates=candidates)

    def _comparison(self, classification: Classification, conversation: Conversation) -> DispatchResult:
        # Same retrieval as listing; only the rendering differs.
        candidates = self._retriever.retrieve(classification.search_query, classification.filters, limit=self._limit)
        return DispatchResult(query_type=QueryType.COMPARISON, candidates=candidates)

    def _count(self, classification: Classification, conversation: Conversation) -> DispatchResult:
        statistics = self._structured.count(classification.filters)
        return DispatchResult(query_type=QueryType.COUNT, statistics=statistics)

    def _conversational(self, classification: Classification, conversation: Conversation) -> DispatchResult:
        return DispatchResult(query_type=QueryType.CONVERSATIONAL)

    def _contextual(self, classification: Classification, conversation: Conversation) -> DispatchResult:
        previous_ids = conversation.previous_product_ids
        if not previous_ids:
            logger.info("contextual query without previous results; running a fresh search")
            return self._listing(classification, conversation)
        previous_items = self._store.get_many(previous_ids)
        kept = [
            item for item in previous_items
            if matches_contextual_filters(item, classification.filters, self._store)
        ]
        logger.info("contextual filter previous=%s kept=%s", len(previous_items), len(kept))
        candidates = [
            ScoredCandidate(item=item, score=CONTEXTUAL_SCORE, provenance=Provenance.STRUCTURED)
            for item in kept
        ]
        return DispatchResult(query_type=QueryType.CONTEXTUAL, candidates=candidates)


def matches_contextual_filters(item: CatalogItem, filters: Filters, store: Optional[CatalogStore] = None) -> bool:
    """Purpose: Decide whether a previously shown item survives the new turn's filters.
    Inputs/Outputs: Inputs are the item, Filters and optionally the catalog for
        category synonym resolution; output is True to keep the item.
    Side Effects / State: None.
    Dependencies: resolve_category_name for synonym-aware category tokens.
    Failure Modes: Items without a price are dropped when a price bound is present.
    If Removed: "From those, which are cheaper" cannot be answered from the shown set.
    Testing Notes: A max_price filter must keep exactly the items priced at or below it.
    """
    if filters.has_price_bound() and item.price is None:
        return False
    if filters.min_price is not None and item.price < filters.min_price:
        return False
    if filters.max_price is not None and item.price > filters.max_price:
        return False
    if filters.in_stock is True and not item.in_stock:
        return False
    if filters.category and filters.category.strip():
        tokens = [filters.category.strip()]
        if store is not None:
            resolved = resolve_category_name(store, filters.category)
            if resolved:
                tokens.append(resolved)
        if not any(_matches_record(item.category, token) for token in tokens):
            return False
    if filters.brand and filters.brand.strip():
        if not _matches_record(item.brand, filters.brand.strip()):
            return False
    return True


def _matches_record(record: Any, token: str) -> bool:
    if record is None:
        return False
    return record.slug == token or record.name.lower() == token.lower()
