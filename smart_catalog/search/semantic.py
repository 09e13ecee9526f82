from __future__ import annotations

import logging
import time
from typing import List

from ..catalog import CatalogStore
from ..providers import EmbeddingProvider
from ..utils import truncate
from .filters import Provenance, ScoredCandidate

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 50


class SemanticSearch:
    """Embedding similarity ranking; a missing query vector means no semantic signal."""

    def __init__(self, store: CatalogStore, embedder: EmbeddingProvider) -> None:
        self._store = store
        self._embedder = embedder

    def search(self, text: str, limit: int = DEFAULT_LIMIT) -> List[ScoredCandidate]:
        """Purpose: Rank items by cosine similarity to the embedded query text.
        Inputs/Outputs: Inputs are free text and limit; output is ScoredCandidates.
        Side Effects / State: One embedding call; logs duration.
        Dependencies: EmbeddingProvider.embed and CatalogStore.nearest_neighbors.
        Failure Modes: Blank text, a missing vector or any embedding error returns [] without raising.
        If Removed: Query-only retrieval and hybrid boosting disappear.
        Testing Notes: Fake embedder returning None must yield [].
        """
        if not text or not text.strip():
            return []
        logger.info("semantic search query=%r limit=%s", truncate(text, 60), limit)
        start = time.perf_counter()
        try:
            vector = self._embedder.embed(text)
        except Exception as exc:
            logger.error("query embedding failed: %s", exc)
            vector = None
        if not vector:
            logger.info("semantic search skipped: no query embedding")
            return []
        results = [
            ScoredCandidate(item=item, score=round(max(0.0, 1.0 - distance), 4), provenance=Provenance.SEMANTIC)
            for item, distance in self._store.nearest_neighbors(vector, limit)
        ]
        logger.info(
            "semantic search found=%s took=%.1fms",
            len(results),
            (time.perf_counter() - start) * 1000,
        )
        return results
