"""Semantic search, the merge policy and retrieval mode selection."""

import pytest

from smart_catalog.errors import ServiceUnavailableError
from smart_catalog.search.filters import Filters, Provenance, ScoredCandidate
from smart_catalog.search.hybrid import HybridRetriever, merge_candidates
from smart_catalog.search.semantic import SemanticSearch
from smart_catalog.search.structured import StructuredSearch

from conftest import FakeEmbedder


class CannedSemantic:
    """Semantic search stand-in returning fixed scores per item id."""

    def __init__(self, store, scores):
        self._store = store
        self._scores = scores
        self.limits = []

    def search(self, text, limit=50):
        self.limits.append(limit)
        ranked = sorted(self._scores.items(), key=lambda pair: -pair[1])[:limit]
        return [
            ScoredCandidate(item=self._store.get(item_id), score=score, provenance=Provenance.SEMANTIC)
            for item_id, score in ranked
        ]


def ids(candidates):
    return [candidate.item_id for candidate in candidates]


def test_semantic_search_ranks_by_cosine_similarity(store):
    embedder = FakeEmbedder({"travel laptop": [0.9, 0.1, 0.0]})

    results = SemanticSearch(store, embedder).search("travel laptop", limit=2)

    assert ids(results) == ["A", "B"]
    assert results[0].score > results[1].score
    assert all(0.0 <= candidate.score <= 1.0 for candidate in results)
    assert all(candidate.provenance == Provenance.SEMANTIC for candidate in results)


def test_semantic_search_skips_discontinued_and_unembedded_items(store):
    embedder = FakeEmbedder({"anything": [1.0, 1.0, 1.0]})

    found = ids(SemanticSearch(store, embedder).search("anything", limit=10))

    assert sorted(found) == ["A", "B", "C"]


def test_missing_embedding_means_no_semantic_signal(store):
    """None, a provider error, or blank text all yield an empty list."""

    class FailingEmbedder:
        def embed(self, text):
            raise ServiceUnavailableError("down")

    assert SemanticSearch(store, FakeEmbedder()).search("unknown text") == []
    assert SemanticSearch(store, FailingEmbedder()).search("unknown text") == []
    assert SemanticSearch(store, FakeEmbedder()).search("   ") == []


def test_untyped_embedding_errors_mean_no_semantic_signal(store):
    class BrokenEmbedder:
        def embed(self, text):
            raise ValueError("bad model name")

    assert SemanticSearch(store, BrokenEmbedder()).search("laptop") == []


def test_strict_mode_keeps_only_structured_matches(store):
    """category + max_price with semantic {A: 0.8, B: 0.3}: only A survives, at 0.9."""

    retriever = HybridRetriever(StructuredSearch(store), CannedSemantic(store, {"A": 0.8, "B": 0.3}))

    results = retriever.retrieve("fast machine", Filters(category="laptops", max_price=1500))

    assert ids(results) == ["A"]
    assert results[0].score == pytest.approx(0.9)
    assert results[0].provenance == Provenance.HYBRID


def test_flexible_mode_unions_and_ranks(store):
    """min_price only: A in both (0.95), B structured-only (0.8), C filtered out structurally."""

    semantic = CannedSemantic(store, {"A": 0.9, "C": 0.2})
    retriever = HybridRetriever(StructuredSearch(store), semantic)

    results = retriever.retrieve("good laptop", Filters(min_price=500), limit=2)

    assert ids(results) == ["A", "B"]
    assert [candidate.score for candidate in results] == [0.95, 0.8]
    assert semantic.limits == [4]


def test_flexible_mode_penalizes_semantic_only_items(store):
    semantic = CannedSemantic(store, {"A": 0.9, "C": 0.5})
    retriever = HybridRetriever(StructuredSearch(store), semantic)

    results = retriever.retrieve("good laptop", Filters(min_price=500))

    assert ids(results) == ["A", "B", "C"]
    assert results[2].score == pytest.approx(0.45)


def test_strict_mode_never_leaks_other_categories(store):
    semantic = CannedSemantic(store, {"C": 0.99, "B": 0.1})
    retriever = HybridRetriever(StructuredSearch(store), semantic)

    for filters in (Filters(category="laptops", in_stock=True), Filters(brand="zenith", max_price=5000)):
        results = retriever.retrieve("tablet with stylus", filters)
        assert "C" not in ids(results)

    brand_only = retriever.retrieve("tablet", Filters(brand="acme", min_price=0))
    assert ids(brand_only) == ["C", "A"]
    assert all(candidate.item.brand.slug == "acme" for candidate in brand_only)


def test_scores_are_non_increasing(store):
    semantic = CannedSemantic(store, {"B": 0.7, "C": 0.6, "A": 0.1})
    retriever = HybridRetriever(StructuredSearch(store), semantic)

    scores = [candidate.score for candidate in retriever.retrieve("laptop", Filters(max_price=2500))]

    assert scores == sorted(scores, reverse=True)


def test_single_source_modes_match_direct_calls(store):
    structured = StructuredSearch(store)
    semantic = SemanticSearch(store, FakeEmbedder({"travel": [1.0, 0.2, 0.0]}))
    retriever = HybridRetriever(structured, semantic)
    filters = Filters(category="laptops")

    assert retriever.retrieve("", filters, limit=10) == structured.search(filters, limit=10)
    assert retriever.retrieve("travel", Filters(), limit=10) == semantic.search("travel", limit=10)


def test_no_query_and_no_filters_browses_at_structured_only_score(store):
    retriever = HybridRetriever(StructuredSearch(store), CannedSemantic(store, {}))

    results = retriever.retrieve("", Filters(), limit=3)

    assert ids(results) == ["A", "B", "C"]
    assert {candidate.score for candidate in results} == {0.8}


def test_merge_ties_keep_input_order(store):
    structured = [
        ScoredCandidate(item=store.get(item_id), score=1.0, provenance=Provenance.STRUCTURED)
        for item_id in ("B", "A")
    ]

    merged = merge_candidates(structured, [], strict=False)

    assert ids(merged) == ["B", "A"]
