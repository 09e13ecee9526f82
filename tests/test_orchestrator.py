"""Chat turns end to end with scripted model replies."""

import json

import pytest

from smart_catalog.classifier import Classification, QueryType
from smart_catalog.config import load_settings
from smart_catalog.conversation_store import Conversation, ConversationStore
from smart_catalog.dispatcher import StrategyDispatcher, matches_contextual_filters
from smart_catalog.errors import ServiceUnavailableError
from smart_catalog.search.filters import Filters
from smart_catalog.search.hybrid import HybridRetriever
from smart_catalog.search.semantic import SemanticSearch
from smart_catalog.search.structured import StructuredSearch
from smart_catalog.services import build_services

from conftest import FakeLLM


def classification_reply(query_type, search_query="", **filters):
    return json.dumps({"query_type": query_type, "filters": filters, "search_query": search_query})


@pytest.fixture
def settings(monkeypatch, tmp_path):
    monkeypatch.setenv("AI_PROVIDER", "ollama")
    monkeypatch.setenv("DATA_DIR", str(tmp_path))
    return load_settings()


def make_services(settings, store, replies, vectors=None):
    llm = FakeLLM(replies, vectors)
    services = build_services(settings, provider=llm, store=store, conversations=ConversationStore())
    return services, llm


def test_contextual_follow_up_is_scoped_to_previous_results(settings, store):
    services, llm = make_services(
        settings,
        store,
        [
            classification_reply("listing", category="laptops"),
            classification_reply("contextual", max_price=1500),
            "The Acme Swift 14 is the only one under 1500.",
        ],
    )
    orchestrator = services.orchestrator

    first = orchestrator.handle_message(None, "show me laptops")
    second = orchestrator.handle_message(first.conversation_id, "from those, which are under 1500?")

    assert first.product_ids == ["A", "B"]
    assert first.metadata["query_type"] == "listing"
    assert first.metadata["product_count"] == 2
    assert "## Products Found" in first.content
    assert second.product_ids == ["A"]
    assert second.metadata["query_type"] == "contextual"
    assert second.content == "The Acme Swift 14 is the only one under 1500."
    assert "Previous results included 2 products" in llm.requests[1]["messages"][0]["content"]
    assert services.conversations.get(first.conversation_id).previous_product_ids == ["A"]


def test_contextual_without_previous_results_runs_fresh_search(settings, store):
    services, _ = make_services(settings, store, [classification_reply("contextual", category="tablets")])

    result = services.orchestrator.handle_message(None, "which of these tablets?")

    assert result.product_ids == ["C"]
    assert result.metadata["query_type"] == "contextual"


def test_count_turn_reports_statistics_and_clears_shown_set(settings, store):
    services, _ = make_services(
        settings,
        store,
        [classification_reply("listing", brand="acme"), classification_reply("count")],
    )
    orchestrator = services.orchestrator
    first = orchestrator.handle_message(None, "acme products")

    result = orchestrator.handle_message(first.conversation_id, "how many products do you have?")

    assert "**Total: 4 products**" in result.content
    assert "- Laptops: 2" in result.content
    assert result.metadata["product_count"] == 0
    assert services.conversations.get(first.conversation_id).previous_product_ids == []


def test_conversational_turn_skips_retrieval(settings, store):
    services, llm = make_services(settings, store, [classification_reply("conversational"), None])

    result = services.orchestrator.handle_message(None, "hello!")

    assert result.content.startswith("Hello! I can help you find products.")
    assert result.product_ids == []
    assert llm.calls == []
    assert llm.requests[1]["options"]["temperature"] == 0.8


def test_classifier_outage_still_answers_with_keyword_fallback(settings, store):
    services, llm = make_services(
        settings,
        store,
        [ServiceUnavailableError("model offline")],
        vectors={"stylus tablet": [0.0, 0.1, 1.0]},
    )

    result = services.orchestrator.handle_message(None, "stylus tablet")

    assert result.metadata["query_type"] == "listing"
    assert result.product_ids[0] == "C"
    assert llm.calls == ["stylus tablet"]


def test_generation_failure_propagates_and_keeps_previous_set(settings, store):
    services, _ = make_services(
        settings,
        store,
        [
            classification_reply("listing", category="laptops"),
            classification_reply("comparison", category="laptops"),
            ServiceUnavailableError("model offline"),
        ],
    )
    orchestrator = services.orchestrator
    first = orchestrator.handle_message(None, "laptops")

    with pytest.raises(ServiceUnavailableError):
        orchestrator.handle_message(first.conversation_id, "compare them")

    conversation = services.conversations.get(first.conversation_id)
    assert [turn.role for turn in conversation.turns] == ["user", "assistant", "user"]
    assert conversation.previous_product_ids == ["A", "B"]


def test_empty_contextual_filter_result_uses_fixed_reply(settings, store):
    services, _ = make_services(
        settings,
        store,
        [classification_reply("listing", category="laptops"), classification_reply("contextual", max_price=100)],
    )
    orchestrator = services.orchestrator
    first = orchestrator.handle_message(None, "laptops")

    result = orchestrator.handle_message(first.conversation_id, "from those, anything under 100?")

    assert result.product_ids == []
    assert result.content == "I don't have previous results to reference. Could you start a new search?"


def test_every_query_type_dispatches(store):
    structured = StructuredSearch(store)
    retriever = HybridRetriever(structured, SemanticSearch(store, FakeLLM()))
    dispatcher = StrategyDispatcher(store, retriever, structured)
    conversation = Conversation(conversation_id="c", last_shown_product_ids=["B", "A"])

    for query_type in QueryType:
        result = dispatcher.dispatch(Classification(query_type=query_type), conversation)
        assert result.query_type in QueryType

    contextual = dispatcher.dispatch(Classification(query_type=QueryType.CONTEXTUAL), conversation)
    assert contextual.product_ids == ["B", "A"]


def test_contextual_predicate(store):
    laptop, tablet, unpriced = store.get("A"), store.get("C"), store.get("D")

    assert matches_contextual_filters(laptop, Filters(category="computadores"), store)
    assert matches_contextual_filters(laptop, Filters(category="Laptops"))
    assert not matches_contextual_filters(tablet, Filters(category="laptops"), store)
    assert not matches_contextual_filters(tablet, Filters(in_stock=True))
    assert not matches_contextual_filters(unpriced, Filters(max_price=5000))
    assert matches_contextual_filters(unpriced, Filters(brand="Zenith"))
    assert not matches_contextual_filters(laptop, Filters(min_price=1000))
