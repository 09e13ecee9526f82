"""HTTP surface over in-memory services."""

import json

import pytest
from fastapi.testclient import TestClient

from smart_catalog.config import load_settings
from smart_catalog.conversation_store import ConversationStore
from smart_catalog.services import build_services

from conftest import FakeLLM


@pytest.fixture
def client(monkeypatch, tmp_path, store):
    monkeypatch.setenv("AI_PROVIDER", "ollama")
    monkeypatch.setenv("DATA_DIR", str(tmp_path))
    from smart_catalog import app as app_module

    reply = json.dumps({"query_type": "listing", "filters": {"category": "laptops"}, "search_query": ""})
    services = build_services(
        load_settings(),
        provider=FakeLLM([reply]),
        store=store,
        conversations=ConversationStore(tmp_path / "conversations.json"),
    )
    monkeypatch.setattr(app_module, "services", services)
    return TestClient(app_module.app)


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "provider": "ollama", "products": 4}


def test_search_with_category_is_structured(client):
    response = client.get("/api/search", params={"category": "laptops"})

    body = response.json()
    assert response.status_code == 200
    assert [result["id"] for result in body["results"]] == ["A", "B"]
    assert {result["provenance"] for result in body["results"]} == {"structured"}
    assert body["filters"] == {"category": "laptops"}


def test_chat_then_fetch_and_delete_conversation(client):
    chat = client.post("/api/chat", json={"message": "show me laptops"})

    assert chat.status_code == 200
    payload = chat.json()
    assert payload["metadata"]["query_type"] == "listing"
    assert payload["metadata"]["product_count"] == 2
    conversation_id = payload["conversation_id"]

    transcript = client.get(f"/api/conversations/{conversation_id}").json()
    assert [turn["role"] for turn in transcript["turns"]] == ["user", "assistant"]
    assert transcript["last_shown_product_ids"] == ["A", "B"]
    assert [summary["conversation_id"] for summary in client.get("/api/conversations").json()] == [conversation_id]

    assert client.delete(f"/api/conversations/{conversation_id}").status_code == 200
    assert client.get(f"/api/conversations/{conversation_id}").status_code == 404


def test_blank_message_is_rejected(client):
    assert client.post("/api/chat", json={"message": ""}).status_code == 422
    assert client.post("/api/chat", json={"message": "   "}).status_code == 422
