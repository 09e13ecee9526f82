"""Conversation persistence and the last-shown product set."""

import json
import threading

import pytest

from smart_catalog.conversation_store import ConversationStore
from smart_catalog.errors import NotFoundError


def test_turns_and_last_shown_survive_reload(tmp_path):
    path = tmp_path / "conversations.json"
    store = ConversationStore(path)
    conversation_id = store.ensure_conversation()
    store.append_turn(conversation_id, "user", "show me laptops")
    store.complete_turn(conversation_id, "Here they are", ["A", "B"], metadata={"response_type": "listing"})

    reloaded = ConversationStore(path).get(conversation_id)

    assert [turn.role for turn in reloaded.turns] == ["user", "assistant"]
    assert reloaded.turns[1].metadata == {"response_type": "listing", "product_ids": ["A", "B"]}
    assert reloaded.previous_product_ids == ["A", "B"]
    assert reloaded.display_title == "show me laptops"


def test_new_conversation_has_no_previous_products():
    store = ConversationStore()
    conversation_id = store.ensure_conversation("abc")

    assert store.get(conversation_id).previous_product_ids == []
    assert store.ensure_conversation("abc") == "abc"


def test_complete_turn_replaces_previous_set():
    store = ConversationStore()
    conversation_id = store.ensure_conversation()
    store.complete_turn(conversation_id, "listing", ["A", "B"])
    store.complete_turn(conversation_id, "count", [])

    assert store.get(conversation_id).previous_product_ids == []


def test_user_turn_does_not_touch_previous_set():
    store = ConversationStore()
    conversation_id = store.ensure_conversation()
    store.complete_turn(conversation_id, "listing", ["A"])
    store.append_turn(conversation_id, "user", "from those, the cheapest")

    assert store.get(conversation_id).previous_product_ids == ["A"]


def test_unknown_conversation_raises_not_found():
    with pytest.raises(NotFoundError):
        ConversationStore().get("missing")


def test_delete_removes_conversation_whole(tmp_path):
    path = tmp_path / "conversations.json"
    store = ConversationStore(path)
    conversation_id = store.ensure_conversation()
    store.append_turn(conversation_id, "user", "hello")

    assert store.delete_conversation(conversation_id) is True
    assert store.delete_conversation(conversation_id) is False
    data = json.loads(path.read_text(encoding="utf-8"))
    assert conversation_id not in data["conversations"]
    assert conversation_id not in data["last_shown"]


def test_oldest_conversations_are_pruned(monkeypatch):
    clock = iter(range(1000, 2000))
    monkeypatch.setattr("smart_catalog.conversation_store.time.time", lambda: float(next(clock)))
    store = ConversationStore(max_conversations=2)
    first = store.ensure_conversation("first")
    store.ensure_conversation("second")
    store.append_turn("second", "user", "newer")
    store.ensure_conversation("third")

    remaining = [summary.conversation_id for summary in store.list_conversations()]

    assert first not in remaining
    assert sorted(remaining) == ["second", "third"]


def test_corrupt_file_starts_empty(tmp_path):
    path = tmp_path / "conversations.json"
    path.write_text("{not json", encoding="utf-8")

    assert ConversationStore(path).list_conversations() == []


def test_concurrent_turns_on_different_conversations(tmp_path):
    """Parallel turns must neither fail nor lose each other's writes."""
    path = tmp_path / "conversations.json"
    store = ConversationStore(path)
    errors = []

    def run_turn(index):
        try:
            conversation_id = store.ensure_conversation(f"c{index}")
            for _ in range(5):
                store.append_turn(conversation_id, "user", f"question {index}")
                store.complete_turn(conversation_id, "answer", [str(index)])
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=run_turn, args=(index,)) for index in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    reloaded = ConversationStore(path)
    for index in range(8):
        conversation = reloaded.get(f"c{index}")
        assert len(conversation.turns) == 10
        assert conversation.previous_product_ids == [str(index)]
    assert [p.name for p in tmp_path.iterdir()] == ["conversations.json"]
