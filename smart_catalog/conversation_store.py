from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import NotFoundError
from .models import ConversationSummary, StoredTurn

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "New Conversation"


@dataclass
class Conversation:
    """Ordered turns plus the product ids shown by the most recent assistant turn."""
    conversation_id: str
    turns: List[StoredTurn] = field(default_factory=list)
    last_shown_product_ids: List[str] = field(default_factory=list)
    title: str = ""

    @property
    def previous_product_ids(self) -> List[str]:
        return list(self.last_shown_product_ids)

    @property
    def display_title(self) -> str:
        if self.title:
            return self.title
        for turn in self.turns:
            if turn.role == "user" and turn.content.strip():
                return turn.content.strip().splitlines()[0][:50]
        return DEFAULT_TITLE


class ConversationStore:
    """Conversation storage: append-only turns, summaries and last-shown products."""

    def __init__(self, path: Optional[Path] = None, max_conversations: Optional[int] = None) -> None:
        """Purpose: Initialize the store and hydrate from disk if available.
        Inputs/Outputs: Inputs are an optional file path and max_conversations cap; no return.
        Side Effects / State: Loads turns, summaries and last-shown ids into memory.
        Dependencies: Calls _load; relies on StoredTurn/ConversationSummary models.
        Failure Modes: JSON decode errors are logged and leave empty caches.
        If Removed: Contextual follow-ups have no memory of earlier turns.
        Testing Notes: Verify a store reopened on the same file sees earlier turns.
        """
        # Keep configuration and preload persisted conversations if present.
        self._path = path
        self._max_conversations = max_conversations
        self._turns: Dict[str, List[StoredTurn]] = {}
        self._summaries: Dict[str, ConversationSummary] = {}
        self._last_shown: Dict[str, List[str]] = {}
        self._lock = threading.RLock()
        self._load()

    def _load(self) -> None:
        """Purpose: Load persisted conversation data from disk into memory.
        Inputs/Outputs: Reads from self._path; no return value.
        Side Effects / State: Populates _turns, _summaries, _last_shown caches.
        Dependencies: Uses json.loads and pydantic models for validation.
        Failure Modes: Missing file or JSONDecodeError results in an empty cache.
        If Removed: Previously stored conversations are never restored on startup.
        Testing Notes: Corrupt JSON should not crash; valid JSON should hydrate caches.
        """
        # Read and decode persisted JSON if present.
        if not self._path or not self._path.exists():
            return
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("conversation file %s is not valid JSON; starting empty", self._path)
            return
        for conversation_id, turns in data.get("conversations", {}).items():
            self._turns[conversation_id] = [StoredTurn(**turn) for turn in turns]
        for conversation_id, summary in data.get("summaries", {}).items():
            self._summaries[conversation_id] = ConversationSummary(**summary)
        last_shown = data.get("last_shown", {})
        if isinstance(last_shown, dict):
            self._last_shown = {
                conversation_id: [str(item_id) for item_id in ids]
                for conversation_id, ids in last_shown.items()
                if isinstance(ids, list)
            }
        if self._prune():
            self._persist()

    def _persist(self) -> None:
        """Purpose: Persist in-memory conversations and summaries to disk.
        Inputs/Outputs: Writes to self._path; no return value.
        Side Effects / State: Writes a JSON file with conversations/summaries/last_shown
            through a temp file and os.replace, so readers never see a partial file.
        Dependencies: Uses json.dump; callers hold _lock.
        Failure Modes: IO errors raise exceptions (not caught here).
        If Removed: Conversations are never saved across restarts.
        Testing Notes: Ensure file is created/updated and JSON structure matches models.
        """
        # Serialize current caches to disk for persistence.
        if not self._path:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "conversations": {
                conversation_id: [turn.model_dump() for turn in turns]
                for conversation_id, turns in self._turns.items()
            },
            "summaries": {
                conversation_id: summary.model_dump() for conversation_id, summary in self._summaries.items()
            },
            "last_shown": self._last_shown,
        }
        fd, tmp_name = tempfile.mkstemp(dir=str(self._path.parent), prefix=self._path.name, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, ensure_ascii=False, indent=2)
            os.replace(tmp_name, self._path)
        except BaseException:
            os.unlink(tmp_name)
            raise

    def ensure_conversation(self, conversation_id: Optional[str] = None) -> str:
        """Purpose: Ensure a conversation exists, creating one with a fresh id if needed.
        Inputs/Outputs: Input is an optional id; output is the conversation id in use.
        Side Effects / State: Creates empty entries in caches and persists to disk.
        Dependencies: Uses ConversationSummary and _persist.
        Failure Modes: Persist can raise IO errors.
        If Removed: New conversations are never created.
        Testing Notes: Calling twice with the same id must not reset turns.
        """
        with self._lock:
            # Initialize empty conversation structures when missing.
            conversation_id = conversation_id or uuid.uuid4().hex
            if conversation_id not in self._turns:
                self._turns[conversation_id] = []
                self._summaries[conversation_id] = ConversationSummary(
                    conversation_id=conversation_id,
                    title=DEFAULT_TITLE,
                    updated_at=time.time(),
                )
                self._last_shown[conversation_id] = []
                self._prune()
                self._persist()
            return conversation_id

    def get(self, conversation_id: str) -> Conversation:
        """Return the Conversation aggregate; unknown ids raise NotFoundError."""
        with self._lock:
            if conversation_id not in self._turns:
                raise NotFoundError(f"Conversation {conversation_id} not found")
            summary = self._summaries.get(conversation_id)
            title = summary.title if summary and summary.title != DEFAULT_TITLE else ""
            return Conversation(
                conversation_id=conversation_id,
                turns=list(self._turns[conversation_id]),
                last_shown_product_ids=list(self._last_shown.get(conversation_id, [])),
                title=title,
            )

    def append_turn(
        self,
        conversation_id: str,
        role: str,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> StoredTurn:
        """Purpose: Append a turn and update the conversation summary.
        Inputs/Outputs: Inputs are id, role, content and metadata; output is the stored turn.
        Side Effects / State: Mutates caches and persists to disk.
        Dependencies: Uses StoredTurn validation (role must be user/assistant/system).
        Failure Modes: Invalid role raises pydantic ValidationError; unknown id is created.
        If Removed: Conversation history is not recorded.
        Testing Notes: First user turn becomes the title.
        """
        with self._lock:
            # Create a StoredTurn and keep summary metadata in sync.
            self.ensure_conversation(conversation_id)
            timestamp = time.time()
            turn = StoredTurn(role=role, content=content, timestamp=timestamp, metadata=metadata or {})
            self._turns[conversation_id].append(turn)
            summary = self._summaries[conversation_id]
            if role == "user" and summary.title == DEFAULT_TITLE and content.strip():
                summary.title = content.strip().splitlines()[0][:48]
            summary.updated_at = timestamp
            self._prune()
            self._persist()
            return turn

    def complete_turn(
        self,
        conversation_id: str,
        content: str,
        product_ids: List[str],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> StoredTurn:
        """Purpose: Record the assistant reply and the products it showed, once per turn.
        Inputs/Outputs: Inputs are id, reply text, shown ids and extra metadata; output is the turn.
        Side Effects / State: Appends the assistant turn and replaces last_shown_product_ids.
        Dependencies: Uses append_turn.
        Failure Modes: Same as append_turn.
        If Removed: "From those..." follow-ups cannot find the previous result set.
        Testing Notes: A count turn (no products) must clear the previous set.
        """
        with self._lock:
            ids = [str(item_id) for item_id in product_ids]
            turn_metadata = dict(metadata or {})
            turn_metadata["product_ids"] = ids
            self.ensure_conversation(conversation_id)
            self._last_shown[conversation_id] = ids
            return self.append_turn(conversation_id, "assistant", content, metadata=turn_metadata)

    def list_conversations(self) -> List[ConversationSummary]:
        """Return summaries sorted by most recent activity."""
        with self._lock:
            return sorted(self._summaries.values(), key=lambda s: s.updated_at, reverse=True)

    def delete_conversation(self, conversation_id: str) -> bool:
        """Remove a conversation with all of its turns; returns False when unknown."""
        with self._lock:
            if conversation_id not in self._turns:
                return False
            self._turns.pop(conversation_id, None)
            self._summaries.pop(conversation_id, None)
            self._last_shown.pop(conversation_id, None)
            self._persist()
            return True

    def _prune(self) -> bool:
        """Purpose: Enforce max_conversations by dropping the least recent ones.
        Inputs/Outputs: No inputs; returns True if any conversations were removed.
        Side Effects / State: Mutates all caches.
        Dependencies: Uses _max_conversations and updated_at ordering.
        Failure Modes: None; no-op when the cap is unset or not exceeded.
        If Removed: The conversation file grows unbounded.
        Testing Notes: Set a low cap and verify pruning order.
        """
        # Remove least-recent conversations when above the configured cap.
        if not self._max_conversations or self._max_conversations <= 0:
            return False
        if len(self._summaries) <= self._max_conversations:
            return False
        ordered = sorted(self._summaries.values(), key=lambda s: s.updated_at, reverse=True)
        keep_ids = {summary.conversation_id for summary in ordered[: self._max_conversations]}
        removed = [conversation_id for conversation_id in list(self._summaries) if conversation_id not in keep_ids]
        for conversation_id in removed:
            self._summaries.pop(conversation_id, None)
            self._turns.pop(conversation_id, None)
            self._last_shown.pop(conversation_id, None)
        return bool(removed)
