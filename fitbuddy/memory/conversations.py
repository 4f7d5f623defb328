"""Conversation storage: message log plus context, one document per conversation.

With a data_dir, conversations are JSON files under <data_dir>/conversations.
Without one the store is ephemeral: the same API backed by a dict that lives
only as long as the process.

Turns for one user are serialized through user_lock(); the orchestrator holds
it for the whole read-modify-write of a turn.
"""

import json
import logging
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from fitbuddy.agent.context import ConversationContext, context_from_dict, context_to_dict

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """Raised when the conversation store cannot be read or written."""


def _now_iso() -> str:
    return datetime.now().isoformat(timespec="seconds")


@dataclass(frozen=True)
class Message:
    role: str          # "user" or "assistant"
    content: str
    timestamp: str = field(default_factory=_now_iso)
    metadata: dict | None = None

    def to_dict(self) -> dict:
        entry = {"role": self.role, "content": self.content, "timestamp": self.timestamp}
        if self.metadata:
            entry["metadata"] = self.metadata
        return entry

    @classmethod
    def from_dict(cls, raw: dict) -> "Message":
        return cls(
            role=raw["role"],
            content=raw["content"],
            timestamp=raw.get("timestamp") or _now_iso(),
            metadata=raw.get("metadata"),
        )


@dataclass
class Conversation:
    """Append-only message log and the current context for one user."""
    user_id: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    messages: list[Message] = field(default_factory=list)
    context: ConversationContext = field(default_factory=ConversationContext)
    created_at: str = field(default_factory=_now_iso)
    updated_at: str = field(default_factory=_now_iso)

    def append(self, role: str, content: str, metadata: dict | None = None) -> Message:
        message = Message(role=role, content=content, metadata=metadata)
        self.messages.append(message)
        return message

    def recent(self, limit: int) -> list[Message]:
        return self.messages[-limit:] if limit > 0 else []

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "messages": [m.to_dict() for m in self.messages],
            "context": context_to_dict(self.context),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, raw: dict) -> "Conversation":
        return cls(
            id=raw["id"],
            user_id=raw["user_id"],
            messages=[Message.from_dict(m) for m in raw.get("messages", [])],
            context=context_from_dict(raw.get("context")),
            created_at=raw.get("created_at") or _now_iso(),
            updated_at=raw.get("updated_at") or _now_iso(),
        )


class ConversationStore:
    """Conversation persistence with an ephemeral in-memory mode."""

    def __init__(self, data_dir: Path | None = None):
        self._dir = Path(data_dir) / "conversations" if data_dir else None
        self._memory: dict[str, dict] = {}
        # user_id -> [lock, holders and waiters]; dropped once nobody references it
        self._locks: dict[str, list] = {}
        self._locks_guard = threading.Lock()

    @property
    def ephemeral(self) -> bool:
        return self._dir is None

    # ── Per-user serialization ───────────────────────────────────

    @contextmanager
    def user_lock(self, user_id: str):
        """Hold the lock for user_id for the duration of the block."""
        with self._locks_guard:
            entry = self._locks.setdefault(user_id, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[user_id]

    # ── Reads ────────────────────────────────────────────────────

    def _load_all(self) -> list[dict]:
        if self._dir is None:
            return list(self._memory.values())
        if not self._dir.exists():
            return []
        documents = []
        try:
            for path in self._dir.glob("*.json"):
                documents.append(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Database read failed: {e}") from e
        return documents

    def find_latest_by_user(self, user_id: str) -> Conversation | None:
        """Most recently updated conversation for user_id, if any."""
        candidates = [d for d in self._load_all() if d.get("user_id") == user_id]
        if not candidates:
            return None
        latest = max(candidates, key=lambda d: d.get("updated_at") or "")
        return Conversation.from_dict(latest)

    def get_or_create(
        self, user_id: str, context: ConversationContext | None = None
    ) -> Conversation:
        """Latest conversation for user_id, or a new (not yet saved) one."""
        conversation = self.find_latest_by_user(user_id)
        if conversation is None:
            conversation = Conversation(user_id=user_id, context=context or ConversationContext())
        return conversation

    def history(self, user_id: str, limit: int = 50) -> list[Message]:
        conversation = self.find_latest_by_user(user_id)
        if conversation is None:
            return []
        return conversation.recent(limit)

    # ── Writes ───────────────────────────────────────────────────

    def upsert(self, conversation: Conversation) -> None:
        """Insert or replace the stored document, refreshing updated_at."""
        conversation.updated_at = _now_iso()
        document = conversation.to_dict()
        if self._dir is None:
            self._memory[conversation.id] = document
            return
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            path = self._dir / f"{conversation.id}.json"
            path.write_text(json.dumps(document, indent=2, ensure_ascii=False), encoding="utf-8")
        except OSError as e:
            raise PersistenceError(f"Database write failed: {e}") from e
