"""Tests for conversation persistence, ephemeral mode and per-user locking."""

import threading
from unittest.mock import patch

import pytest

from fitbuddy.agent.context import Activity, ConversationContext
from fitbuddy.memory.conversations import (
    Conversation,
    ConversationStore,
    Message,
    PersistenceError,
)


class TestConversation:

    def test_append_and_recent(self):
        conversation = Conversation(user_id="u1")
        for i in range(5):
            conversation.append("user", f"m{i}")
        assert [m.content for m in conversation.recent(2)] == ["m3", "m4"]
        assert conversation.recent(0) == []

    def test_dict_round_trip_keeps_metadata(self):
        conversation = Conversation(
            user_id="u1", context=ConversationContext(activity=Activity.MEAL_PLANNING)
        )
        conversation.append("user", "hi")
        conversation.append("assistant", "sorry", metadata={"failed": True})
        restored = Conversation.from_dict(conversation.to_dict())
        assert restored.messages == conversation.messages
        assert restored.context == conversation.context

    def test_message_without_metadata_omits_key(self):
        assert "metadata" not in Message(role="user", content="hi").to_dict()


@pytest.fixture(params=["files", "ephemeral"])
def store(request, tmp_path):
    return ConversationStore(tmp_path if request.param == "files" else None)


class TestConversationStore:

    def test_get_or_create_does_not_save(self, store):
        conversation = store.get_or_create("u1")
        assert conversation.messages == []
        assert store.find_latest_by_user("u1") is None

    def test_get_or_create_uses_given_context(self, store):
        ctx = ConversationContext(activity=Activity.GYM_SEARCH)
        assert store.get_or_create("u1", ctx).context == ctx

    def test_upsert_then_find(self, store):
        conversation = store.get_or_create("u1")
        conversation.append("user", "hello")
        store.upsert(conversation)
        found = store.find_latest_by_user("u1")
        assert found.id == conversation.id
        assert [m.content for m in found.messages] == ["hello"]

    def test_upsert_replaces(self, store):
        conversation = store.get_or_create("u1")
        store.upsert(conversation)
        conversation.append("user", "again")
        store.upsert(conversation)
        assert len(store.find_latest_by_user("u1").messages) == 1

    def test_latest_by_updated_at(self, store):
        old = Conversation(user_id="u1")
        newer = Conversation(user_id="u1")
        with patch("fitbuddy.memory.conversations._now_iso", return_value="2026-01-02T08:00:00"):
            store.upsert(newer)
        with patch("fitbuddy.memory.conversations._now_iso", return_value="2026-01-01T08:00:00"):
            store.upsert(old)
        assert store.find_latest_by_user("u1").id == newer.id

    def test_users_are_separate(self, store):
        store.upsert(Conversation(user_id="u1"))
        assert store.find_latest_by_user("u2") is None

    def test_history_limit(self, store):
        conversation = store.get_or_create("u1")
        for i in range(60):
            conversation.append("user", str(i))
        store.upsert(conversation)
        history = store.history("u1")
        assert len(history) == 50
        assert history[-1].content == "59"
        assert [m.content for m in store.history("u1", limit=2)] == ["58", "59"]
        assert store.history("u2") == []


class TestPersistenceFailures:

    def test_ephemeral_flag(self, tmp_path):
        assert ConversationStore(None).ephemeral
        assert not ConversationStore(tmp_path).ephemeral

    def test_corrupt_document_raises(self, tmp_path):
        store = ConversationStore(tmp_path)
        store.upsert(Conversation(user_id="u1"))
        next((tmp_path / "conversations").glob("*.json")).write_text("{", encoding="utf-8")
        with pytest.raises(PersistenceError, match="Database read failed"):
            store.find_latest_by_user("u1")

    def test_unwritable_directory_raises(self, tmp_path):
        blocker = tmp_path / "blocked"
        blocker.write_text("not a directory", encoding="utf-8")
        store = ConversationStore(blocker)
        with pytest.raises(PersistenceError, match="Database write failed"):
            store.upsert(Conversation(user_id="u1"))


class TestUserLock:

    def test_same_user_is_serialized(self):
        store = ConversationStore(None)
        entered = threading.Event()

        def contender():
            with store.user_lock("u1"):
                entered.set()

        with store.user_lock("u1"):
            thread = threading.Thread(target=contender)
            thread.start()
            assert not entered.wait(0.2)
        thread.join(timeout=2)
        assert entered.is_set()

    def test_other_users_are_not_blocked(self):
        store = ConversationStore(None)
        entered = threading.Event()

        def other_user():
            with store.user_lock("u2"):
                entered.set()

        with store.user_lock("u1"):
            thread = threading.Thread(target=other_user)
            thread.start()
            assert entered.wait(2)
        thread.join(timeout=2)

    def test_lock_dropped_once_released(self):
        store = ConversationStore(None)
        with store.user_lock("u1"):
            assert "u1" in store._locks
        assert store._locks == {}
