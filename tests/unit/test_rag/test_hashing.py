"""
Unit tests for chunk hashing and the legacy duplicate probe.
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock

from chat_recall.rag.hashing import chunk_hash, hash_chunk, is_duplicate_message
from chat_recall.rag.models import Chunk

START = datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)
END = datetime(2024, 3, 1, 10, 5, tzinfo=timezone.utc)


class TestChunkHash:
    """Tests for chunk_hash()."""

    def test_deterministic(self):
        first = chunk_hash(["Ann", "Bo"], START, END, "Ann: hi\nBo: hey")
        second = chunk_hash(["Ann", "Bo"], START, END, "Ann: hi\nBo: hey")
        assert first == second

    def test_content_change_changes_hash(self):
        assert chunk_hash(["Ann"], START, END, "Ann: hi") != chunk_hash(["Ann"], START, END, "Ann: hi!")

    def test_time_change_changes_hash(self):
        assert chunk_hash(["Ann"], START, END, "Ann: hi") != chunk_hash(["Ann"], START, None, "Ann: hi")

    def test_fixed_width_hex(self):
        digest = chunk_hash([], None, None, "Unknown: hi")
        assert len(digest) == 64
        int(digest, 16)

    def test_hash_chunk_matches_fields(self):
        chunk = Chunk(content="Ann: hi", start_time=START, end_time=END, participants=("Ann",), message_count=1)
        assert hash_chunk(chunk) == chunk_hash(("Ann",), START, END, "Ann: hi")


class TestIsDuplicateMessage:
    """Tests for the tiered duplicate probe."""

    def test_no_match(self, store):
        assert is_duplicate_message(store, "owner-1", "hello", message_id="m1", topic_id="t1") is False

    def test_match_on_message_id(self, store, make_message):
        store.insert_chat_history("owner-1", make_message("hello", message_id="m1", topic_id="t1"), "a.json")
        assert is_duplicate_message(store, "owner-1", "hello", message_id="m1", topic_id="t9")

    def test_match_on_topic_id(self, store, make_message):
        store.insert_chat_history("owner-1", make_message("hello", message_id="m1", topic_id="t1"), "a.json")
        assert is_duplicate_message(store, "owner-1", "hello", message_id="m2", topic_id="t1")

    def test_match_on_content_alone(self, store, make_message):
        store.insert_chat_history("owner-1", make_message("hello"), "a.json")
        assert is_duplicate_message(store, "owner-1", "hello", message_id="m2", topic_id="t2")

    def test_same_topic_different_content_is_not_duplicate(self, store, make_message):
        store.insert_chat_history("owner-1", make_message("hello", topic_id="t1"), "a.json")
        assert not is_duplicate_message(store, "owner-1", "goodbye", topic_id="t1")

    def test_other_owner_is_not_duplicate(self, store, make_message):
        store.insert_chat_history("owner-2", make_message("hello"), "a.json")
        assert not is_duplicate_message(store, "owner-1", "hello")

    def test_probe_order(self):
        """message_id probe runs first, then topic_id, then content only."""
        fake_store = MagicMock()
        fake_store.find_chat_history.return_value = False

        is_duplicate_message(fake_store, "owner-1", "hello", message_id="m1", topic_id="t1")

        calls = fake_store.find_chat_history.call_args_list
        assert [c.kwargs for c in calls] == [{"message_id": "m1"}, {"topic_id": "t1"}, {}]
        assert all(c.args == ("owner-1", "hello") for c in calls)

    def test_probe_failure_treated_as_not_duplicate(self):
        """Store errors are logged and the message is assumed new."""
        fake_store = MagicMock()
        fake_store.find_chat_history.side_effect = RuntimeError("connection reset")

        assert is_duplicate_message(fake_store, "owner-1", "hello", message_id="m1") is False
        assert fake_store.find_chat_history.call_count == 2

    def test_later_probe_still_runs_after_failure(self):
        fake_store = MagicMock()
        fake_store.find_chat_history.side_effect = [RuntimeError("timeout"), True]

        assert is_duplicate_message(fake_store, "owner-1", "hello", message_id="m1")
