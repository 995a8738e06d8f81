"""
Shared fixtures for chat-recall tests.

The store and the OpenAI client are replaced by in-memory fakes so the
pipeline runs end to end without PostgreSQL or network access.
"""

import hashlib
import math
import re
import uuid
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from chat_recall.rag.embeddings import EmbeddingClient
from chat_recall.rag.models import CanonicalMessage
from chat_recall.rag.retry import RetryPolicy

FAKE_DIMENSIONS = 32

_WORD = re.compile(r"\w+")


def tokens(text):
    return _WORD.findall(text.lower())


def fake_embedding(text):
    """Deterministic bag-of-words vector, L2-normalized (zero vector for no words)."""
    vector = [0.0] * FAKE_DIMENSIONS
    for word in tokens(text):
        index = int(hashlib.md5(word.encode("utf-8")).hexdigest(), 16) % FAKE_DIMENSIONS
        vector[index] += 1.0
    norm = math.sqrt(sum(x * x for x in vector))
    return [x / norm for x in vector] if norm else vector


def cosine(a, b):
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(x * x for x in b))
    if not norm_a or not norm_b:
        return 0.0
    return sum(x * y for x, y in zip(a, b)) / (norm_a * norm_b)


class FakeOpenAI:
    """
    Stand-in for openai.OpenAI exposing only embeddings.create().

    Exceptions queued in `failures` are raised, one per call, before any call
    succeeds. `fail_at` maps a 1-based request number to the exception that
    request raises.
    """

    def __init__(self, failures=None, fail_at=None, drop_last=False):
        self.failures = list(failures or [])
        self.fail_at = dict(fail_at or {})
        self.drop_last = drop_last
        self.requests = []
        self.embeddings = SimpleNamespace(create=self._create)

    def _create(self, model, input, encoding_format=None):
        self.requests.append({"model": model, "input": list(input)})
        if self.failures:
            raise self.failures.pop(0)
        if len(self.requests) in self.fail_at:
            raise self.fail_at[len(self.requests)]
        data = [SimpleNamespace(embedding=fake_embedding(text)) for text in input]
        if self.drop_last:
            data = data[:-1]
        return SimpleNamespace(data=data)


class InMemoryChunkStore:
    """
    Minimal in-memory store for testing.

    Mimics the ChunkStore interface. Lexical ranking is word overlap with the
    query instead of ts_rank_cd; vector similarity is plain cosine.
    """

    def __init__(self):
        self.chunks = {}
        self.chat_history = {}
        self.chat_embeddings = {}
        self.upsert_calls = []
        self.embedding_updates = []

    # Chunks

    def upsert_chunks(self, owner_id, rows, source_label=None):
        self.upsert_calls.append(len(rows))
        existing = {(c["user_id"], c["chunk_hash"]) for c in self.chunks.values()}
        inserted = 0
        for chunk_hash, chunk in rows:
            if (owner_id, chunk_hash) in existing:
                continue
            chunk_id = str(uuid.uuid4())
            self.chunks[chunk_id] = {
                "id": chunk_id,
                "user_id": owner_id,
                "chunk_hash": chunk_hash,
                "content": chunk.content,
                "participants": list(chunk.participants),
                "participants_emails": list(chunk.participant_emails),
                "start_time": chunk.start_time,
                "end_time": chunk.end_time,
                "message_count": chunk.message_count,
                "original_filename": source_label,
                "embedding": None,
            }
            existing.add((owner_id, chunk_hash))
            inserted += 1
        return inserted

    def fetch_missing_embeddings(self, owner_id, limit):
        missing = [
            (c["id"], c["content"]) for c in self.chunks.values()
            if c["user_id"] == owner_id and c["embedding"] is None
        ]
        return missing[:limit]

    def update_embedding(self, chunk_id, vector):
        self.embedding_updates.append(chunk_id)
        self.chunks[chunk_id]["embedding"] = list(vector)

    def hybrid_search(self, query_text, query_embedding, match_threshold, lexical_limit, final_k, owner_id):
        query_words = set(tokens(query_text))
        owned = [c for c in self.chunks.values() if c["user_id"] == owner_id]
        owned.sort(key=lambda c: len(query_words & set(tokens(c["content"]))), reverse=True)
        lexical = owned[:lexical_limit]

        rows = []
        for c in lexical:
            if c["embedding"] is None:
                continue
            similarity = cosine(c["embedding"], query_embedding)
            if similarity > match_threshold:
                rows.append({
                    "chunk_id": c["id"],
                    "content": c["content"],
                    "participants": c["participants"],
                    "start_time": c["start_time"],
                    "end_time": c["end_time"],
                    "original_filename": c["original_filename"],
                    "similarity": similarity,
                })
        rows.sort(key=lambda r: r["similarity"], reverse=True)
        return rows[:final_k]

    def corpus_bounds(self, owner_id):
        owned = [c for c in self.chunks.values() if c["user_id"] == owner_id]
        starts = [c["start_time"] for c in owned if c["start_time"] is not None]
        ends = [c["end_time"] for c in owned if c["end_time"] is not None]
        return {
            "min_start": min(starts) if starts else None,
            "min_end": min(ends) if ends else None,
            "max_end": max(ends) if ends else None,
            "max_start": max(starts) if starts else None,
            "total": len(owned),
        }

    # Legacy per-message rows

    def find_chat_history(self, owner_id, content, message_id=None, topic_id=None):
        for row in self.chat_history.values():
            if row["user_id"] != owner_id or row["message_content"] != content:
                continue
            if message_id and row["message_id"] != message_id:
                continue
            if topic_id and row["topic_id"] != topic_id:
                continue
            return True
        return False

    def insert_chat_history(self, owner_id, message, source_label, metadata=None):
        history_id = str(uuid.uuid4())
        self.chat_history[history_id] = {
            "id": history_id,
            "user_id": owner_id,
            "participant_name": message.participant,
            "message_content": message.content,
            "message_date": message.timestamp,
            "creator_name": message.participant,
            "creator_email": message.participant_email,
            "creator_user_type": message.participant_type,
            "topic_id": message.topic_id,
            "message_id": message.message_id,
            "original_filename": source_label,
            "metadata": metadata or {},
        }
        return history_id

    def insert_chat_embedding(self, history_id, vector):
        self.chat_embeddings[history_id] = list(vector)

    def search_chat_history(self, query_embedding, match_threshold, match_count, owner_id):
        candidates = sorted(
            ((cosine(vector, query_embedding), history_id) for history_id, vector in self.chat_embeddings.items()),
            reverse=True,
        )[:max(match_count * 10, 50)]

        rows = []
        for similarity, history_id in candidates:
            row = self.chat_history[history_id]
            if row["user_id"] == owner_id and similarity > match_threshold:
                rows.append(dict(row, similarity=similarity))
        return rows[:match_count]


@pytest.fixture
def make_message():
    """Factory for CanonicalMessages at 2024-03-01 10:<minute> UTC."""
    def _make(content, participant="Alice", minute=0, email=None, **kwargs):
        return CanonicalMessage(
            content=content,
            timestamp=datetime(2024, 3, 1, 10, minute, tzinfo=timezone.utc),
            participant=participant,
            participant_email=email,
            **kwargs,
        )
    return _make


@pytest.fixture
def sleeps():
    """Records requested sleep durations instead of sleeping."""
    return []


@pytest.fixture
def fake_openai():
    return FakeOpenAI()


@pytest.fixture
def embedder(fake_openai, sleeps):
    return EmbeddingClient(client=fake_openai, sleep=sleeps.append)


@pytest.fixture
def store():
    return InMemoryChunkStore()


@pytest.fixture
def instant_retry(sleeps):
    """Legacy write retry policy that records delays instead of sleeping."""
    return RetryPolicy(max_attempts=4, base_delay=1.0, sleep=sleeps.append)
