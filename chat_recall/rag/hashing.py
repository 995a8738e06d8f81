"""
Content identity for stored chat data.

Chunks are content-addressed: the hash of participants, time window and text
is the upsert key, so re-ingesting the same export writes nothing new.
Per-message (legacy) rows have no hash and are probed against the store
instead.
"""

import hashlib
import logging
from datetime import datetime
from typing import Iterable, Optional

from .models import Chunk

logger = logging.getLogger(__name__)


def _time_key(value: Optional[datetime]) -> str:
    return value.isoformat() if value else "null"


def chunk_hash(
    participants: Iterable[str],
    start: Optional[datetime],
    end: Optional[datetime],
    content: str,
) -> str:
    """
    Deterministic identity for a chunk.

    SHA256 of participants|start|end|content. Only used for idempotent
    re-ingestion, but a fixed-width digest keeps accidental collisions out of
    the picture as corpora grow.

    Returns:
        64-character hex string
    """
    key = f"{','.join(participants)}|{_time_key(start)}|{_time_key(end)}|{content}"
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


def hash_chunk(chunk: Chunk) -> str:
    """chunk_hash() applied to a Chunk's own fields."""
    return chunk_hash(chunk.participants, chunk.start_time, chunk.end_time, chunk.content)


def is_duplicate_message(
    store,
    owner_id: str,
    content: str,
    message_id: Optional[str] = None,
    topic_id: Optional[str] = None,
) -> bool:
    """
    Check whether a message was already stored for this owner.

    Probes, first hit wins:
    1. Same content and message_id
    2. Same content and topic_id
    3. Same content

    A probe that fails is logged and counted as "no match": ingestion prefers
    completeness over the risk of a rare duplicate row.
    """
    probes = []
    if message_id:
        probes.append(("message_id", {"message_id": message_id}))
    if topic_id:
        probes.append(("topic_id", {"topic_id": topic_id}))
    probes.append(("content", {}))

    for tier, filters in probes:
        try:
            if store.find_chat_history(owner_id, content, **filters):
                logger.debug(f"Duplicate message matched on {tier}")
                return True
        except Exception as e:
            logger.warning(f"Duplicate check by {tier} failed, assuming not duplicate: {e}")

    return False
