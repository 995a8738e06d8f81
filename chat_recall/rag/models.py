"""
Data classes shared by the ingestion and retrieval pipeline.

Messages and chunks are immutable once produced: the normalizer creates
CanonicalMessages, the chunker folds them into Chunks, and the store owns
everything after that (ids, hashes, embeddings).
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple


# Sentinel for coverage bounds when no chunk carries a timestamp
UNKNOWN = "unknown"


@dataclass(frozen=True)
class CanonicalMessage:
    """
    One chat message in canonical form.

    Attributes:
        content: Message text
        timestamp: When the message was sent (UTC), if known
        participant: Display name of the sender
        participant_email: Sender email, if the export carried one
        participant_type: Sender kind from structured exports ("Human", "Bot", ...)
        topic_id: Export topic/thread identifier (legacy path dedupe)
        message_id: Export message identifier (legacy path dedupe)
    """
    content: str
    timestamp: Optional[datetime]
    participant: str
    participant_email: Optional[str] = None
    participant_type: str = "Human"
    topic_id: Optional[str] = None
    message_id: Optional[str] = None


@dataclass(frozen=True)
class Chunk:
    """
    A window of consecutive messages rendered as ``participant: content`` lines.

    Attributes:
        content: Newline-joined message lines
        start_time: Timestamp of the first message folded in
        end_time: Timestamp of the last message folded in
        participants: Distinct sender names, first-seen order
        participant_emails: Distinct sender emails, first-seen order
        message_count: Number of messages folded into this chunk
    """
    content: str
    start_time: Optional[datetime]
    end_time: Optional[datetime]
    participants: Tuple[str, ...] = ()
    participant_emails: Tuple[str, ...] = ()
    message_count: int = 0

    def __post_init__(self):
        if not self.content.strip():
            raise ValueError("Chunk content must not be empty")
        if self.message_count < 0:
            raise ValueError(f"Invalid message_count {self.message_count}")


@dataclass
class RetrievalResult:
    """A chunk returned by hybrid search."""
    chunk_id: str
    content: str
    participants: List[str]
    start_time: Optional[datetime]
    end_time: Optional[datetime]
    original_source: Optional[str]
    similarity: float

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "RetrievalResult":
        return cls(
            chunk_id=str(row["chunk_id"]),
            content=row["content"],
            participants=list(row.get("participants") or []),
            start_time=row.get("start_time"),
            end_time=row.get("end_time"),
            original_source=row.get("original_filename"),
            similarity=float(row["similarity"]),
        )


@dataclass
class CorpusCoverage:
    """Time range and size of one owner's ingested corpus."""
    earliest: str = UNKNOWN
    latest: str = UNKNOWN
    total_chunks: int = 0


@dataclass
class ChatHistoryMatch:
    """A row from the legacy per-message search."""
    id: str
    participant_name: str
    message_content: str
    similarity: float
    creator_name: Optional[str] = None
    creator_email: Optional[str] = None
    creator_user_type: Optional[str] = None
    message_date: Optional[datetime] = None
    topic_id: Optional[str] = None
    message_id: Optional[str] = None
    original_filename: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ChatHistoryMatch":
        return cls(
            id=str(row["id"]),
            participant_name=row["participant_name"],
            message_content=row["message_content"],
            similarity=float(row["similarity"]),
            creator_name=row.get("creator_name"),
            creator_email=row.get("creator_email"),
            creator_user_type=row.get("creator_user_type"),
            message_date=row.get("message_date"),
            topic_id=row.get("topic_id"),
            message_id=row.get("message_id"),
            original_filename=row.get("original_filename"),
        )


@dataclass
class IngestResult:
    """Counts reported by one chunked ingestion run."""
    inserted_count: int = 0
    embedded_count: int = 0


@dataclass
class UploadSummary:
    """Counts reported for one uploaded export."""
    total_messages: int
    chunks_generated: int
    chunks_inserted: int
    chunks_embedded: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "total_messages": self.total_messages,
            "chunks_generated": self.chunks_generated,
            "chunks_inserted": self.chunks_inserted,
            "chunks_embedded": self.chunks_embedded,
        }


@dataclass
class EmbedEntryError:
    """
    Failure value returned (not raised) by the per-message ingestion path,
    so a batch driver can keep going past individual failures.
    """
    message: str
    details: Any = None
    error: bool = field(default=True, init=False)
