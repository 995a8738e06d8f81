"""
Chunk store for chat-recall, backed by PostgreSQL + pgvector.

Every SQL statement the pipeline issues lives here. Embeddings travel as
pgvector text literals ("[0.1,0.2,...]") cast with ::vector, so no driver-side
vector adapter is needed.

Index structures and full-text ranking belong to the database; this module
only asks for them declaratively.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import psycopg2.extras

from .models import CanonicalMessage, Chunk

logger = logging.getLogger(__name__)

# ivfflat lists probed per query; more probes trade speed for recall
IVFFLAT_PROBES = 10


def vector_literal(vector: Sequence[float]) -> str:
    """Render an embedding as a pgvector literal."""
    return "[" + ",".join(f"{x:.8f}" for x in vector) + "]"


class ChunkStore:
    """
    Storage for chunks, legacy per-message rows and their embeddings.

    All reads and writes are scoped to one owner.

    Example:
        store = ChunkStore(get_database())
        inserted = store.upsert_chunks(owner_id, [(chunk_hash, chunk)], "export.json")
        rows = store.hybrid_search("dinner", query_vec, 0.2, 5000, 50, owner_id)
    """

    def __init__(self, db):
        self.db = db

    def _query_with_probes(self, query: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Run a vector query with ivfflat.probes set for its transaction only."""
        with self.db.transaction() as conn:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cursor:
                cursor.execute(
                    "SELECT set_config('ivfflat.probes', %s, true)",
                    (str(IVFFLAT_PROBES),),
                )
                cursor.execute(query, params)
                return [dict(row) for row in cursor.fetchall()]

    # === Chunks ===

    def upsert_chunks(
        self,
        owner_id: str,
        rows: Sequence[Tuple[str, Chunk]],
        source_label: Optional[str] = None,
    ) -> int:
        """
        Insert chunks, skipping any whose (owner, hash) already exists.

        Args:
            owner_id: Owning user
            rows: (chunk_hash, Chunk) pairs
            source_label: Original filename recorded on each row

        Returns:
            Number of rows actually inserted
        """
        if not rows:
            return 0

        values = [
            (
                owner_id,
                chunk_hash,
                list(chunk.participants),
                list(chunk.participant_emails),
                chunk.content,
                chunk.start_time,
                chunk.end_time,
                chunk.message_count,
                source_label,
            )
            for chunk_hash, chunk in rows
        ]

        inserted = self.db.execute_values(
            """
            INSERT INTO chat_chunks (
                user_id, chunk_hash, participants, participants_emails, content,
                start_time, end_time, message_count, original_filename
            ) VALUES %s
            ON CONFLICT (user_id, chunk_hash) DO NOTHING
            RETURNING id
            """,
            values,
            template="(%s, %s, %s::text[], %s::text[], %s, %s, %s, %s, %s)",
            fetch=True,
        )
        logger.debug(f"Upserted {len(rows)} chunks, {len(inserted)} new")
        return len(inserted)

    def fetch_missing_embeddings(self, owner_id: str, limit: int) -> List[Tuple[str, str]]:
        """Up to `limit` (id, content) pairs for this owner's unembedded chunks."""
        rows = self.db.execute(
            """
            SELECT id, content FROM chat_chunks
            WHERE user_id = %s AND embedding IS NULL
            LIMIT %s
            """,
            (owner_id, limit),
        )
        return [(str(row["id"]), row["content"]) for row in rows]

    def update_embedding(self, chunk_id: str, vector: Sequence[float]) -> None:
        self.db.execute_write(
            "UPDATE chat_chunks SET embedding = %s::vector WHERE id = %s",
            (vector_literal(vector), chunk_id),
        )

    def hybrid_search(
        self,
        query_text: str,
        query_embedding: Sequence[float],
        match_threshold: float,
        lexical_limit: int,
        final_k: int,
        owner_id: str,
    ) -> List[Dict[str, Any]]:
        """
        Lexical pre-filter, then vector re-rank.

        The owner's chunks are ranked by ts_rank_cd against the query text and
        the top `lexical_limit` kept; those are ordered by cosine distance to
        the query embedding, cut at `match_threshold`, and truncated to
        `final_k`.

        Returns:
            Rows with chunk_id, content, participants, start_time, end_time,
            original_filename, similarity
        """
        query = """
            WITH lexical AS (
                SELECT cc.id
                FROM chat_chunks AS cc
                WHERE cc.user_id = %(owner_id)s
                ORDER BY ts_rank_cd(
                    to_tsvector('english', cc.content),
                    plainto_tsquery('english', %(query_text)s)
                ) DESC
                LIMIT %(lexical_limit)s
            )
            SELECT
                c.id AS chunk_id,
                c.content,
                c.participants,
                c.start_time,
                c.end_time,
                c.original_filename,
                1 - (c.embedding <=> %(embedding)s::vector) AS similarity
            FROM lexical l
            JOIN chat_chunks c ON c.id = l.id
            WHERE c.embedding IS NOT NULL
              AND 1 - (c.embedding <=> %(embedding)s::vector) > %(match_threshold)s
            ORDER BY c.embedding <=> %(embedding)s::vector
            LIMIT %(final_k)s
        """
        params = {
            "owner_id": owner_id,
            "query_text": query_text,
            "lexical_limit": lexical_limit,
            "embedding": vector_literal(query_embedding),
            "match_threshold": match_threshold,
            "final_k": final_k,
        }
        rows = self._query_with_probes(query, params)
        logger.debug(f"Hybrid search returned {len(rows)} rows")
        return rows

    def corpus_bounds(self, owner_id: str) -> Dict[str, Any]:
        """Raw time extremes and chunk count; nulls are ignored by min/max."""
        row = self.db.execute_one(
            """
            SELECT
                MIN(start_time) AS min_start,
                MIN(end_time) AS min_end,
                MAX(end_time) AS max_end,
                MAX(start_time) AS max_start,
                COUNT(*) AS total
            FROM chat_chunks
            WHERE user_id = %s
            """,
            (owner_id,),
        )
        return row or {"min_start": None, "min_end": None, "max_end": None, "max_start": None, "total": 0}

    # === Legacy per-message rows ===

    def find_chat_history(
        self,
        owner_id: str,
        content: str,
        message_id: Optional[str] = None,
        topic_id: Optional[str] = None,
    ) -> bool:
        """True if this owner already has a message with this content (and ids, when given)."""
        query = "SELECT id FROM chat_history WHERE user_id = %s AND message_content = %s"
        params: List[Any] = [owner_id, content]

        if message_id:
            query += " AND message_id = %s"
            params.append(message_id)
        if topic_id:
            query += " AND topic_id = %s"
            params.append(topic_id)

        return self.db.execute_one(query + " LIMIT 1", tuple(params)) is not None

    def insert_chat_history(
        self,
        owner_id: str,
        message: CanonicalMessage,
        source_label: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Insert one message row and return its id."""
        history_id = self.db.execute_write(
            """
            INSERT INTO chat_history (
                user_id, original_filename, participant_name, message_content,
                message_date, creator_name, creator_email, creator_user_type,
                topic_id, message_id, metadata
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            """,
            (
                owner_id,
                source_label,
                message.participant,
                message.content,
                message.timestamp,
                message.participant,
                message.participant_email,
                message.participant_type,
                message.topic_id,
                message.message_id,
                psycopg2.extras.Json(metadata or {}),
            ),
        )
        return str(history_id)

    def insert_chat_embedding(self, history_id: str, vector: Sequence[float]) -> None:
        self.db.execute_write(
            "INSERT INTO chat_embeddings (chat_history_id, embedding) VALUES (%s, %s::vector)",
            (history_id, vector_literal(vector)),
        )

    def search_chat_history(
        self,
        query_embedding: Sequence[float],
        match_threshold: float,
        match_count: int,
        owner_id: str,
    ) -> List[Dict[str, Any]]:
        """
        Vector-first search over per-message embeddings.

        Over-fetches max(match_count * 10, 50) nearest candidates, then applies
        the ownership and threshold filters, so fewer than match_count rows may
        come back even when more qualifying rows exist.
        """
        query = """
            WITH candidates AS (
                SELECT
                    ce.chat_history_id,
                    1 - (ce.embedding <=> %(embedding)s::vector) AS similarity
                FROM chat_embeddings ce
                ORDER BY ce.embedding <=> %(embedding)s::vector
                LIMIT GREATEST(%(match_count)s * 10, 50)
            )
            SELECT
                ch.id,
                ch.participant_name,
                ch.creator_name,
                ch.creator_email,
                ch.creator_user_type,
                ch.message_content,
                ch.message_date,
                ch.topic_id,
                ch.message_id,
                ch.original_filename,
                c.similarity
            FROM candidates c
            JOIN chat_history ch ON ch.id = c.chat_history_id
            WHERE ch.user_id = %(owner_id)s
              AND c.similarity > %(match_threshold)s
            ORDER BY c.similarity DESC
            LIMIT %(match_count)s
        """
        params = {
            "embedding": vector_literal(query_embedding),
            "match_count": match_count,
            "owner_id": owner_id,
            "match_threshold": match_threshold,
        }
        return self._query_with_probes(query, params)
