"""
PostgreSQL schema for chat-recall.

Tables:
- chat_chunks: windowed chunks with a nullable pgvector embedding (hybrid search)
- chat_history: one row per message (legacy discrete-message path)
- chat_embeddings: embeddings for chat_history rows
"""

import logging

logger = logging.getLogger(__name__)

EMBEDDING_DIMENSIONS = 1536

SCHEMA_STATEMENTS = [
    "CREATE EXTENSION IF NOT EXISTS vector;",
    "CREATE EXTENSION IF NOT EXISTS pgcrypto;",

    # ====================================================================
    # Chunked chat storage
    # ====================================================================
    f"""
    CREATE TABLE IF NOT EXISTS chat_chunks (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        user_id UUID NOT NULL,
        chunk_hash TEXT NOT NULL,
        participants TEXT[] DEFAULT '{{}}',
        participants_emails TEXT[] DEFAULT '{{}}',
        content TEXT NOT NULL,
        start_time TIMESTAMP WITH TIME ZONE,
        end_time TIMESTAMP WITH TIME ZONE,
        message_count INTEGER NOT NULL DEFAULT 0 CHECK(message_count >= 0),
        original_filename TEXT,
        metadata JSONB DEFAULT '{{}}'::jsonb,
        embedding vector({EMBEDDING_DIMENSIONS}),
        created_at TIMESTAMP WITH TIME ZONE DEFAULT timezone('utc', now()) NOT NULL
    );
    """,
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_chat_chunks_owner_hash ON chat_chunks(user_id, chunk_hash);",
    "CREATE INDEX IF NOT EXISTS idx_chat_chunks_user_id ON chat_chunks(user_id);",
    "CREATE INDEX IF NOT EXISTS idx_chat_chunks_time ON chat_chunks(start_time);",
    "CREATE INDEX IF NOT EXISTS idx_chat_chunks_end_time ON chat_chunks(end_time);",
    "CREATE INDEX IF NOT EXISTS idx_chat_chunks_filename ON chat_chunks(original_filename);",
    "CREATE INDEX IF NOT EXISTS idx_chat_chunks_missing_embedding ON chat_chunks(user_id) WHERE embedding IS NULL;",
    "CREATE INDEX IF NOT EXISTS idx_chat_chunks_fts ON chat_chunks USING gin (to_tsvector('english', content));",
    "CREATE INDEX IF NOT EXISTS idx_chat_chunks_embedding ON chat_chunks USING ivfflat (embedding vector_cosine_ops) WITH (lists = 100);",
    "CREATE INDEX IF NOT EXISTS idx_chat_chunks_participants_emails ON chat_chunks USING gin (participants_emails);",

    # ====================================================================
    # Legacy per-message storage
    # ====================================================================
    """
    CREATE TABLE IF NOT EXISTS chat_history (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        user_id UUID NOT NULL,
        original_filename TEXT NOT NULL,
        participant_name TEXT NOT NULL,
        message_content TEXT NOT NULL,
        message_date TIMESTAMP WITH TIME ZONE,
        creator_name TEXT,
        creator_email TEXT,
        creator_user_type TEXT,
        topic_id TEXT,
        message_id TEXT,
        metadata JSONB DEFAULT '{}'::jsonb,
        created_at TIMESTAMP WITH TIME ZONE DEFAULT timezone('utc', now()) NOT NULL
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_chat_history_user_id ON chat_history(user_id);",
    "CREATE INDEX IF NOT EXISTS idx_chat_history_date ON chat_history(message_date);",
    "CREATE INDEX IF NOT EXISTS idx_chat_history_topic_id ON chat_history(topic_id);",
    "CREATE INDEX IF NOT EXISTS idx_chat_history_message_id ON chat_history(message_id);",
    f"""
    CREATE TABLE IF NOT EXISTS chat_embeddings (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        chat_history_id UUID NOT NULL REFERENCES chat_history(id) ON DELETE CASCADE,
        embedding vector({EMBEDDING_DIMENSIONS}),
        created_at TIMESTAMP WITH TIME ZONE DEFAULT timezone('utc', now()) NOT NULL
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_chat_embeddings_history_id ON chat_embeddings(chat_history_id);",
    "CREATE INDEX IF NOT EXISTS idx_chat_embeddings_vector ON chat_embeddings USING ivfflat (embedding vector_cosine_ops) WITH (lists = 100);",
]


def init_schema(db) -> None:
    """Create tables and indexes (idempotent)."""
    logger.info(f"Applying {len(SCHEMA_STATEMENTS)} schema statements")
    db.execute_script(SCHEMA_STATEMENTS)
    logger.info("Schema ready")
