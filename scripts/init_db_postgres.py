#!/usr/bin/env python3
"""
PostgreSQL database initialization script for chat-recall
Creates the chunk, chat history and embedding tables (requires pgvector)
"""

import logging
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import psycopg2

from chat_recall.core import Config, get_database, init_schema

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def init_database() -> bool:
    """Apply the schema to the database named by DATABASE_URL (or config)"""
    try:
        db = get_database(Config().get_database_url())
    except ValueError as e:
        logger.error(str(e))
        return False

    logger.info("Connecting to PostgreSQL...")
    try:
        init_schema(db)
    except psycopg2.Error as e:
        logger.error(f"Database error: {e}")
        return False

    tables = [t for t in ("chat_chunks", "chat_history", "chat_embeddings") if db.table_exists(t)]
    logger.info(f"Tables: {', '.join(tables)}")
    return True


if __name__ == "__main__":
    print("=" * 60)
    print("chat-recall - PostgreSQL Database Initialization")
    print("=" * 60)

    success = init_database()

    print("=" * 60)
    print("Database initialization complete!" if success else "Database initialization failed!")
    print("=" * 60)
    sys.exit(0 if success else 1)
