"""
Database utilities and connection management
PostgreSQL (with the pgvector extension) via psycopg2

Usage:
    db = get_database()  # Uses DATABASE_URL
    rows = db.execute("SELECT id FROM chat_chunks WHERE user_id = %s", (owner_id,))
"""

import os
from contextlib import contextmanager
from typing import List, Dict, Any, Optional, Sequence, Tuple

import psycopg2
import psycopg2.extras


class PostgreSQLDatabase:
    """PostgreSQL database implementation"""

    def __init__(self, database_url: str):
        self.database_url = database_url

    @contextmanager
    def get_connection(self):
        conn = psycopg2.connect(self.database_url)
        try:
            yield conn
        finally:
            conn.close()

    def execute(self, query: str, params: Any = ()) -> List[Dict[str, Any]]:
        """Execute a SELECT query and return results as list of dicts"""
        with self.get_connection() as conn:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cursor:
                cursor.execute(query, params)
                rows = cursor.fetchall()
                return [dict(row) for row in rows]

    def execute_one(self, query: str, params: Any = ()) -> Optional[Dict[str, Any]]:
        """Execute a SELECT query and return single result"""
        with self.get_connection() as conn:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cursor:
                cursor.execute(query, params)
                row = cursor.fetchone()
                return dict(row) if row else None

    def execute_write(self, query: str, params: Any = ()) -> int:
        """
        Execute an INSERT, UPDATE, or DELETE query

        INSERTs get RETURNING id appended and return the new id;
        everything else returns the affected row count.
        """
        is_insert = query.strip().upper().startswith('INSERT')
        if is_insert and 'RETURNING' not in query.upper():
            query = query.rstrip().rstrip(';') + ' RETURNING id'

        with self.get_connection() as conn:
            with conn.cursor() as cursor:
                cursor.execute(query, params)
                conn.commit()
                if is_insert:
                    result = cursor.fetchone()
                    return result[0] if result else 0
                return cursor.rowcount

    def execute_values(
        self,
        query: str,
        rows: Sequence[Tuple],
        template: Optional[str] = None,
        fetch: bool = False,
    ) -> List[Tuple]:
        """
        Bulk INSERT with a single VALUES list (psycopg2.extras.execute_values)

        Args:
            query: Statement containing a single ``VALUES %s`` placeholder
            rows: Row tuples to expand into the VALUES list
            template: Optional per-row template, e.g. ``(%s, %s::vector)``
            fetch: Return rows produced by a RETURNING clause

        Returns:
            RETURNING rows when fetch is True, otherwise an empty list
        """
        if not rows:
            return []

        with self.get_connection() as conn:
            with conn.cursor() as cursor:
                result = psycopg2.extras.execute_values(
                    cursor,
                    query,
                    rows,
                    template=template,
                    page_size=len(rows),
                    fetch=fetch,
                )
                conn.commit()
                return list(result) if fetch else []

    def execute_script(self, statements: Sequence[str]) -> None:
        """Run several statements in one transaction"""
        with self.transaction() as conn:
            with conn.cursor() as cursor:
                for statement in statements:
                    cursor.execute(statement)

    def table_exists(self, table_name: str) -> bool:
        query = """
            SELECT table_name FROM information_schema.tables
            WHERE table_schema = 'public' AND table_name = %s;
        """
        result = self.execute_one(query, (table_name,))
        return result is not None

    @contextmanager
    def transaction(self):
        with self.get_connection() as conn:
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise


def get_database(database_url: Optional[str] = None) -> PostgreSQLDatabase:
    """
    Factory function to get the database instance.

    Uses the explicit URL when given, otherwise DATABASE_URL.
    """
    database_url = database_url or os.environ.get('DATABASE_URL')
    if not database_url:
        raise ValueError(
            "DATABASE_URL environment variable not set. "
            "Set it to your PostgreSQL (pgvector) connection string."
        )
    return PostgreSQLDatabase(database_url)
