"""
Core module for chat-recall
Contains configuration, database access and schema definitions
"""

from .config import Config
from .database import PostgreSQLDatabase, get_database
from .schema import SCHEMA_STATEMENTS, init_schema

__all__ = ['Config', 'PostgreSQLDatabase', 'get_database', 'SCHEMA_STATEMENTS', 'init_schema']
