"""Database package."""

from .engine import Database, create_database, create_sqlite_engine
from .repository import TaskRepository

__all__ = [
    "Database",
    "create_database",
    "create_sqlite_engine",
    "TaskRepository",
]
