"""
Persistence layer for field-service state.

SQLite-backed storage for jobs, their status history and notifications.
"""

from .manager import PersistenceManager
from .errors import PersistenceError, SchemaError

__all__ = ["PersistenceManager", "PersistenceError", "SchemaError"]
