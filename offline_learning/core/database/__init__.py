"""Database connection module for the local data core."""

from offline_learning.core.database.locks import KeyedLock
from offline_learning.core.database.sqlite import (
    Database,
    init_database,
    shutdown_database,
)


__all__ = [
    "Database",
    "KeyedLock",
    "init_database",
    "shutdown_database",
]
