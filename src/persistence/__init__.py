"""Durable storage for execution history and preferences."""

from src.persistence.db import (
    KeyValueStore,
    MemoryKeyValueStore,
    QuotaExceededError,
    SQLiteKeyValueStore,
    StorageError,
    StorageUnavailableError,
)
from src.persistence.storage import MAX_EXECUTIONS_PER_AGENT, StorageService

__all__ = [
    "KeyValueStore",
    "MAX_EXECUTIONS_PER_AGENT",
    "MemoryKeyValueStore",
    "QuotaExceededError",
    "SQLiteKeyValueStore",
    "StorageError",
    "StorageService",
    "StorageUnavailableError",
]
