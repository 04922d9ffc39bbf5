"""Persistence backends exports."""

from __future__ import annotations

from .base import FeatureRecord, Pair, PersistenceBackend
from .memory_store import MemoryBackend
from .redis_store import RedisBackend
from .sql_store import SqlBackend, features_table

__all__ = [
    "FeatureRecord",
    "Pair",
    "PersistenceBackend",
    "MemoryBackend",
    "RedisBackend",
    "SqlBackend",
    "features_table",
]
