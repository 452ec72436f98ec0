"""
A/B exploration — persistent per-intent variant assignment and winner lock.

Usage:
    from services.intentflow.ab import ABExplorer, InMemoryKeyValueStore
"""

from __future__ import annotations

from services.intentflow.ab.explorer import ABExplorer, ABState
from services.intentflow.ab.store import (
    InMemoryKeyValueStore,
    KeyValueStore,
    RedisKeyValueStore,
    StorageUnavailable,
)

__all__ = [
    "ABExplorer",
    "ABState",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "RedisKeyValueStore",
    "StorageUnavailable",
]
