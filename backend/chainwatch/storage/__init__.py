"""Data storage layer."""

from chainwatch.storage import cache
from chainwatch.storage.list_store import MemoryListStore, RedisListStore

__all__ = [
    "MemoryListStore",
    "RedisListStore",
    "cache",
]
