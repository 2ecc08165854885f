"""Capped record list stores.

Both stores keep lists most recent first and persist at most ``cap``
leading records. Neither raises: a failed save returns False and the
caller's in-memory state stays authoritative.
"""

from __future__ import annotations

import copy
import logging
from typing import Any

from chainwatch.storage import cache

logger = logging.getLogger(__name__)


class RedisListStore:
    """List store on Redis lists via the shared cache connection."""

    async def load_list(self, key: str) -> list[dict[str, Any]]:
        return await cache.load_json_list(key)

    async def save_list(self, key: str, records: list[dict[str, Any]], cap: int) -> bool:
        saved = await cache.replace_json_list(key, records[:cap])
        if not saved:
            logger.warning(f"List {key} not persisted ({len(records[:cap])} records)")
        return saved


class MemoryListStore:
    """In-process list store with the same cap semantics."""

    def __init__(self):
        self._lists: dict[str, list[dict[str, Any]]] = {}

    async def load_list(self, key: str) -> list[dict[str, Any]]:
        return copy.deepcopy(self._lists.get(key, []))

    async def save_list(self, key: str, records: list[dict[str, Any]], cap: int) -> bool:
        self._lists[key] = copy.deepcopy(records[:cap])
        return True
