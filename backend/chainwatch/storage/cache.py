"""Redis connection and list operations.

Stores capped record lists (predictions per timeframe, alerts) as Redis
lists of orjson-encoded records, most recent first.

When Redis is unreachable every operation degrades: reads return empty,
writes return False.
"""

from __future__ import annotations

import logging
from typing import Any

import orjson
import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

logger = logging.getLogger(__name__)

# Global connection pool
_pool: ConnectionPool | None = None
_client: redis.Redis | None = None


# =============================================================================
# Key prefixes for different data types
# =============================================================================

KEY_PREFIX_PREDICTIONS = "predictions:"  # Prediction list: predictions:{timeframe}
KEY_ALERTS = "alerts"                    # Alert list


def predictions_key(timeframe: str) -> str:
    return f"{KEY_PREFIX_PREDICTIONS}{timeframe}"


# =============================================================================
# Connection management
# =============================================================================

async def init_cache(redis_url: str) -> bool:
    """Initialize Redis connection pool. Returns True if Redis is reachable."""
    global _pool, _client

    if _client is not None:
        return True

    _pool = ConnectionPool.from_url(
        redis_url,
        max_connections=10,
        decode_responses=False,  # We handle encoding ourselves with orjson
    )
    _client = redis.Redis(connection_pool=_pool)

    # Test connection
    try:
        await _client.ping()
        logger.info(f"Redis connected: {redis_url}")
        return True
    except redis.RedisError as e:
        logger.warning(f"Redis connection failed: {e}. Lists will not be persisted.")
        await _client.aclose()
        await _pool.disconnect()
        _client = None
        _pool = None
        return False


async def close_cache() -> None:
    """Close Redis connection pool."""
    global _pool, _client

    if _client is not None:
        await _client.aclose()
        _client = None

    if _pool is not None:
        await _pool.disconnect()
        _pool = None

    logger.info("Redis connection closed")


def is_cache_available() -> bool:
    """Check if cache is available."""
    return _client is not None


# =============================================================================
# List operations (using orjson)
# =============================================================================

async def load_json_list(key: str) -> list[Any]:
    """Load a JSON list stored with ``replace_json_list``.

    Args:
        key: List key

    Returns:
        Decoded records in stored order (empty if missing/unavailable)
    """
    if _client is None:
        return []

    try:
        raw = await _client.lrange(key, 0, -1)
    except redis.RedisError as e:
        logger.warning(f"Redis LRANGE error: {e}")
        return []

    records = []
    for item in raw:
        try:
            records.append(orjson.loads(item))
        except orjson.JSONDecodeError as e:
            logger.warning(f"JSON decode error for key {key}: {e}")
    return records


async def replace_json_list(key: str, records: list[Any]) -> bool:
    """Atomically replace a list with the given records.

    Args:
        key: List key
        records: JSON-serializable records, stored in order

    Returns:
        True if successful, False otherwise
    """
    if _client is None:
        return False

    try:
        payload = [orjson.dumps(r) for r in records]
    except (TypeError, orjson.JSONEncodeError) as e:
        logger.warning(f"JSON encode error for key {key}: {e}")
        return False

    try:
        async with _client.pipeline(transaction=True) as pipe:
            pipe.delete(key)
            if payload:
                pipe.rpush(key, *payload)
            await pipe.execute()
        return True
    except redis.RedisError as e:
        logger.warning(f"Redis list replace error for key {key}: {e}")
        return False


# =============================================================================
# Health check
# =============================================================================

async def ping() -> bool:
    """Check if Redis is responsive."""
    if _client is None:
        return False

    try:
        return await _client.ping()
    except redis.RedisError:
        return False
