"""Redis access for token snapshots.

The cache is optional: when Redis is unreachable at startup every call
degrades to a no-op (reads return None/empty, writes return False) and the
pipeline runs with a cold catalog.

Values are stored as orjson-encoded bytes.
"""

from __future__ import annotations

import logging
from typing import Any

import orjson
import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from burnwatch.config import get_settings

logger = logging.getLogger(__name__)

# token:{currency}-{issuer} -> JSON Token
KEY_PREFIX_TOKEN = "token:"

_pool: ConnectionPool | None = None
_client: redis.Redis | None = None


async def init_cache() -> None:
    """Connect to Redis, leaving the cache disabled if it does not answer."""
    global _pool, _client

    if _client is not None:
        return

    redis_url = get_settings().redis_url
    _pool = ConnectionPool.from_url(redis_url, max_connections=10, decode_responses=False)
    _client = redis.Redis(connection_pool=_pool)

    try:
        await _client.ping()
    except (redis.ConnectionError, OSError) as e:
        logger.warning(f"Redis unreachable at {redis_url} ({e}), token snapshots disabled")
        await _pool.disconnect()
        _client = None
        _pool = None
        return

    logger.info(f"Redis connected: {redis_url}")


async def close_cache() -> None:
    global _pool, _client

    if _client is not None:
        await _client.aclose()
        _client = None
    if _pool is not None:
        await _pool.disconnect()
        _pool = None


def is_cache_available() -> bool:
    return _client is not None


async def get_json(key: str) -> Any | None:
    """Decoded value at ``key``, or None when missing, unreadable or disabled."""
    if _client is None:
        return None

    try:
        raw = await _client.get(key)
    except redis.RedisError as e:
        logger.warning(f"Redis GET {key} failed: {e}")
        return None

    if raw is None:
        return None
    try:
        return orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        logger.warning(f"Corrupt cache entry {key}: {e}")
        return None


async def set_json(key: str, value: Any, ttl: int | None = None) -> bool:
    """Store ``value`` at ``key``; returns False if it was not written."""
    if _client is None:
        return False

    try:
        raw = orjson.dumps(value)
    except TypeError as e:
        logger.warning(f"Cannot encode cache entry {key}: {e}")
        return False

    try:
        await _client.set(key, raw, ex=ttl)
    except redis.RedisError as e:
        logger.warning(f"Redis SET {key} failed: {e}")
        return False
    return True


async def scan_keys(pattern: str) -> list[str]:
    """Keys matching ``pattern`` (e.g. ``token:*``)."""
    if _client is None:
        return []

    keys: list[str] = []
    try:
        async for key in _client.scan_iter(match=pattern):
            keys.append(key.decode() if isinstance(key, bytes) else key)
    except redis.RedisError as e:
        logger.warning(f"Redis SCAN {pattern} failed: {e}")
        return []
    return keys
