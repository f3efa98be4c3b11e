"""JSON cache over the shared Redis client.

Every call fails soft: Redis errors are logged and treated as a cache miss.
When no Redis URL is configured the in-process ``TTLCache`` stands in, so a
single instance (and the test suite) keeps identical semantics.
"""

import json
import logging
from typing import Any, Optional

from .cache import cache as local_cache
from .config import get_settings
from .redis_bus import get_client

LOGGER = logging.getLogger("uvicorn.error")
_CACHE_NAMESPACE = "cache:"


def _redis_key(key: str) -> str:
    prefix = (get_settings().redis_pubsub_prefix or "").strip()
    ns = _CACHE_NAMESPACE
    if prefix:
        ns = f"{prefix}:{_CACHE_NAMESPACE}"
    return f"{ns}{key}"


async def get(key: str) -> Optional[Any]:
    client = await get_client()
    if not client:
        return await local_cache.get(key)
    try:
        raw = await client.get(_redis_key(key))
        if raw is None:
            return None
        if isinstance(raw, (bytes, bytearray)):
            raw = raw.decode("utf-8")
        return json.loads(raw)
    except Exception as exc:
        LOGGER.warning("Cache get error for %s: %s", key, exc)
        return None


async def set(key: str, value: Any, ttl_seconds: int) -> bool:
    client = await get_client()
    if not client:
        await local_cache.set(key, value, ttl_seconds)
        return True
    try:
        payload = json.dumps(value, separators=(",", ":"), default=str)
        ttl = max(1, int(ttl_seconds))
        await client.set(_redis_key(key), payload, ex=ttl)
        return True
    except Exception as exc:
        LOGGER.warning("Cache set error for %s: %s", key, exc)
        return False


async def delete(key: str) -> bool:
    client = await get_client()
    if not client:
        return await local_cache.delete(key)
    try:
        return bool(await client.delete(_redis_key(key)))
    except Exception as exc:
        LOGGER.warning("Cache delete error for %s: %s", key, exc)
        return False


async def delete_prefix(prefix: str) -> int:
    client = await get_client()
    if not client:
        return await local_cache.delete_prefix(prefix)
    pattern = _redis_key(prefix) + "*"
    deleted = 0
    try:
        async for name in client.scan_iter(match=pattern):
            deleted += int(await client.delete(name) or 0)
    except Exception as exc:
        LOGGER.warning("Cache delete_prefix error for %s: %s", prefix, exc)
    return deleted


async def exists(key: str) -> bool:
    client = await get_client()
    if not client:
        return await local_cache.exists(key)
    try:
        return bool(await client.exists(_redis_key(key)))
    except Exception as exc:
        LOGGER.warning("Cache exists error for %s: %s", key, exc)
        return False


async def incr(key: str, ttl_seconds: int = 0) -> Optional[int]:
    """Increment a counter, starting its TTL on the first hit. ``None`` on failure."""
    client = await get_client()
    if not client:
        return await local_cache.incr(key, ttl_seconds)
    try:
        redis_key = _redis_key(key)
        value = int(await client.incr(redis_key))
        if value == 1 and ttl_seconds:
            await client.expire(redis_key, int(ttl_seconds))
        return value
    except Exception as exc:
        LOGGER.warning("Cache incr error for %s: %s", key, exc)
        return None


async def decr(key: str) -> Optional[int]:
    client = await get_client()
    if not client:
        return await local_cache.decr(key)
    try:
        return int(await client.decr(_redis_key(key)))
    except Exception as exc:
        LOGGER.warning("Cache decr error for %s: %s", key, exc)
        return None


async def get_counter(key: str) -> int:
    client = await get_client()
    if not client:
        return int(await local_cache.get(key) or 0)
    try:
        raw = await client.get(_redis_key(key))
        return int(raw) if raw is not None else 0
    except Exception as exc:
        LOGGER.warning("Cache get_counter error for %s: %s", key, exc)
        return 0


async def expire(key: str, ttl_seconds: int) -> bool:
    client = await get_client()
    if not client:
        return await local_cache.expire(key, ttl_seconds)
    try:
        return bool(await client.expire(_redis_key(key), int(ttl_seconds)))
    except Exception as exc:
        LOGGER.warning("Cache expire error for %s: %s", key, exc)
        return False
