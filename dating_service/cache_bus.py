import logging
from typing import Any, Dict

from .cache import cache as local_cache
from .redis_bus import publish

LOGGER = logging.getLogger("uvicorn.error")


async def handle_cache_event(topic: str, event: Dict[str, Any]) -> None:
    """Consume cache bus events and apply local invalidations.
    Expected events on topic 'cache' with shape: { type: 'invalidate', pattern: '<prefix>' }
    """
    if not topic.endswith("cache"):
        return
    et = str(event.get("type") or "").lower()
    if et == "invalidate":
        pat = str(event.get("pattern") or "")
        if pat:
            await local_cache.delete_prefix(pat)


async def publish_invalidate(pattern: str) -> None:
    """Broadcast a prefix invalidation to every instance. No-op when pub/sub is disabled."""
    try:
        await publish("cache", {"type": "invalidate", "pattern": pattern})
    except Exception as exc:
        LOGGER.warning("Cache invalidation broadcast failed for %s: %s", pattern, exc)
