import time
import asyncio
from typing import Any, Dict, Optional


class TTLCache:
    def __init__(self):
        # key -> (value, expires_at); expires_at 0 means no expiry
        self._store: Dict[str, tuple[Any, float]] = {}
        self._lock = asyncio.Lock()

    def _live(self, key: str, now: float) -> Optional[tuple[Any, float]]:
        item = self._store.get(key)
        if not item:
            return None
        _, exp = item
        if exp and exp < now:
            self._store.pop(key, None)
            return None
        return item

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            item = self._live(key, time.time())
            return item[0] if item else None

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        ttl = max(0, int(ttl_seconds))
        exp = time.time() + ttl if ttl else 0.0
        async with self._lock:
            self._store[key] = (value, exp)

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._store.pop(key, None) is not None

    async def exists(self, key: str) -> bool:
        async with self._lock:
            return self._live(key, time.time()) is not None

    async def incr(self, key: str, ttl_seconds: int = 0) -> int:
        """Increment an integer counter. The TTL is applied only when the counter is created."""
        now = time.time()
        async with self._lock:
            item = self._live(key, now)
            if item is None:
                exp = now + ttl_seconds if ttl_seconds else 0.0
                self._store[key] = (1, exp)
                return 1
            value, exp = item
            value = int(value or 0) + 1
            self._store[key] = (value, exp)
            return value

    async def decr(self, key: str) -> int:
        now = time.time()
        async with self._lock:
            item = self._live(key, now)
            value, exp = item if item else (0, 0.0)
            value = int(value or 0) - 1
            self._store[key] = (value, exp)
            return value

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        now = time.time()
        async with self._lock:
            item = self._live(key, now)
            if item is None:
                return False
            self._store[key] = (item[0], now + max(1, int(ttl_seconds)))
            return True

    async def delete_prefix(self, prefix: str) -> int:
        async with self._lock:
            keys = [k for k in self._store.keys() if k.startswith(prefix)]
            for k in keys:
                self._store.pop(k, None)
            return len(keys)

    async def clear(self) -> None:
        async with self._lock:
            self._store.clear()


cache = TTLCache()
