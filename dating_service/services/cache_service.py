"""Domain caches layered over :mod:`dating_service.redis_cache`."""

from __future__ import annotations

import logging
import time
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from .. import redis_cache
from ..cache_bus import publish_invalidate

LOGGER = logging.getLogger("uvicorn.error")

CACHE_TTL: Dict[str, int] = {
    "USER_PROFILE": 300,
    "USER_PREFERENCES": 600,
    "DISCOVERY_PROFILES": 60,
    "MATCHES": 120,
    "CONVERSATIONS": 180,
    "SESSION": 86400,
    "RATE_LIMIT": 60,
    "ONLINE_STATUS": 30,
}

CACHE_KEYS: Dict[str, str] = {
    "USER": "user:",
    "PROFILE": "profile:",
    "PREFERENCES": "prefs:",
    "DISCOVERY": "discovery:",
    "MATCHES": "matches:",
    "CONVERSATIONS": "conv:",
    "SESSION": "session:",
    "RATE_LIMIT": "ratelimit:",
    "ONLINE": "online:",
    "SWIPE_COUNT": "swipecount:",
}


class UserCache:
    @staticmethod
    def _profile_key(user_id: str) -> str:
        return f"{CACHE_KEYS['PROFILE']}{user_id}"

    @staticmethod
    def _prefs_key(user_id: str) -> str:
        return f"{CACHE_KEYS['PREFERENCES']}{user_id}"

    async def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        return await redis_cache.get(self._profile_key(user_id))

    async def set_profile(self, user_id: str, profile: Dict[str, Any]) -> bool:
        return await redis_cache.set(self._profile_key(user_id), profile, CACHE_TTL["USER_PROFILE"])

    async def invalidate(self, user_id: str) -> None:
        await redis_cache.delete(self._profile_key(user_id))
        await redis_cache.delete(self._prefs_key(user_id))
        await publish_invalidate(self._profile_key(user_id))

    async def get_preferences(self, user_id: str) -> Optional[Dict[str, Any]]:
        return await redis_cache.get(self._prefs_key(user_id))

    async def set_preferences(self, user_id: str, preferences: Dict[str, Any]) -> bool:
        return await redis_cache.set(self._prefs_key(user_id), preferences, CACHE_TTL["USER_PREFERENCES"])

    async def get_or_fetch(
        self,
        user_id: str,
        fetch: Callable[[], Awaitable[Optional[Dict[str, Any]]]],
    ) -> Optional[Dict[str, Any]]:
        """Read-through: return the cached profile or load it with ``fetch`` and cache it."""
        cached = await self.get_profile(user_id)
        if cached is not None:
            return cached
        profile = await fetch()
        if profile is not None:
            await self.set_profile(user_id, profile)
        return profile


class DiscoveryCache:
    @staticmethod
    def _key(user_id: str, page: Any = 0) -> str:
        return f"{CACHE_KEYS['DISCOVERY']}{user_id}:{page}"

    @staticmethod
    def _excluded_key(user_id: str) -> str:
        return f"{CACHE_KEYS['DISCOVERY']}excluded:{user_id}"

    async def get_profiles(self, user_id: str, page: Any = 0) -> Optional[List[Dict[str, Any]]]:
        return await redis_cache.get(self._key(user_id, page))

    async def set_profiles(self, user_id: str, profiles: List[Dict[str, Any]], page: Any = 0) -> bool:
        return await redis_cache.set(self._key(user_id, page), profiles, CACHE_TTL["DISCOVERY_PROFILES"])

    async def invalidate(self, user_id: str) -> None:
        await redis_cache.delete_prefix(f"{CACHE_KEYS['DISCOVERY']}{user_id}:")
        await redis_cache.delete(self._excluded_key(user_id))

    async def get_excluded_ids(self, user_id: str) -> Optional[List[str]]:
        return await redis_cache.get(self._excluded_key(user_id))

    async def set_excluded_ids(self, user_id: str, ids: Iterable[str]) -> bool:
        return await redis_cache.set(
            self._excluded_key(user_id),
            sorted(set(ids)),
            CACHE_TTL["DISCOVERY_PROFILES"] * 10,
        )

    async def add_excluded_id(self, user_id: str, excluded_id: str) -> None:
        """Record a swiped user and drop result pages that may still list them."""
        await redis_cache.delete_prefix(f"{CACHE_KEYS['DISCOVERY']}{user_id}:")
        current = await self.get_excluded_ids(user_id)
        if current is None:
            return
        if excluded_id not in current:
            current.append(excluded_id)
            await self.set_excluded_ids(user_id, current)


class MatchCache:
    @staticmethod
    def _key(user_id: str) -> str:
        return f"{CACHE_KEYS['MATCHES']}{user_id}"

    async def get(self, user_id: str) -> Optional[List[Dict[str, Any]]]:
        return await redis_cache.get(self._key(user_id))

    async def set(self, user_id: str, matches: List[Dict[str, Any]]) -> bool:
        return await redis_cache.set(self._key(user_id), matches, CACHE_TTL["MATCHES"])

    async def invalidate(self, user_id: str) -> None:
        await redis_cache.delete(self._key(user_id))

    async def get_or_fetch(
        self,
        user_id: str,
        fetch: Callable[[], Awaitable[Optional[List[Dict[str, Any]]]]],
    ) -> List[Dict[str, Any]]:
        cached = await self.get(user_id)
        if cached is not None:
            return cached
        matches = await fetch() or []
        await self.set(user_id, matches)
        return matches


class ConversationCache:
    @staticmethod
    def _key(match_id: str) -> str:
        return f"{CACHE_KEYS['CONVERSATIONS']}{match_id}"

    @staticmethod
    def _unread_key(user_id: str) -> str:
        return f"{CACHE_KEYS['CONVERSATIONS']}unread:{user_id}"

    async def get(self, match_id: str) -> Optional[Any]:
        return await redis_cache.get(self._key(match_id))

    async def set(self, match_id: str, payload: Any) -> bool:
        return await redis_cache.set(self._key(match_id), payload, CACHE_TTL["CONVERSATIONS"])

    async def invalidate(self, match_id: str) -> None:
        await redis_cache.delete_prefix(self._key(match_id))

    async def get_unread_count(self, user_id: str) -> Optional[int]:
        value = await redis_cache.get(self._unread_key(user_id))
        return int(value) if value is not None else None

    async def set_unread_count(self, user_id: str, count: int) -> bool:
        return await redis_cache.set(self._unread_key(user_id), int(count), CACHE_TTL["CONVERSATIONS"])

    async def invalidate_unread(self, user_id: str) -> None:
        await redis_cache.delete(self._unread_key(user_id))


class RateLimitCache:
    @staticmethod
    def _swipe_key(user_id: str) -> str:
        return f"{CACHE_KEYS['SWIPE_COUNT']}{user_id}"

    async def check_limit(self, key: str, max_requests: int, window_seconds: int) -> Dict[str, Any]:
        """Fixed-window counter. Fails open when the cache is unavailable."""
        count = await redis_cache.incr(f"{CACHE_KEYS['RATE_LIMIT']}{key}", window_seconds)
        if count is None:
            return {"allowed": True, "remaining": max_requests, "count": 0, "limit": max_requests}
        return {
            "allowed": count <= max_requests,
            "remaining": max(0, max_requests - count),
            "count": count,
            "limit": max_requests,
        }

    async def get_swipe_count(self, user_id: str) -> int:
        return await redis_cache.get_counter(self._swipe_key(user_id))

    async def increment_swipe_count(self, user_id: str, daily_limit: int) -> Dict[str, Any]:
        count = await redis_cache.incr(self._swipe_key(user_id), 86400) or 0
        return {
            "count": count,
            "remaining": max(0, daily_limit - count),
            "limitReached": count >= daily_limit,
        }

    async def reset_swipe_count(self, user_id: str) -> None:
        await redis_cache.delete(self._swipe_key(user_id))


class OnlineStatus:
    @staticmethod
    def _key(user_id: str) -> str:
        return f"{CACHE_KEYS['ONLINE']}{user_id}"

    async def set_online(self, user_id: str) -> None:
        await redis_cache.set(
            self._key(user_id),
            {"online": True, "lastSeen": int(time.time() * 1000)},
            CACHE_TTL["ONLINE_STATUS"],
        )

    async def set_offline(self, user_id: str) -> None:
        await redis_cache.set(
            self._key(user_id),
            {"online": False, "lastSeen": int(time.time() * 1000)},
            CACHE_TTL["SESSION"],
        )

    async def is_online(self, user_id: str) -> bool:
        status = await redis_cache.get(self._key(user_id))
        return bool(status and status.get("online"))

    async def get_last_seen(self, user_id: str) -> Optional[int]:
        status = await redis_cache.get(self._key(user_id))
        return status.get("lastSeen") if status else None

    async def get_bulk(self, user_ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        result: Dict[str, Dict[str, Any]] = {}
        for user_id in user_ids:
            status = await redis_cache.get(self._key(user_id))
            result[user_id] = {
                "online": bool(status and status.get("online")),
                "lastSeen": status.get("lastSeen") if status else None,
            }
        return result


user_cache = UserCache()
discovery_cache = DiscoveryCache()
match_cache = MatchCache()
conversation_cache = ConversationCache()
rate_limit_cache = RateLimitCache()
online_status = OnlineStatus()


async def warm_cache(
    user_id: str,
    fetch_profile: Callable[[], Awaitable[Optional[Dict[str, Any]]]],
    fetch_matches: Callable[[], Awaitable[Optional[List[Dict[str, Any]]]]],
) -> bool:
    """Preload a user's profile and matches after login."""
    try:
        await user_cache.get_or_fetch(user_id, fetch_profile)
        await match_cache.get_or_fetch(user_id, fetch_matches)
        return True
    except Exception as exc:
        LOGGER.warning("Cache warming failed for %s: %s", user_id, exc)
        return False


__all__ = [
    "CACHE_KEYS",
    "CACHE_TTL",
    "ConversationCache",
    "DiscoveryCache",
    "MatchCache",
    "OnlineStatus",
    "RateLimitCache",
    "UserCache",
    "conversation_cache",
    "discovery_cache",
    "match_cache",
    "online_status",
    "rate_limit_cache",
    "user_cache",
    "warm_cache",
]
