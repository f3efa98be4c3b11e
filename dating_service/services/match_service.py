from __future__ import annotations

import time
from typing import Any, Dict, List

from motor.motor_asyncio import AsyncIOMotorDatabase

from ..models.match import MatchDocument
from ..models.user_profile import UserProfileDocument
from ..repositories.match import MatchRepository
from ..repositories.user_profile import UserProfileRepository
from .cache_service import discovery_cache, match_cache

DEFAULT_LIST_LIMIT = 50


def _match_user(user: UserProfileDocument | None, user_id: str) -> Dict[str, Any]:
    if user is None:
        return {"id": user_id}
    return {
        "id": user.user_id,
        "name": user.name,
        "age": user.age,
        "bio": user.bio,
        "photo": user.photos[0].url if user.photos else None,
        "lastActive": user.last_active,
    }


class MatchService:
    def __init__(self, matches: MatchRepository, users: UserProfileRepository) -> None:
        self._matches = matches
        self._users = users

    async def _serialize(self, user_id: str, matches: List[MatchDocument]) -> List[Dict[str, Any]]:
        others = [m.other_user(user_id) for m in matches]
        users = await self._users.get_many(others)
        return [
            {
                "matchId": str(m.id),
                "matchedAt": m.created_at,
                "matchType": m.match_type,
                "status": m.status,
                "conversationStarted": m.conversation_started,
                "lastActivityAt": m.last_activity_at,
                "messageCount": m.message_count,
                "user": _match_user(users.get(other), other),
            }
            for m, other in zip(matches, others)
        ]

    async def fetch_matches(self, user_id: str) -> List[Dict[str, Any]]:
        """Default first page, uncached."""
        docs = await self._matches.list_for_user(user_id, limit=DEFAULT_LIST_LIMIT)
        return await self._serialize(user_id, docs)

    async def list_matches(
        self,
        user_id: str,
        *,
        status: str = "active",
        limit: int = DEFAULT_LIST_LIMIT,
        skip: int = 0,
        sort_by: str = "createdAt",
    ) -> Dict[str, Any]:
        async def _fetch() -> List[Dict[str, Any]]:
            docs = await self._matches.list_for_user(
                user_id, status=status, limit=limit, skip=skip, sort_by=sort_by
            )
            return await self._serialize(user_id, docs)

        # Only the default first page is cached
        if status == "active" and skip == 0 and limit == DEFAULT_LIST_LIMIT and sort_by == "createdAt":
            items = await match_cache.get_or_fetch(user_id, lambda: self.fetch_matches(user_id))
        else:
            items = await _fetch()
        total = await self._matches.count_for_user(user_id, status)
        return {"matches": items, "count": len(items), "total": total}

    async def unmatch(self, match_id: str, user_id: str) -> MatchDocument:
        match = await self._matches.unmatch(match_id, user_id, int(time.time() * 1000))
        other = match.other_user(user_id)
        await self._users.unlink_match(user_id, other)
        for uid in match.users:
            await match_cache.invalidate(uid)
            await discovery_cache.invalidate(uid)
        return match


def build_match_service(db: AsyncIOMotorDatabase) -> MatchService:
    return MatchService(MatchRepository(db), UserProfileRepository(db))


__all__ = ["MatchService", "build_match_service"]
