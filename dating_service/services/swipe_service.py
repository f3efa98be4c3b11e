"""Swipes and the double opt-in match transaction.

A like or superlike is recorded atomically (upsert on the unique swiper/swiped
pair). When the target already liked the swiper, a match is created, or an
unmatched one is reactivated. Repeating a swipe is idempotent: the stored
swipe is returned with ``alreadyProcessed`` and nothing is recounted.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from .. import redis_bus
from ..config import get_settings
from ..jobs import queue
from ..models.match import MatchDocument
from ..models.swipe import POSITIVE_ACTIONS, MatchData, MatchedUserSummary, SwipeDocument, SwipeResult
from ..models.user_profile import UserProfileDocument
from ..repositories.exceptions import NotFoundRepositoryError
from ..repositories.match import MatchRepository
from ..repositories.subscription import SubscriptionRepository
from ..repositories.swipe import SwipeRepository
from ..repositories.user_profile import UserProfileRepository
from .cache_service import discovery_cache, match_cache
from .subscription_service import SubscriptionService

LOGGER = logging.getLogger("uvicorn.error")


class SwipeLimitReachedError(RuntimeError):
    def __init__(self, limit: int) -> None:
        super().__init__("Daily swipe limit reached")
        self.limit = limit


def _start_of_utc_day_ms(now: Optional[datetime] = None) -> int:
    now = now or datetime.now(timezone.utc)
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return int(midnight.timestamp() * 1000)


def _first_photo(user: Optional[UserProfileDocument]) -> Optional[str]:
    if user is None or not user.photos:
        return None
    return user.photos[0].url


def _user_summary(user: Optional[UserProfileDocument]) -> Optional[Dict[str, Any]]:
    if user is None:
        return None
    return {
        "id": user.user_id,
        "name": user.name,
        "age": user.age,
        "bio": user.bio,
        "photo": _first_photo(user),
        "lastActive": user.last_active,
    }


class SwipeService:
    def __init__(
        self,
        swipes: SwipeRepository,
        matches: MatchRepository,
        users: UserProfileRepository,
        subscriptions: SubscriptionService,
        *,
        daily_limit: int = 50,
    ) -> None:
        self._swipes = swipes
        self._matches = matches
        self._users = users
        self._subscriptions = subscriptions
        self._daily_limit = daily_limit

    @property
    def daily_limit(self) -> int:
        return self._daily_limit

    @staticmethod
    def _now_ms() -> int:
        return int(time.time() * 1000)

    async def is_premium(self, user_id: str) -> bool:
        return await self._subscriptions.is_premium(user_id)

    async def can_swipe(self, user_id: str, is_premium: Optional[bool] = None) -> Dict[str, Any]:
        """Daily allowance. Premium users are unlimited and report ``remaining`` as -1."""
        if is_premium is None:
            is_premium = await self.is_premium(user_id)
        if is_premium:
            return {"canSwipe": True, "remaining": -1, "used": None, "limit": None, "isPremium": True}
        used = await self._swipes.count_since(user_id, _start_of_utc_day_ms())
        remaining = max(0, self._daily_limit - used)
        return {
            "canSwipe": remaining > 0,
            "remaining": remaining,
            "used": used,
            "limit": self._daily_limit,
            "isPremium": False,
        }

    async def ensure_can_swipe(self, user_id: str, is_premium: Optional[bool] = None) -> Dict[str, Any]:
        allowance = await self.can_swipe(user_id, is_premium)
        if not allowance["canSwipe"]:
            raise SwipeLimitReachedError(allowance["limit"])
        return allowance

    async def process_swipe(
        self,
        swiper_id: str,
        target_id: str,
        action: str,
        *,
        is_priority: bool = False,
    ) -> SwipeResult:
        if swiper_id == target_id:
            raise ValueError("Cannot swipe on yourself")
        if not await self._users.exists(target_id):
            raise NotFoundRepositoryError("User not found")

        now_ms = self._now_ms()
        swipe, created = await self._swipes.create_if_absent(
            swiper_id=swiper_id,
            swiped_id=target_id,
            action=action,
            is_priority=is_priority,
            created_at=now_ms,
        )
        swipe_payload = {"id": str(swipe.id), "action": swipe.action, "createdAt": swipe.created_at}
        if not created:
            return SwipeResult(swipe=swipe_payload, is_match=False, match_data=None, already_processed=True)

        match_data: Optional[MatchData] = None
        if action in POSITIVE_ACTIONS:
            await self._users.push_received_like(target_id, swiper_id, action, now_ms)
            match_data = await self.check_and_create_match(swiper_id, target_id, action)

        await self._users.increment_stats([swiper_id], "totalSwipes", 1)
        await discovery_cache.add_excluded_id(swiper_id, target_id)

        return SwipeResult(
            swipe=swipe_payload,
            is_match=match_data is not None,
            match_data=match_data,
            already_processed=False,
        )

    async def check_and_create_match(self, swiper_id: str, target_id: str, action: str) -> Optional[MatchData]:
        reverse = await self._swipes.find_reverse_like(swiper_id, target_id)
        if reverse is None:
            return None

        match_type = "superlike" if "superlike" in (action, reverse.action) else "regular"
        match, is_new, reactivated = await self._matches.create_or_reactivate(
            user_a=swiper_id,
            user_b=target_id,
            match_type=match_type,
            initiated_by=swiper_id,
            now_ms=self._now_ms(),
        )

        if is_new or reactivated:
            await self._users.increment_stats([swiper_id, target_id], "totalMatches", 1)
            await self._users.link_match(swiper_id, target_id)
            await self._on_match_created(match)

        matched_user = await self._users.get_by_user_id(target_id)
        return MatchData(
            match_id=str(match.id),
            match_type=match.match_type,
            matched_at=match.created_at,
            is_new_match=is_new,
            was_reactivated=reactivated,
            matched_user=MatchedUserSummary(
                id=target_id,
                name=matched_user.name if matched_user else None,
                photo=_first_photo(matched_user),
                age=matched_user.age if matched_user else None,
            ),
        )

    async def _on_match_created(self, match: MatchDocument) -> None:
        for user_id in match.users:
            await match_cache.invalidate(user_id)
        await redis_bus.publish(
            "matches",
            {"type": "match_created", "matchId": str(match.id), "users": match.users},
        )
        await queue.process_match(str(match.id), match.user1, match.user2)

    async def notify(self, swiper_id: str, target_id: str, result: SwipeResult) -> None:
        """Queue the like notification. Match notifications go out from the process-match job."""
        if result.already_processed or result.is_match:
            return
        if result.swipe.get("action") not in POSITIVE_ACTIONS:
            return
        swiper = await self._users.get_by_user_id(swiper_id)
        name = swiper.name if swiper else "Someone"
        await queue.send_push_notification(
            target_id,
            "💗 New Like!",
            f"{name} liked your profile!",
            {"type": "like", "likerId": swiper_id},
        )

    async def undo_swipe(self, swipe_id: str, user_id: str) -> Dict[str, Any]:
        swipe = await self._swipes.get_by_id(swipe_id)
        if swipe is None:
            raise NotFoundRepositoryError("Swipe not found")
        if swipe.swiper_id != user_id:
            raise PermissionError("Unauthorized to undo this swipe")

        target_id = swipe.swiped_id
        if swipe.action in POSITIVE_ACTIONS:
            if await self._matches.unmatch_pair(user_id, target_id, user_id, self._now_ms()):
                await self._users.increment_stats([user_id, target_id], "totalMatches", -1)
                await self._users.unlink_match(user_id, target_id)
                for uid in (user_id, target_id):
                    await match_cache.invalidate(uid)
            await self._users.pull_received_like(target_id, user_id)

        await self._swipes.delete(swipe.id)
        await self._users.increment_stats([user_id], "totalSwipes", -1)
        await discovery_cache.invalidate(user_id)
        return {"targetId": target_id, "action": swipe.action}

    async def list_sent(self, user_id: str, limit: int = 100) -> List[Dict[str, Any]]:
        return [self._swipe_payload(s) for s in await self._swipes.list_sent(user_id, limit=limit)]

    async def list_received(self, user_id: str, limit: int = 100) -> List[Dict[str, Any]]:
        return [self._swipe_payload(s) for s in await self._swipes.list_received_likes(user_id, limit=limit)]

    @staticmethod
    def _swipe_payload(swipe: SwipeDocument) -> Dict[str, Any]:
        return {
            "id": str(swipe.id),
            "swiperId": swipe.swiper_id,
            "swipedId": swipe.swiped_id,
            "action": swipe.action,
            "isPriority": swipe.is_priority,
            "createdAt": swipe.created_at,
        }

    async def get_pending_likes(self, user_id: str, *, limit: int = 50, skip: int = 0) -> List[Dict[str, Any]]:
        """Likes from users the caller has not swiped on yet, newest first."""
        already_swiped = await self._swipes.swiped_ids(user_id)
        likes = await self._swipes.list_received_likes(
            user_id, exclude_swiper_ids=already_swiped, limit=limit, skip=skip
        )
        users = await self._users.get_many(like.swiper_id for like in likes)
        return [
            {
                "likeId": str(like.id),
                "action": like.action,
                "likedAt": like.created_at,
                "user": _user_summary(users.get(like.swiper_id)),
            }
            for like in likes
        ]

    async def count_pending_likes(self, user_id: str) -> int:
        already_swiped = await self._swipes.swiped_ids(user_id)
        return await self._swipes.count_received_likes(user_id, exclude_swiper_ids=already_swiped)

    async def get_swipe_stats(self, user_id: str) -> Dict[str, Any]:
        sent = await self._swipes.count_by_action("swiperId", user_id)
        received = await self._swipes.count_by_action("swipedId", user_id)
        matches = await self._matches.count_for_user(user_id)
        likes_sent = sent["like"]
        match_rate = round(matches / likes_sent * 100, 1) if likes_sent > 0 else 0
        return {
            "sent": {
                "total": sum(sent.values()),
                "likes": likes_sent,
                "passes": sent["pass"],
                "superLikes": sent["superlike"],
            },
            "received": {
                "total": sum(received.values()),
                "likes": received["like"] + received["superlike"],
            },
            "matches": matches,
            "matchRate": match_rate,
        }


def build_swipe_service(db: AsyncIOMotorDatabase) -> SwipeService:
    return SwipeService(
        SwipeRepository(db),
        MatchRepository(db),
        UserProfileRepository(db),
        SubscriptionService(SubscriptionRepository(db)),
        daily_limit=get_settings().daily_swipe_limit,
    )


__all__ = ["SwipeLimitReachedError", "SwipeService", "build_swipe_service"]
