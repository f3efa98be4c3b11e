"""Repository helpers for the swipes collection."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import DESCENDING
from pymongo.errors import DuplicateKeyError

from ..db.collections import SWIPES_COLLECTION
from ..models.identifiers import to_object_id
from ..models.swipe import POSITIVE_ACTIONS, SWIPE_TTL_DAYS, SwipeDocument

LOGGER = logging.getLogger("uvicorn.error")


class SwipeRepository:
    """Thin abstraction over the swipes MongoDB collection."""

    def __init__(self, database: AsyncIOMotorDatabase) -> None:
        self._database = database
        self._collection: AsyncIOMotorCollection = database[SWIPES_COLLECTION]

    @property
    def collection(self) -> AsyncIOMotorCollection:
        return self._collection

    async def create_if_absent(
        self,
        *,
        swiper_id: str,
        swiped_id: str,
        action: str,
        is_priority: bool,
        created_at: int,
    ) -> Tuple[SwipeDocument, bool]:
        """Insert the swipe unless the pair already exists.

        Returns the stored swipe and whether this call created it. A concurrent
        insert losing the unique-index race is reported as not created.
        """

        expires_at = datetime.now(timezone.utc) + timedelta(days=SWIPE_TTL_DAYS)
        created = False
        try:
            result = await self._collection.update_one(
                {"swiperId": swiper_id, "swipedId": swiped_id},
                {
                    "$setOnInsert": {
                        "swiperId": swiper_id,
                        "swipedId": swiped_id,
                        "action": action,
                        "isPriority": bool(is_priority),
                        "createdAt": created_at,
                        "expiresAt": expires_at,
                    }
                },
                upsert=True,
            )
            created = result.upserted_id is not None
        except DuplicateKeyError:
            LOGGER.debug("Swipe race for %s -> %s", swiper_id, swiped_id)
        doc = await self._collection.find_one({"swiperId": swiper_id, "swipedId": swiped_id})
        return SwipeDocument(**doc), created

    async def get_by_id(self, swipe_id: str) -> Optional[SwipeDocument]:
        oid = to_object_id(swipe_id)
        if oid is None:
            return None
        doc = await self._collection.find_one({"_id": oid})
        return SwipeDocument(**doc) if doc else None

    async def delete(self, swipe_id: Any) -> bool:
        result = await self._collection.delete_one({"_id": ObjectId(str(swipe_id))})
        return result.deleted_count > 0

    async def find_reverse_like(self, swiper_id: str, swiped_id: str) -> Optional[SwipeDocument]:
        """The swipe ``swiped_id`` made on ``swiper_id``, if it was positive."""
        doc = await self._collection.find_one(
            {"swiperId": swiped_id, "swipedId": swiper_id, "action": {"$in": list(POSITIVE_ACTIONS)}}
        )
        return SwipeDocument(**doc) if doc else None

    async def count_since(self, swiper_id: str, since_ms: int) -> int:
        return await self._collection.count_documents(
            {"swiperId": swiper_id, "createdAt": {"$gte": since_ms}}
        )

    async def swiped_ids(self, swiper_id: str) -> List[str]:
        cursor = self._collection.find({"swiperId": swiper_id}, projection={"swipedId": 1})
        return [doc["swipedId"] async for doc in cursor]

    async def list_sent(self, swiper_id: str, limit: int = 100) -> List[SwipeDocument]:
        cursor = self._collection.find({"swiperId": swiper_id}).sort("createdAt", DESCENDING).limit(limit)
        return [SwipeDocument(**doc) async for doc in cursor]

    async def list_received_likes(
        self,
        swiped_id: str,
        *,
        exclude_swiper_ids: Optional[List[str]] = None,
        limit: int = 100,
        skip: int = 0,
    ) -> List[SwipeDocument]:
        query: Dict[str, Any] = {"swipedId": swiped_id, "action": {"$in": list(POSITIVE_ACTIONS)}}
        if exclude_swiper_ids:
            query["swiperId"] = {"$nin": exclude_swiper_ids}
        cursor = self._collection.find(query).sort("createdAt", DESCENDING).skip(skip).limit(limit)
        return [SwipeDocument(**doc) async for doc in cursor]

    async def count_received_likes(self, swiped_id: str, *, exclude_swiper_ids: Optional[List[str]] = None) -> int:
        query: Dict[str, Any] = {"swipedId": swiped_id, "action": {"$in": list(POSITIVE_ACTIONS)}}
        if exclude_swiper_ids:
            query["swiperId"] = {"$nin": exclude_swiper_ids}
        return await self._collection.count_documents(query)

    async def count_by_action(self, field: str, user_id: str) -> Dict[str, int]:
        """Count swipes per action where ``field`` (swiperId or swipedId) is ``user_id``."""
        counts = {"like": 0, "pass": 0, "superlike": 0}
        pipeline = [
            {"$match": {field: user_id}},
            {"$group": {"_id": "$action", "count": {"$sum": 1}}},
        ]
        async for row in self._collection.aggregate(pipeline):
            if row["_id"] in counts:
                counts[row["_id"]] = int(row["count"])
        return counts


__all__ = ["SwipeRepository"]
