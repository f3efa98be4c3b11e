"""Repository helpers for premium subscriptions and web-push endpoints."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase

from ..db.collections import PUSH_SUBSCRIPTIONS_COLLECTION, SUBSCRIPTIONS_COLLECTION
from ..models.subscription import SubscriptionDocument


class SubscriptionRepository:
    def __init__(self, database: AsyncIOMotorDatabase) -> None:
        self._collection: AsyncIOMotorCollection = database[SUBSCRIPTIONS_COLLECTION]

    @property
    def collection(self) -> AsyncIOMotorCollection:
        return self._collection

    async def get_by_user_id(self, user_id: str) -> Optional[SubscriptionDocument]:
        doc = await self._collection.find_one({"userId": user_id})
        return SubscriptionDocument(**doc) if doc else None

    async def upsert(self, user_id: str, fields: Dict[str, Any]) -> SubscriptionDocument:
        await self._collection.update_one(
            {"userId": user_id},
            {"$set": {**fields, "userId": user_id}},
            upsert=True,
        )
        doc = await self._collection.find_one({"userId": user_id})
        return SubscriptionDocument(**doc)


class PushSubscriptionRepository:
    def __init__(self, database: AsyncIOMotorDatabase) -> None:
        self._collection: AsyncIOMotorCollection = database[PUSH_SUBSCRIPTIONS_COLLECTION]

    async def upsert(self, user_id: str, endpoint: str, keys: Dict[str, str], now_ms: int) -> None:
        await self._collection.update_one(
            {"endpoint": endpoint},
            {
                "$set": {"endpoint": endpoint, "keys": keys, "userId": user_id, "updatedAt": now_ms},
                "$setOnInsert": {"createdAt": now_ms},
            },
            upsert=True,
        )

    async def remove(self, user_id: str, endpoint: str) -> bool:
        result = await self._collection.delete_one({"endpoint": endpoint, "userId": user_id})
        return result.deleted_count > 0

    async def remove_endpoint(self, endpoint: str) -> None:
        await self._collection.delete_one({"endpoint": endpoint})

    async def list_for_user(self, user_id: str) -> List[Dict[str, Any]]:
        cursor = self._collection.find({"userId": user_id}, projection={"_id": 0, "endpoint": 1, "keys": 1})
        return await cursor.to_list(length=50)


__all__ = ["PushSubscriptionRepository", "SubscriptionRepository"]
