"""Repository helpers for the matches collection."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from ..db.collections import MATCHES_COLLECTION
from ..models.match import MatchDocument
from .exceptions import NotFoundRepositoryError
from ..models.identifiers import to_object_id

LOGGER = logging.getLogger("uvicorn.error")


def sorted_pair(user_a: str, user_b: str) -> Tuple[str, str]:
    return (user_a, user_b) if user_a < user_b else (user_b, user_a)


class MatchRepository:
    """Thin abstraction over the matches MongoDB collection."""

    def __init__(self, database: AsyncIOMotorDatabase) -> None:
        self._database = database
        self._collection: AsyncIOMotorCollection = database[MATCHES_COLLECTION]

    @property
    def collection(self) -> AsyncIOMotorCollection:
        return self._collection

    async def get_by_id(self, match_id: str) -> Optional[MatchDocument]:
        oid = to_object_id(match_id)
        if oid is None:
            return None
        doc = await self._collection.find_one({"_id": oid})
        return MatchDocument(**doc) if doc else None

    async def get_by_pair(self, user_a: str, user_b: str) -> Optional[MatchDocument]:
        user1, user2 = sorted_pair(user_a, user_b)
        doc = await self._collection.find_one({"user1": user1, "user2": user2})
        return MatchDocument(**doc) if doc else None

    async def exists_active(self, user_a: str, user_b: str) -> bool:
        user1, user2 = sorted_pair(user_a, user_b)
        count = await self._collection.count_documents({"user1": user1, "user2": user2, "status": "active"})
        return count > 0

    async def create_or_reactivate(
        self,
        *,
        user_a: str,
        user_b: str,
        match_type: str,
        initiated_by: str,
        now_ms: int,
    ) -> Tuple[MatchDocument, bool, bool]:
        """Return ``(match, is_new, was_reactivated)`` for the pair.

        An existing active match is returned untouched. An unmatched one is
        reactivated with the new type and initiator.
        """

        user1, user2 = sorted_pair(user_a, user_b)
        existing = await self.get_by_pair(user1, user2)
        if existing is not None:
            if existing.status == "active":
                return existing, False, False
            doc = await self._collection.find_one_and_update(
                {"_id": existing.id, "status": {"$ne": "active"}},
                {
                    "$set": {
                        "status": "active",
                        "matchType": match_type,
                        "initiatedBy": initiated_by,
                        "lastActivityAt": now_ms,
                        "updatedAt": now_ms,
                    },
                    "$unset": {"unmatchedBy": "", "unmatchedAt": ""},
                },
                return_document=ReturnDocument.AFTER,
            )
            if doc is None:
                # Another request reactivated it first
                current = await self.get_by_pair(user1, user2)
                return current, False, False
            return MatchDocument(**doc), False, True

        doc: Dict[str, Any] = {
            "users": [user1, user2],
            "user1": user1,
            "user2": user2,
            "matchType": match_type,
            "initiatedBy": initiated_by,
            "status": "active",
            "conversationStarted": False,
            "messageCount": 0,
            "lastActivityAt": now_ms,
            "createdAt": now_ms,
            "updatedAt": now_ms,
        }
        try:
            result = await self._collection.insert_one(doc)
        except DuplicateKeyError:
            LOGGER.debug("Match race for %s/%s", user1, user2)
            current = await self.get_by_pair(user1, user2)
            return current, False, False
        doc["_id"] = result.inserted_id
        return MatchDocument(**doc), True, False

    async def list_for_user(
        self,
        user_id: str,
        *,
        status: str = "active",
        limit: int = 50,
        skip: int = 0,
        sort_by: str = "createdAt",
    ) -> List[MatchDocument]:
        cursor = (
            self._collection.find({"users": user_id, "status": status})
            .sort(sort_by, DESCENDING)
            .skip(skip)
            .limit(limit)
        )
        return [MatchDocument(**doc) async for doc in cursor]

    async def count_for_user(self, user_id: str, status: str = "active") -> int:
        return await self._collection.count_documents({"users": user_id, "status": status})

    async def unmatch(self, match_id: str, user_id: str, now_ms: int) -> MatchDocument:
        match = await self.get_by_id(match_id)
        if match is None:
            raise NotFoundRepositoryError("Match not found")
        if user_id not in match.users:
            raise PermissionError("User is not part of this match")
        doc = await self._collection.find_one_and_update(
            {"_id": match.id},
            {"$set": {"status": "unmatched", "unmatchedBy": user_id, "unmatchedAt": now_ms, "updatedAt": now_ms}},
            return_document=ReturnDocument.AFTER,
        )
        return MatchDocument(**doc)

    async def unmatch_pair(self, user_a: str, user_b: str, unmatched_by: str, now_ms: int) -> bool:
        user1, user2 = sorted_pair(user_a, user_b)
        result = await self._collection.update_one(
            {"user1": user1, "user2": user2, "status": "active"},
            {"$set": {"status": "unmatched", "unmatchedBy": unmatched_by, "unmatchedAt": now_ms, "updatedAt": now_ms}},
        )
        return result.modified_count > 0

    async def record_message(self, match: MatchDocument, sender_id: str, now_ms: int) -> None:
        update: Dict[str, Any] = {
            "$set": {"lastActivityAt": now_ms, "updatedAt": now_ms},
            "$inc": {"messageCount": 1},
        }
        if not match.conversation_started:
            update["$set"].update(
                {"conversationStarted": True, "firstMessageAt": now_ms, "firstMessageBy": sender_id}
            )
        await self._collection.update_one({"_id": match.id}, update)

    async def count_created_since(self, user_id: str, since_ms: int) -> int:
        return await self._collection.count_documents({"users": user_id, "createdAt": {"$gte": since_ms}})


__all__ = ["MatchRepository", "sorted_pair"]
