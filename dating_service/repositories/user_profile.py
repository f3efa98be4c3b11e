"""Repository helpers for the users collection."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorCursor, AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from ..db.collections import USERS_COLLECTION
from ..models.user_profile import UserProfileDocument
from .exceptions import DuplicateKeyRepositoryError, NotFoundRepositoryError

LOGGER = logging.getLogger("uvicorn.error")


class UserProfileRepository:
    """Thin abstraction over the users MongoDB collection."""

    def __init__(self, database: AsyncIOMotorDatabase) -> None:
        self._database = database
        self._collection: AsyncIOMotorCollection = database[USERS_COLLECTION]

    @property
    def collection(self) -> AsyncIOMotorCollection:
        return self._collection

    async def create_profile(
        self,
        *,
        user_id: str,
        email: str,
        name: str,
        password_hash: str,
        created_at: int,
        updated_at: int,
        extra: Optional[Dict[str, Any]] = None,
    ) -> UserProfileDocument:
        """Insert a new user document."""

        doc: Dict[str, Any] = {
            "_id": ObjectId(),
            "userId": user_id,
            "email": email.strip().lower(),
            "name": name,
            "passwordHash": password_hash,
            "interests": [],
            "photos": [],
            "preferredGender": "any",
            "preferredAgeRange": {"min": 18, "max": 100},
            "stats": {"totalSwipes": 0, "totalMatches": 0},
            "receivedLikes": [],
            "matches": [],
            "isActive": True,
            "lastActive": created_at,
            "createdAt": created_at,
            "updatedAt": updated_at,
        }
        if extra:
            doc.update({k: v for k, v in extra.items() if v is not None})
        try:
            await self._collection.insert_one(doc)
        except DuplicateKeyError as exc:
            LOGGER.debug("Duplicate user insertion for email=%s", email)
            raise DuplicateKeyRepositoryError("email already registered") from exc
        return UserProfileDocument(**doc)

    async def get_by_email(self, email: str) -> Optional[UserProfileDocument]:
        doc = await self._collection.find_one({"email": email.strip().lower()})
        return UserProfileDocument(**doc) if doc else None

    async def get_by_user_id(self, user_id: str) -> Optional[UserProfileDocument]:
        doc = await self._collection.find_one({"userId": user_id})
        return UserProfileDocument(**doc) if doc else None

    async def get_raw(self, user_id: str, projection: Optional[Dict[str, int]] = None) -> Optional[Dict[str, Any]]:
        return await self._collection.find_one({"userId": user_id}, projection=projection)

    async def get_many(self, user_ids: Iterable[str]) -> Dict[str, UserProfileDocument]:
        ids = list({uid for uid in user_ids if uid})
        if not ids:
            return {}
        found: Dict[str, UserProfileDocument] = {}
        async for doc in self._collection.find({"userId": {"$in": ids}}):
            found[doc["userId"]] = UserProfileDocument(**doc)
        return found

    async def exists(self, user_id: str) -> bool:
        doc = await self._collection.find_one({"userId": user_id}, projection={"_id": 1})
        return doc is not None

    async def email_exists(self, email: str) -> bool:
        doc = await self._collection.find_one({"email": email.strip().lower()}, projection={"_id": 1})
        return doc is not None

    async def update_profile(self, *, user_id: str, updates: dict) -> UserProfileDocument:
        """Update a profile identified by its userId."""

        result = await self._collection.find_one_and_update(
            {"userId": user_id},
            {"$set": updates},
            return_document=ReturnDocument.AFTER,
        )
        if not result:
            raise NotFoundRepositoryError("user not found")
        return UserProfileDocument(**result)

    async def add_photo(self, user_id: str, photo: Dict[str, Any], updated_at: int) -> UserProfileDocument:
        result = await self._collection.find_one_and_update(
            {"userId": user_id},
            {"$push": {"photos": photo}, "$set": {"updatedAt": updated_at}},
            return_document=ReturnDocument.AFTER,
        )
        if not result:
            raise NotFoundRepositoryError("user not found")
        return UserProfileDocument(**result)

    async def increment_stats(self, user_ids: Iterable[str], field: str, amount: int = 1) -> None:
        ids = [uid for uid in user_ids if uid]
        if not ids:
            return
        await self._collection.update_many(
            {"userId": {"$in": ids}},
            {"$inc": {f"stats.{field}": amount}},
        )

    async def push_received_like(self, user_id: str, from_user_id: str, action: str, at: int) -> None:
        await self._collection.update_one(
            {"userId": user_id},
            {"$push": {"receivedLikes": {"userId": from_user_id, "action": action, "at": at}}},
        )

    async def pull_received_like(self, user_id: str, from_user_id: str) -> None:
        await self._collection.update_one(
            {"userId": user_id},
            {"$pull": {"receivedLikes": {"userId": from_user_id}}},
        )

    async def link_match(self, user_a: str, user_b: str) -> None:
        await self._collection.update_one({"userId": user_a}, {"$addToSet": {"matches": user_b}})
        await self._collection.update_one({"userId": user_b}, {"$addToSet": {"matches": user_a}})

    async def unlink_match(self, user_a: str, user_b: str) -> None:
        await self._collection.update_one({"userId": user_a}, {"$pull": {"matches": user_b}})
        await self._collection.update_one({"userId": user_b}, {"$pull": {"matches": user_a}})

    async def set_reset_token(self, user_id: str, token_hash: str, expires_at: int) -> None:
        await self._collection.update_one(
            {"userId": user_id},
            {"$set": {"passwordResetToken": token_hash, "passwordResetExpires": expires_at}},
        )

    async def get_by_reset_token(self, token_hash: str, now_ms: int) -> Optional[UserProfileDocument]:
        doc = await self._collection.find_one(
            {"passwordResetToken": token_hash, "passwordResetExpires": {"$gt": now_ms}}
        )
        return UserProfileDocument(**doc) if doc else None

    async def update_password(self, user_id: str, password_hash: str, updated_at: int) -> None:
        result = await self._collection.update_one(
            {"userId": user_id},
            {
                "$set": {"passwordHash": password_hash, "updatedAt": updated_at},
                "$unset": {"passwordResetToken": "", "passwordResetExpires": ""},
            },
        )
        if result.matched_count == 0:
            raise NotFoundRepositoryError("user not found")

    def iter_candidates(
        self,
        *,
        exclude_ids: Iterable[str],
        min_age: int,
        max_age: int,
        gender: Optional[str] = None,
        batch_size: int = 200,
    ) -> AsyncIOMotorCursor:
        """Cursor over active users within the age range, best profiles first.

        Unbounded: callers stop iterating once they have enough results.
        """

        query: Dict[str, Any] = {
            "userId": {"$nin": list(exclude_ids)},
            "isActive": True,
            "age": {"$gte": min_age, "$lte": max_age},
        }
        if gender and gender != "any":
            query["gender"] = gender
        return (
            self._collection.find(query, projection={"passwordHash": 0, "passwordResetToken": 0})
            .sort([("profileCompleteness", -1), ("lastActive", -1)])
            .batch_size(batch_size)
        )


__all__ = ["UserProfileRepository"]
