"""Repository helpers for chat messages."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReplaceOne

from ..db.collections import MESSAGES_ARCHIVE_COLLECTION, MESSAGES_COLLECTION
from ..models.message import MessageDocument
from ..models.identifiers import to_object_id

LOGGER = logging.getLogger("uvicorn.error")

# _id breaks ties between messages stored in the same millisecond
_NEWEST_FIRST = [("createdAt", DESCENDING), ("_id", DESCENDING)]


class MessageRepository:
    """Thin abstraction over the messages MongoDB collection."""

    def __init__(self, database: AsyncIOMotorDatabase) -> None:
        self._database = database
        self._collection: AsyncIOMotorCollection = database[MESSAGES_COLLECTION]

    @property
    def collection(self) -> AsyncIOMotorCollection:
        return self._collection

    async def create(
        self,
        *,
        match_id: str,
        sender_id: str,
        receiver_id: str,
        content: str,
        message_type: str,
        media_url: Optional[str],
        reply_to: Optional[str],
        created_at: int,
    ) -> MessageDocument:
        doc: Dict[str, Any] = {
            "_id": ObjectId(),
            "matchId": match_id,
            "senderId": sender_id,
            "receiverId": receiver_id,
            "content": content,
            "type": message_type,
            "mediaUrl": media_url,
            "replyTo": reply_to,
            "isRead": False,
            "readAt": None,
            "createdAt": created_at,
        }
        await self._collection.insert_one(doc)
        return MessageDocument(**doc)

    async def list_page(self, match_id: str, *, skip: int, limit: int) -> List[MessageDocument]:
        """Newest-first page of a conversation."""
        cursor = self._collection.find({"matchId": match_id}).sort(_NEWEST_FIRST).skip(skip).limit(limit)
        return [MessageDocument(**doc) async for doc in cursor]

    async def count(self, match_id: str) -> int:
        return await self._collection.count_documents({"matchId": match_id})

    async def latest(self, match_id: str) -> Optional[MessageDocument]:
        cursor = self._collection.find({"matchId": match_id}).sort(_NEWEST_FIRST).limit(1)
        docs = await cursor.to_list(length=1)
        return MessageDocument(**docs[0]) if docs else None

    async def mark_read(self, match_id: str, receiver_id: str, now_ms: int) -> int:
        result = await self._collection.update_many(
            {"matchId": match_id, "receiverId": receiver_id, "isRead": False},
            {"$set": {"isRead": True, "readAt": now_ms}},
        )
        return result.modified_count

    async def unread_count(self, receiver_id: str, match_ids: Optional[List[str]] = None) -> int:
        query: Dict[str, Any] = {"receiverId": receiver_id, "isRead": False}
        if match_ids is not None:
            query["matchId"] = {"$in": match_ids}
        return await self._collection.count_documents(query)

    async def get_by_id(self, message_id: str) -> Optional[MessageDocument]:
        oid = to_object_id(message_id)
        if oid is None:
            return None
        doc = await self._collection.find_one({"_id": oid})
        return MessageDocument(**doc) if doc else None

    async def delete_by_sender(self, message_id: str, sender_id: str) -> Optional[MessageDocument]:
        oid = to_object_id(message_id)
        if oid is None:
            return None
        doc = await self._collection.find_one_and_delete({"_id": oid, "senderId": sender_id})
        return MessageDocument(**doc) if doc else None

    async def count_sent(self, sender_id: str) -> int:
        return await self._collection.count_documents({"senderId": sender_id})

    async def archive_older_than(self, cutoff_ms: int, batch_size: int = 500) -> int:
        """Move messages created before ``cutoff_ms`` into the archive collection."""
        archive = self._database[MESSAGES_ARCHIVE_COLLECTION]
        archived = 0
        while True:
            batch = await (
                self._collection.find({"createdAt": {"$lt": cutoff_ms}})
                .sort("createdAt", ASCENDING)
                .limit(batch_size)
                .to_list(length=batch_size)
            )
            if not batch:
                break
            # an interrupted run may have archived part of this batch already
            await archive.bulk_write(
                [ReplaceOne({"_id": doc["_id"]}, doc, upsert=True) for doc in batch], ordered=False
            )
            await self._collection.delete_many({"_id": {"$in": [doc["_id"] for doc in batch]}})
            archived += len(batch)
            if len(batch) < batch_size:
                break
        return archived


__all__ = ["MessageRepository"]
