from __future__ import annotations

import logging
import time
from typing import Any, Dict, List

from motor.motor_asyncio import AsyncIOMotorDatabase

from .. import redis_bus
from ..jobs import queue
from ..models.match import MatchDocument
from ..models.message import MessageCreateRequest, MessageDocument
from ..repositories.exceptions import NotFoundRepositoryError
from ..repositories.match import MatchRepository
from ..repositories.message import MessageRepository
from ..repositories.user_profile import UserProfileRepository
from .cache_service import conversation_cache, match_cache, online_status

LOGGER = logging.getLogger("uvicorn.error")

PREVIEW_LENGTH = 100


class ChatService:
    """Messages exchanged inside an active match."""

    def __init__(
        self,
        messages: MessageRepository,
        matches: MatchRepository,
        users: UserProfileRepository,
    ) -> None:
        self._messages = messages
        self._matches = matches
        self._users = users

    @staticmethod
    def _now_ms() -> int:
        return int(time.time() * 1000)

    async def require_match(self, match_id: str, user_id: str) -> MatchDocument:
        match = await self._matches.get_by_id(match_id)
        if match is None or match.status != "active":
            raise NotFoundRepositoryError("Match not found")
        if user_id not in match.users:
            raise PermissionError("Access denied to this conversation")
        return match

    async def send_message(self, match_id: str, sender_id: str, body: MessageCreateRequest) -> MessageDocument:
        match = await self.require_match(match_id, sender_id)
        receiver_id = match.other_user(sender_id)
        now_ms = self._now_ms()
        message = await self._messages.create(
            match_id=match_id,
            sender_id=sender_id,
            receiver_id=receiver_id,
            content=body.content.strip(),
            message_type=body.type,
            media_url=body.media_url,
            reply_to=body.reply_to,
            created_at=now_ms,
        )
        await self._matches.record_message(match, sender_id, now_ms)
        for user_id in match.users:
            await match_cache.invalidate(user_id)

        await conversation_cache.invalidate(match_id)
        await conversation_cache.invalidate_unread(receiver_id)
        await redis_bus.publish(
            "messages",
            {
                "type": "message_created",
                "matchId": match_id,
                "messageId": str(message.id),
                "senderId": sender_id,
                "receiverId": receiver_id,
            },
        )

        if not await online_status.is_online(receiver_id):
            sender = await self._users.get_by_user_id(sender_id)
            preview = message.content[:PREVIEW_LENGTH] if message.type == "text" else f"Sent a {message.type}"
            await queue.send_push_notification(
                receiver_id,
                sender.name if sender else "New message",
                preview,
                {"type": "message", "matchId": match_id, "senderId": sender_id},
            )
        return message

    async def get_messages(self, match_id: str, user_id: str, *, page: int = 1, limit: int = 50) -> Dict[str, Any]:
        """Oldest-first page of a conversation. Marks the caller's received messages as read."""
        await self.require_match(match_id, user_id)
        page = max(1, page)
        limit = max(1, min(limit, 100))
        docs = await self._messages.list_page(match_id, skip=(page - 1) * limit, limit=limit)
        total = await self._messages.count(match_id)
        if await self._messages.mark_read(match_id, user_id, self._now_ms()):
            await conversation_cache.invalidate_unread(user_id)
        return {
            "messages": [doc.to_public() for doc in reversed(docs)],
            "page": page,
            "limit": limit,
            "total": total,
        }

    async def get_conversations(self, user_id: str) -> List[Dict[str, Any]]:
        matches = await self._matches.list_for_user(user_id, limit=500, sort_by="lastActivityAt")
        others = await self._users.get_many(m.other_user(user_id) for m in matches)
        conversations = []
        for match in matches:
            match_id = str(match.id)
            other_id = match.other_user(user_id)
            other = others.get(other_id)
            latest = await self._messages.latest(match_id)
            conversations.append(
                {
                    "matchId": match_id,
                    "otherUser": {
                        "id": other_id,
                        "name": other.name if other else None,
                        "photo": other.photos[0].url if other and other.photos else None,
                        "lastActive": other.last_active if other else None,
                    },
                    "latestMessage": (
                        {
                            "content": latest.content,
                            "type": latest.type,
                            "createdAt": latest.created_at,
                            "senderId": latest.sender_id,
                        }
                        if latest
                        else None
                    ),
                    "unreadCount": await self._messages.unread_count(user_id, [match_id]),
                    "matchDate": match.created_at,
                    "lastActivityAt": match.last_activity_at,
                }
            )
        conversations.sort(key=lambda c: c["lastActivityAt"] or c["matchDate"] or 0, reverse=True)
        return conversations

    async def mark_as_read(self, match_id: str, user_id: str) -> int:
        await self.require_match(match_id, user_id)
        modified = await self._messages.mark_read(match_id, user_id, self._now_ms())
        await conversation_cache.invalidate_unread(user_id)
        return modified

    async def get_unread_count(self, user_id: str) -> int:
        cached = await conversation_cache.get_unread_count(user_id)
        if cached is not None:
            return cached
        count = await self._messages.unread_count(user_id)
        await conversation_cache.set_unread_count(user_id, count)
        return count

    async def delete_message(self, message_id: str, user_id: str) -> None:
        deleted = await self._messages.delete_by_sender(message_id, user_id)
        if deleted is None:
            raise NotFoundRepositoryError("Message not found or access denied")
        await conversation_cache.invalidate(deleted.match_id)
        await conversation_cache.invalidate_unread(deleted.receiver_id)


def build_chat_service(db: AsyncIOMotorDatabase) -> ChatService:
    return ChatService(MessageRepository(db), MatchRepository(db), UserProfileRepository(db))


__all__ = ["ChatService", "build_chat_service"]
