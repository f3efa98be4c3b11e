"""Async job handlers. Each takes the database and the job payload and returns a result dict."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from ..db.collections import SWIPES_COLLECTION, USERS_COLLECTION
from ..integrations import cloudinary as cloud
from ..repositories.match import MatchRepository
from ..repositories.message import MessageRepository
from ..repositories.swipe import SwipeRepository
from ..services import email_service, notification_service
from ..services.cache_service import discovery_cache, match_cache
from . import queue
from .celery_app import QUEUES

LOGGER = logging.getLogger("uvicorn.error")

DAY_MS = 24 * 60 * 60 * 1000
BANNED_BIO_WORDS = ("spam", "sell", "buy", "website", "click here")
LIFESTYLE_KEYS = ("smoking", "drinking", "exercise", "diet", "pets")

Processor = Callable[[AsyncIOMotorDatabase, Dict[str, Any]], Awaitable[Dict[str, Any]]]


def _now_ms() -> int:
    return int(time.time() * 1000)


async def _get_user(db: AsyncIOMotorDatabase, user_id: str) -> Optional[Dict[str, Any]]:
    if not user_id:
        return None
    return await db[USERS_COLLECTION].find_one({"userId": user_id})


# Notifications


async def send_push_notification(db: AsyncIOMotorDatabase, data: Dict[str, Any]) -> Dict[str, Any]:
    return await notification_service.send_to_user(
        db,
        str(data.get("userId") or ""),
        str(data.get("title") or ""),
        str(data.get("body") or ""),
        data.get("data") or {},
    )


async def send_batch_notifications(db: AsyncIOMotorDatabase, data: Dict[str, Any]) -> Dict[str, Any]:
    notifications: List[Dict[str, Any]] = data.get("notifications") or []
    sent = 0
    for notification in notifications:
        result = await send_push_notification(db, notification)
        if result.get("success"):
            sent += 1
    return {"success": True, "sent": sent, "total": len(notifications)}


# Matches


async def process_match(db: AsyncIOMotorDatabase, data: Dict[str, Any]) -> Dict[str, Any]:
    match_id = str(data.get("matchId") or "")
    user1_id = str(data.get("user1Id") or "")
    user2_id = str(data.get("user2Id") or "")
    user1 = await _get_user(db, user1_id)
    user2 = await _get_user(db, user2_id)
    if not user1 or not user2:
        raise ValueError("Users not found")

    notifications = []
    for recipient, other in ((user1, user2), (user2, user1)):
        prefs = recipient.get("notificationPreferences") or {}
        if prefs.get("matches") is False:
            continue
        notifications.append(
            {
                "userId": recipient["userId"],
                "title": "It's a Match! 🎉",
                "body": f"You and {other.get('name') or 'someone'} liked each other!",
                "data": {"type": "match", "matchId": match_id, "userId": other["userId"]},
            }
        )
    if notifications:
        await queue.dispatch(
            QUEUES["PUSH_NOTIFICATIONS"],
            "send-batch-notifications",
            {"notifications": notifications},
        )

    for user_id in (user1_id, user2_id):
        await match_cache.invalidate(user_id)
        await discovery_cache.invalidate(user_id)

    return {"success": True, "matchId": match_id}


def _age_fits(age: Optional[int], age_range: Optional[Dict[str, Any]]) -> bool:
    if age is None:
        return False
    age_range = age_range or {}
    return int(age_range.get("min", 18)) <= age <= int(age_range.get("max", 100))


def compatibility_score(user1: Dict[str, Any], user2: Dict[str, Any]) -> int:
    """Score two profiles from 0 to 100 on interests, age fit, education and lifestyle."""

    score = 0

    shared = {i.lower() for i in user1.get("interests") or []} & {i.lower() for i in user2.get("interests") or []}
    score += min(len(shared) * 5, 40)

    fits_1 = _age_fits(user2.get("age"), user1.get("preferredAgeRange"))
    fits_2 = _age_fits(user1.get("age"), user2.get("preferredAgeRange"))
    if fits_1 and fits_2:
        score += 20
    elif fits_1 or fits_2:
        score += 10

    edu1 = user1.get("education") or {}
    edu2 = user2.get("education") or {}
    if edu1.get("school") and edu1.get("school") == edu2.get("school"):
        score += 15
    elif edu1.get("degree") and edu1.get("degree") == edu2.get("degree"):
        score += 10

    life1 = user1.get("lifestyle") or {}
    life2 = user2.get("lifestyle") or {}
    for key in LIFESTYLE_KEYS:
        if life1.get(key) and life1.get(key) == life2.get(key):
            score += 5

    return min(score, 100)


async def calculate_compatibility(db: AsyncIOMotorDatabase, data: Dict[str, Any]) -> Dict[str, Any]:
    user1 = await _get_user(db, str(data.get("user1Id") or ""))
    user2 = await _get_user(db, str(data.get("user2Id") or ""))
    if not user1 or not user2:
        return {"success": False, "reason": "User not found"}
    return {"success": True, "score": compatibility_score(user1, user2)}


async def update_recommendations(db: AsyncIOMotorDatabase, data: Dict[str, Any]) -> Dict[str, Any]:
    user_id = str(data.get("userId") or "")
    await discovery_cache.invalidate(user_id)
    return {"success": True}


# Emails


async def send_email(db: AsyncIOMotorDatabase, data: Dict[str, Any]) -> Dict[str, Any]:
    return await email_service.send_email(
        str(data.get("to") or ""),
        str(data.get("template") or ""),
        data.get("data") or {},
    )


async def send_weekly_digest(db: AsyncIOMotorDatabase, data: Dict[str, Any]) -> Dict[str, Any]:
    if not email_service.is_configured():
        return {"success": False, "reason": "Email service not configured"}
    user_id = str(data.get("userId") or "")
    user = await _get_user(db, user_id)
    if not user or not user.get("email"):
        return {"success": False, "reason": "User not found or no email"}
    week_ago = _now_ms() - 7 * DAY_MS
    likes = await db[SWIPES_COLLECTION].count_documents(
        {"swipedId": user_id, "action": {"$in": ["like", "superlike"]}, "createdAt": {"$gte": week_ago}}
    )
    matches = await MatchRepository(db).count_created_since(user_id, week_ago)
    await email_service.send_email(
        user["email"],
        "weeklyDigest",
        {"name": user.get("name", ""), "likes": likes, "matches": matches},
    )
    return {"success": True, "likes": likes, "matches": matches}


# Analytics


async def track_event(db: AsyncIOMotorDatabase, data: Dict[str, Any]) -> Dict[str, Any]:
    user_id = str(data.get("userId") or "")
    timestamp = int(data.get("timestamp") or _now_ms())
    LOGGER.info("Analytics: %s for user %s", data.get("eventType"), user_id)
    await db[USERS_COLLECTION].update_one(
        {"userId": user_id},
        {
            "$set": {"lastActive": timestamp},
            "$push": {
                "activityLog": {
                    "$each": [{"type": data.get("eventType"), "data": data.get("eventData") or {}, "timestamp": timestamp}],
                    "$slice": -100,
                }
            },
        },
    )
    return {"success": True}


async def update_user_stats(db: AsyncIOMotorDatabase, data: Dict[str, Any]) -> Dict[str, Any]:
    user_id = str(data.get("userId") or "")
    swipes = db[SWIPES_COLLECTION]
    stats = {
        "swipesGiven": await swipes.count_documents({"swiperId": user_id}),
        "swipesReceived": await swipes.count_documents({"swipedId": user_id}),
        "totalMatches": await MatchRepository(db).count_for_user(user_id),
        "messagesSent": await MessageRepository(db).count_sent(user_id),
    }
    await db[USERS_COLLECTION].update_one(
        {"userId": user_id},
        {"$set": {f"stats.{key}": value for key, value in stats.items()}},
    )
    return {"success": True, "stats": stats}


# Moderation


async def moderate_image(db: AsyncIOMotorDatabase, data: Dict[str, Any]) -> Dict[str, Any]:
    user_id = str(data.get("userId") or "")
    photo_id = data.get("photoId")
    image_url = data.get("imageUrl")
    result = await asyncio.to_thread(cloud.moderate_image, photo_id)
    status = "approved" if result["safe"] else "rejected"

    selector = {"photos.publicId": photo_id} if photo_id else {"photos.url": image_url}
    await db[USERS_COLLECTION].update_one(
        {"userId": user_id, **selector},
        {"$set": {"photos.$.moderationStatus": status}},
    )

    if not result["safe"]:
        await queue.send_push_notification(
            user_id,
            "Photo Rejected",
            "One of your photos didn't meet our community guidelines and was rejected.",
            {"type": "moderation", "photoId": photo_id},
        )
    return {"success": True, "status": status, "moderation": result.get("moderation")}


async def moderate_profile(db: AsyncIOMotorDatabase, data: Dict[str, Any]) -> Dict[str, Any]:
    user = await _get_user(db, str(data.get("userId") or ""))
    if not user:
        return {"success": False, "reason": "User not found"}

    issues = []
    bio = user.get("bio") or ""
    lowered = bio.lower()
    if any(word in lowered for word in BANNED_BIO_WORDS):
        issues.append({"field": "bio", "reason": "Potentially promotional content"})
    if not user.get("photos") and len(bio) > 200:
        issues.append({"field": "profile", "reason": "Long bio with no photos"})

    return {"success": True, "issues": issues, "needsReview": bool(issues)}


# Cleanup


async def cleanup_expired_tokens(db: AsyncIOMotorDatabase, data: Dict[str, Any]) -> Dict[str, Any]:
    result = await db[USERS_COLLECTION].update_many(
        {"passwordResetExpires": {"$lt": _now_ms()}},
        {"$unset": {"passwordResetToken": "", "passwordResetExpires": ""}},
    )
    return {"success": True, "modified": result.modified_count}


async def cleanup_old_messages(db: AsyncIOMotorDatabase, data: Dict[str, Any]) -> Dict[str, Any]:
    cutoff = _now_ms() - 365 * DAY_MS
    archived = await MessageRepository(db).archive_older_than(cutoff)
    if archived:
        LOGGER.info("Archived %s old messages", archived)
    return {"success": True, "archived": archived}


async def cleanup_inactive_users(db: AsyncIOMotorDatabase, data: Dict[str, Any]) -> Dict[str, Any]:
    cutoff = _now_ms() - 180 * DAY_MS
    result = await db[USERS_COLLECTION].update_many(
        {"lastActive": {"$lt": cutoff}, "isActive": True, "isInactive": {"$ne": True}},
        {"$set": {"isInactive": True}},
    )
    return {"success": True, "flagged": result.modified_count}


PROCESSORS: Dict[str, Processor] = {
    "send-push-notification": send_push_notification,
    "send-batch-notifications": send_batch_notifications,
    "process-match": process_match,
    "calculate-compatibility": calculate_compatibility,
    "update-recommendations": update_recommendations,
    "send-email": send_email,
    "send-weekly-digest": send_weekly_digest,
    "track-event": track_event,
    "update-user-stats": update_user_stats,
    "moderate-image": moderate_image,
    "moderate-profile": moderate_profile,
    "cleanup-expired-tokens": cleanup_expired_tokens,
    "cleanup-old-messages": cleanup_old_messages,
    "cleanup-inactive-users": cleanup_inactive_users,
}

__all__ = ["PROCESSORS", "compatibility_score"]
