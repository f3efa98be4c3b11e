import logging

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from .collections import (
    MATCHES_COLLECTION,
    MESSAGES_ARCHIVE_COLLECTION,
    MESSAGES_COLLECTION,
    PUSH_SUBSCRIPTIONS_COLLECTION,
    SUBSCRIPTIONS_COLLECTION,
    SWIPES_COLLECTION,
    USERS_COLLECTION,
)

LOGGER = logging.getLogger("uvicorn.error")


async def ensure_user_indexes(db: AsyncIOMotorDatabase) -> None:
    collection = db[USERS_COLLECTION]
    await collection.create_index("userId", unique=True)
    await collection.create_index("email", unique=True)
    await collection.create_index([("isActive", ASCENDING), ("lastActive", DESCENDING)])
    await collection.create_index("passwordResetToken", sparse=True)
    try:
        await collection.create_index([("location", "2dsphere")], name="users_location_2dsphere")
    except Exception as exc:  # pragma: no cover - not every backend supports geo indexes
        LOGGER.warning("Skipping users 2dsphere index: %s", exc)


async def ensure_swipe_indexes(db: AsyncIOMotorDatabase) -> None:
    collection = db[SWIPES_COLLECTION]
    await collection.create_index(
        [("swiperId", ASCENDING), ("swipedId", ASCENDING)],
        name="swipes_swiper_swiped_unique",
        unique=True,
    )
    await collection.create_index(
        [("swipedId", ASCENDING), ("action", ASCENDING), ("createdAt", DESCENDING)],
        name="swipes_swiped_action_idx",
    )
    await collection.create_index(
        [("swiperId", ASCENDING), ("createdAt", DESCENDING)],
        name="swipes_swiper_created_idx",
    )
    # Swipes expire 30 days after creation
    await collection.create_index("expiresAt", name="swipes_ttl", expireAfterSeconds=0)


async def ensure_match_indexes(db: AsyncIOMotorDatabase) -> None:
    collection = db[MATCHES_COLLECTION]
    await collection.create_index(
        [("user1", ASCENDING), ("user2", ASCENDING)],
        name="matches_pair_unique",
        unique=True,
    )
    await collection.create_index(
        [("users", ASCENDING), ("status", ASCENDING), ("createdAt", DESCENDING)],
        name="matches_users_status_idx",
    )
    await collection.create_index([("lastActivityAt", DESCENDING)], name="matches_activity_idx")


async def ensure_message_indexes(db: AsyncIOMotorDatabase) -> None:
    collection = db[MESSAGES_COLLECTION]
    await collection.create_index([("matchId", ASCENDING), ("createdAt", DESCENDING)])
    await collection.create_index([("receiverId", ASCENDING), ("isRead", ASCENDING)])
    await collection.create_index([("createdAt", ASCENDING)])
    await db[MESSAGES_ARCHIVE_COLLECTION].create_index([("matchId", ASCENDING), ("createdAt", DESCENDING)])


async def ensure_subscription_indexes(db: AsyncIOMotorDatabase) -> None:
    await db[SUBSCRIPTIONS_COLLECTION].create_index("userId", unique=True)
    await db[PUSH_SUBSCRIPTIONS_COLLECTION].create_index("endpoint", unique=True)
    await db[PUSH_SUBSCRIPTIONS_COLLECTION].create_index("userId")


async def ensure_all_indexes(db: AsyncIOMotorDatabase) -> None:
    """Create every index the service relies on. Safe to call repeatedly."""

    for label, ensure in (
        ("users", ensure_user_indexes),
        ("swipes", ensure_swipe_indexes),
        ("matches", ensure_match_indexes),
        ("messages", ensure_message_indexes),
        ("subscriptions", ensure_subscription_indexes),
    ):
        try:
            await ensure(db)
        except Exception as exc:  # pragma: no cover - best-effort logging
            LOGGER.error("Failed to ensure %s indexes: %s", label, exc)


__all__ = [
    "ensure_all_indexes",
    "ensure_match_indexes",
    "ensure_message_indexes",
    "ensure_subscription_indexes",
    "ensure_swipe_indexes",
    "ensure_user_indexes",
]
