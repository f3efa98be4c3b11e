"""MongoDB collection names used by the dating service."""

from __future__ import annotations

USERS_COLLECTION = "users"
SWIPES_COLLECTION = "swipes"
MATCHES_COLLECTION = "matches"
MESSAGES_COLLECTION = "messages"
MESSAGES_ARCHIVE_COLLECTION = "messages_archive"
SUBSCRIPTIONS_COLLECTION = "subscriptions"
PUSH_SUBSCRIPTIONS_COLLECTION = "push_subscriptions"

__all__ = [
    "USERS_COLLECTION",
    "SWIPES_COLLECTION",
    "MATCHES_COLLECTION",
    "MESSAGES_COLLECTION",
    "MESSAGES_ARCHIVE_COLLECTION",
    "SUBSCRIPTIONS_COLLECTION",
    "PUSH_SUBSCRIPTIONS_COLLECTION",
]
