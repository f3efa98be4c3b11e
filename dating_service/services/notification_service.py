"""Web push delivery via pywebpush (VAPID)."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pywebpush import WebPushException, webpush

from ..config import get_settings
from ..repositories.subscription import PushSubscriptionRepository
from ..repositories.user_profile import UserProfileRepository

LOGGER = logging.getLogger("uvicorn.error")

# notification type -> notificationPreferences flag
PREFERENCE_FOR_TYPE = {
    "message": "messages",
    "match": "matches",
    "like": "likes",
}


def is_configured() -> bool:
    settings = get_settings()
    return bool(settings.vapid_public_key and settings.vapid_private_key)


def _send_one(subscription: Dict[str, Any], payload: Dict[str, Any]) -> Optional[int]:
    """Deliver to one endpoint. Returns the HTTP status of a failed delivery, or None on success."""
    settings = get_settings()
    try:
        webpush(
            subscription_info={
                "endpoint": subscription.get("endpoint"),
                "keys": subscription.get("keys", {}),
            },
            data=json.dumps(payload),
            vapid_private_key=settings.vapid_private_key,
            vapid_claims={"sub": settings.vapid_subject},
        )
        return None
    except WebPushException as exc:
        status = getattr(exc.response, "status_code", None) if exc.response is not None else None
        LOGGER.warning("Web push to %s failed: %s", subscription.get("endpoint"), exc)
        return status or 500


async def send_to_user(
    db: AsyncIOMotorDatabase,
    user_id: str,
    title: str,
    body: str,
    data: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Push a notification to every registered endpoint of ``user_id``.

    Respects the user's notification preferences for message, match and like
    notifications, and prunes endpoints the push service reports as gone.
    """

    data = data or {}
    users = UserProfileRepository(db)
    user = await users.get_raw(user_id, projection={"notificationPreferences": 1})
    if not user:
        return {"success": False, "reason": "User not found"}

    pref_key = PREFERENCE_FOR_TYPE.get(str(data.get("type") or ""))
    prefs = user.get("notificationPreferences") or {}
    if pref_key and prefs.get(pref_key) is False:
        return {"success": False, "reason": f"User disabled {pref_key} notifications"}

    push_subs = PushSubscriptionRepository(db)
    subscriptions: List[Dict[str, Any]] = await push_subs.list_for_user(user_id)
    if not subscriptions:
        return {"success": False, "reason": "No push subscriptions"}
    if not is_configured():
        return {"success": False, "reason": "Push not configured"}

    payload = {"title": title, "body": body, "data": data}
    sent = 0
    for subscription in subscriptions:
        status = await asyncio.to_thread(_send_one, subscription, payload)
        if status is None:
            sent += 1
        elif status in (404, 410):
            await push_subs.remove_endpoint(subscription["endpoint"])
    return {"success": sent > 0, "sent": sent}


__all__ = ["PREFERENCE_FOR_TYPE", "is_configured", "send_to_user"]
