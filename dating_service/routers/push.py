import time
from typing import Dict

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ..config import get_settings
from ..db import get_db
from ..models.user_profile import UserProfileDocument
from ..repositories.subscription import PushSubscriptionRepository
from ..services import notification_service
from ..utils.http import api_success
from .auth import require_current_user

router = APIRouter()


class PushSubscription(BaseModel):
    endpoint: str
    keys: Dict[str, str] = {}


class TestPushBody(BaseModel):
    title: str = "Dating App"
    body: str = "Test notification"
    url: str | None = "/"


@router.get("/push/public-key")
async def get_public_key():
    settings = get_settings()
    return api_success({"key": settings.vapid_public_key or None})


@router.post("/push/subscribe")
async def subscribe_push(
    sub: PushSubscription,
    user: UserProfileDocument = Depends(require_current_user),
):
    repo = PushSubscriptionRepository(get_db())
    await repo.upsert(user.user_id, sub.endpoint, sub.keys, int(time.time() * 1000))
    return api_success(message="Subscribed to push notifications")


@router.post("/push/unsubscribe")
async def unsubscribe_push(
    sub: PushSubscription,
    user: UserProfileDocument = Depends(require_current_user),
):
    repo = PushSubscriptionRepository(get_db())
    removed = await repo.remove(user.user_id, sub.endpoint)
    return api_success({"removed": removed}, "Unsubscribed from push notifications")


@router.post("/push/test")
async def send_test(
    body: TestPushBody,
    user: UserProfileDocument = Depends(require_current_user),
):
    if not notification_service.is_configured():
        raise HTTPException(400, detail="VAPID keys not configured")
    result = await notification_service.send_to_user(
        get_db(), user.user_id, body.title, body.body, {"type": "test", "url": body.url or "/"}
    )
    return api_success(result)
