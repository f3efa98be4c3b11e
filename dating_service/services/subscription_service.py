from __future__ import annotations

import time
from typing import Any, Dict

from motor.motor_asyncio import AsyncIOMotorDatabase

from ..repositories.subscription import SubscriptionRepository


class SubscriptionService:
    """Read-side premium status. Billing itself lives with the payment providers."""

    def __init__(self, repository: SubscriptionRepository) -> None:
        self._repository = repository

    async def is_premium(self, user_id: str) -> bool:
        subscription = await self._repository.get_by_user_id(user_id)
        if subscription is None:
            return False
        return subscription.is_active(int(time.time() * 1000))

    async def get_status(self, user_id: str) -> Dict[str, Any]:
        subscription = await self._repository.get_by_user_id(user_id)
        if subscription is None:
            return {"status": "free", "planType": None, "features": [], "endDate": None, "isPremium": False}
        data = subscription.model_dump(by_alias=True, exclude={"user_id"})
        data["isPremium"] = subscription.is_active(int(time.time() * 1000))
        return data


def build_subscription_service(db: AsyncIOMotorDatabase) -> SubscriptionService:
    return SubscriptionService(SubscriptionRepository(db))


__all__ = ["SubscriptionService", "build_subscription_service"]
