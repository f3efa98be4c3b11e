from fastapi import APIRouter, Depends

from ..db import get_db
from ..models.user_profile import UserProfileDocument
from ..services.subscription_service import SubscriptionService, build_subscription_service
from ..utils.http import api_success
from .auth import require_current_user

router = APIRouter(tags=["subscription"])


def get_subscription_service() -> SubscriptionService:
    return build_subscription_service(get_db())


@router.get("/subscription")
async def subscription_status(
    user: UserProfileDocument = Depends(require_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
):
    return api_success(await service.get_status(user.user_id))
