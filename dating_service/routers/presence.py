from fastapi import APIRouter, Depends, Query

from ..models.user_profile import UserProfileDocument
from ..services.cache_service import online_status
from ..utils.http import api_success
from .auth import require_current_user

router = APIRouter(prefix="/presence", tags=["presence"])

MAX_BULK_IDS = 100


@router.post("/heartbeat")
async def heartbeat(user: UserProfileDocument = Depends(require_current_user)):
    await online_status.set_online(user.user_id)
    return api_success({"online": True})


@router.post("/offline")
async def go_offline(user: UserProfileDocument = Depends(require_current_user)):
    await online_status.set_offline(user.user_id)
    return api_success({"online": False})


@router.get("")
async def presence(
    ids: str = Query(default=""),
    _: UserProfileDocument = Depends(require_current_user),
):
    user_ids = [uid.strip() for uid in ids.split(",") if uid.strip()][:MAX_BULK_IDS]
    return api_success(await online_status.get_bulk(user_ids))
