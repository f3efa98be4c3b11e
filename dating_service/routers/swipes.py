from fastapi import APIRouter, Depends, HTTPException, Query

from ..db import get_db
from ..jobs import queue
from ..models.user_profile import UserProfileDocument
from ..models.swipe import SwipeRequest, UndoSwipeRequest
from ..repositories.exceptions import NotFoundRepositoryError
from ..services.swipe_service import SwipeLimitReachedError, SwipeService, build_swipe_service
from ..utils.http import api_success
from .auth import require_current_user

router = APIRouter(prefix="/swipes", tags=["swipes"])


def get_swipe_service() -> SwipeService:
    return build_swipe_service(get_db())


@router.post("")
async def create_swipe(
    body: SwipeRequest,
    user: UserProfileDocument = Depends(require_current_user),
    service: SwipeService = Depends(get_swipe_service),
):
    is_premium = await service.is_premium(user.user_id)
    try:
        await service.ensure_can_swipe(user.user_id, is_premium)
    except SwipeLimitReachedError as exc:
        raise HTTPException(
            status_code=429,
            detail={"message": str(exc), "remaining": 0, "limit": exc.limit},
        ) from exc

    try:
        result = await service.process_swipe(
            user.user_id, body.target_id, body.action, is_priority=body.is_priority
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except NotFoundRepositoryError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    await service.notify(user.user_id, body.target_id, result)
    if not result.already_processed:
        await queue.track_event(user.user_id, "swipe", {"targetId": body.target_id, "action": body.action})

    remaining = (await service.can_swipe(user.user_id, is_premium))["remaining"]
    match_data = result.match_data.model_dump(by_alias=True) if result.match_data else None
    return api_success(
        {
            "swipeId": result.swipe["id"],
            "action": result.swipe["action"],
            "isMatch": result.is_match,
            "match": match_data,
            "matchData": match_data,
            "alreadyProcessed": result.already_processed,
            "remaining": remaining,
        },
        "It's a match!" if result.is_match else "Swipe recorded",
    )


@router.get("/count")
async def swipe_count(
    user: UserProfileDocument = Depends(require_current_user),
    service: SwipeService = Depends(get_swipe_service),
):
    allowance = await service.can_swipe(user.user_id)
    return api_success(
        {
            "used": allowance["used"],
            "remaining": allowance["remaining"],
            "limit": allowance["limit"],
            "isPremium": allowance["isPremium"],
        }
    )


@router.post("/undo")
async def undo_swipe(
    body: UndoSwipeRequest,
    user: UserProfileDocument = Depends(require_current_user),
    service: SwipeService = Depends(get_swipe_service),
):
    try:
        undone = await service.undo_swipe(body.swipe_id, user.user_id)
    except NotFoundRepositoryError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except PermissionError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    return api_success(undone, "Swipe undone")


@router.get("")
async def list_swipes(
    user: UserProfileDocument = Depends(require_current_user),
    service: SwipeService = Depends(get_swipe_service),
):
    swipes = await service.list_sent(user.user_id)
    return api_success({"swipes": swipes, "count": len(swipes)})


@router.get("/received")
async def received_swipes(
    user: UserProfileDocument = Depends(require_current_user),
    service: SwipeService = Depends(get_swipe_service),
):
    likes = await service.list_received(user.user_id)
    return api_success({"swipes": likes, "count": len(likes)})


@router.get("/stats")
async def swipe_stats(
    user: UserProfileDocument = Depends(require_current_user),
    service: SwipeService = Depends(get_swipe_service),
):
    return api_success(await service.get_swipe_stats(user.user_id))


@router.get("/pending-likes")
async def pending_likes(
    limit: int = Query(default=50, ge=1, le=100),
    skip: int = Query(default=0, ge=0),
    user: UserProfileDocument = Depends(require_current_user),
    service: SwipeService = Depends(get_swipe_service),
):
    if not await service.is_premium(user.user_id):
        count = await service.count_pending_likes(user.user_id)
        return api_success(
            {"count": count, "isPremium": False},
            "Upgrade to premium to see who liked you",
        )
    likes = await service.get_pending_likes(user.user_id, limit=limit, skip=skip)
    return api_success({"likes": likes, "count": len(likes), "isPremium": True})
