from fastapi import APIRouter, Depends, Header, HTTPException, Response

from ..models.user_profile import LocationUpdate, UserProfileDocument, UserProfilePatch
from ..repositories.exceptions import NotFoundRepositoryError
from ..services.user_profile_service import (
    UserProfileService,
    get_user_profile_service,
)
from ..utils.http import api_success, weak_etag
from .auth import require_current_user

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me")
async def me(
    user: UserProfileDocument = Depends(require_current_user),
    service: UserProfileService = Depends(get_user_profile_service),
):
    return api_success(service.own_profile(user))


@router.patch("/me")
async def update_me(
    patch: UserProfilePatch,
    user: UserProfileDocument = Depends(require_current_user),
    service: UserProfileService = Depends(get_user_profile_service),
):
    try:
        updated_profile = await service.update_profile(user.user_id, patch)
    except NotFoundRepositoryError:
        raise HTTPException(status_code=404, detail="not found") from None
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return api_success(service.own_profile(updated_profile), "Profile updated")


@router.post("/me/location")
async def update_location(
    body: LocationUpdate,
    user: UserProfileDocument = Depends(require_current_user),
    service: UserProfileService = Depends(get_user_profile_service),
):
    updated = await service.update_location(user.user_id, body.latitude, body.longitude)
    return api_success({"location": updated.location.model_dump() if updated.location else None}, "Location updated")


@router.get("/{user_id}")
async def profile_by_id(
    user_id: str,
    response: Response,
    if_none_match: str = Header(default=""),
    _: UserProfileDocument = Depends(require_current_user),
    service: UserProfileService = Depends(get_user_profile_service),
):
    profile = await service.get_public_profile(user_id.strip())
    if not profile:
        raise HTTPException(status_code=404, detail="User not found")

    etag = weak_etag(profile)
    if if_none_match == etag:
        return Response(status_code=304, headers={"ETag": etag})
    response.headers["ETag"] = etag
    return api_success(profile)
