from fastapi import APIRouter, Depends, HTTPException, Query

from ..db import get_db
from ..models.user_profile import UserProfileDocument
from ..repositories.exceptions import NotFoundRepositoryError
from ..services.discovery_service import DiscoveryService, build_discovery_service
from ..utils.http import api_success
from .auth import require_current_user

router = APIRouter(prefix="/discovery", tags=["discovery"])


def get_discovery_service() -> DiscoveryService:
    return build_discovery_service(get_db())


@router.get("")
async def discover(
    lat: float = Query(...),
    lng: float = Query(...),
    radius: float = Query(default=10000),
    user: UserProfileDocument = Depends(require_current_user),
    service: DiscoveryService = Depends(get_discovery_service),
):
    try:
        profiles = await service.discover(user.user_id, lat=lat, lng=lng, radius=radius)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except NotFoundRepositoryError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return api_success({"profiles": profiles, "count": len(profiles)})


@router.get("/settings")
async def discovery_settings(
    user: UserProfileDocument = Depends(require_current_user),
    service: DiscoveryService = Depends(get_discovery_service),
):
    try:
        settings = await service.get_settings(user.user_id)
    except NotFoundRepositoryError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return api_success(settings)
