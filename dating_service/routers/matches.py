from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query

from ..db import get_db
from ..models.user_profile import UserProfileDocument
from ..repositories.exceptions import NotFoundRepositoryError
from ..services.match_service import DEFAULT_LIST_LIMIT, MatchService, build_match_service
from ..utils.http import api_success
from .auth import require_current_user

router = APIRouter(prefix="/matches", tags=["matches"])


def get_match_service() -> MatchService:
    return build_match_service(get_db())


@router.get("")
async def list_matches(
    status: Literal["active", "unmatched", "blocked"] = Query(default="active"),
    limit: int = Query(default=DEFAULT_LIST_LIMIT, ge=1, le=100),
    skip: int = Query(default=0, ge=0),
    sort_by: Literal["createdAt", "lastActivityAt"] = Query(default="createdAt", alias="sortBy"),
    user: UserProfileDocument = Depends(require_current_user),
    service: MatchService = Depends(get_match_service),
):
    result = await service.list_matches(user.user_id, status=status, limit=limit, skip=skip, sort_by=sort_by)
    return api_success(result)


@router.delete("/{match_id}")
async def unmatch(
    match_id: str,
    user: UserProfileDocument = Depends(require_current_user),
    service: MatchService = Depends(get_match_service),
):
    try:
        match = await service.unmatch(match_id, user.user_id)
    except NotFoundRepositoryError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except PermissionError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    return api_success({"matchId": str(match.id), "status": match.status}, "Unmatched successfully")
