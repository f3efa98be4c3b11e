from fastapi import APIRouter, Depends, Header, HTTPException, Request

from ..db import get_db
from ..models.user_profile import (
    ForgotPasswordRequest,
    ResetPasswordRequest,
    UserLoginRequest,
    UserProfileDocument,
    UserSignupRequest,
)
from ..repositories.exceptions import (
    DuplicateKeyRepositoryError,
    NotFoundRepositoryError,
)
from ..services.cache_service import warm_cache
from ..services.match_service import build_match_service
from ..services.user_profile_service import (
    UserProfileService,
    get_user_profile_service,
)
from ..utils.http import api_success


router = APIRouter()

FORGOT_PASSWORD_MESSAGE = "If an account exists with this email, a reset link has been sent"


async def require_current_user(
    authorization: str = Header(default=""),
    service: UserProfileService = Depends(get_user_profile_service),
) -> UserProfileDocument:
    """Resolve the bearer token to an active user or answer 401."""
    if not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="missing bearer token")

    token = authorization[len("Bearer ") :].strip()
    profile_doc = await service.get_profile_from_token(token)
    if not profile_doc or not profile_doc.is_active:
        raise HTTPException(status_code=401, detail="invalid token")
    return profile_doc


async def _rate_limit(request: Request, service: UserProfileService, action: str) -> None:
    ip = request.client.host if request.client else "unknown"
    if not await service.allow_rate(f"{action}:{ip}"):
        raise HTTPException(status_code=429, detail="rate limit exceeded")


@router.post("/auth/signup", status_code=201)
async def signup(
    body: UserSignupRequest,
    request: Request,
    service: UserProfileService = Depends(get_user_profile_service),
):
    await _rate_limit(request, service, "signup")
    try:
        profile_doc = await service.register_user(body)
    except DuplicateKeyRepositoryError:
        raise HTTPException(status_code=409, detail="email already registered") from None
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    token = service.issue_token(profile_doc.user_id, profile_doc.email)
    return api_success({"token": token, "profile": service.own_profile(profile_doc)}, "Account created")


@router.post("/auth/login")
async def login(
    body: UserLoginRequest,
    request: Request,
    service: UserProfileService = Depends(get_user_profile_service),
):
    await _rate_limit(request, service, "login")
    try:
        profile_doc = await service.authenticate_user(body)
    except NotFoundRepositoryError:
        raise HTTPException(status_code=404, detail="user not found") from None
    except PermissionError:
        raise HTTPException(status_code=401, detail="invalid credentials") from None

    public = service.public_profile(profile_doc)

    async def _profile():
        return public

    match_service = build_match_service(get_db())
    await warm_cache(profile_doc.user_id, _profile, lambda: match_service.fetch_matches(profile_doc.user_id))

    token = service.issue_token(profile_doc.user_id, profile_doc.email)
    return api_success({"token": token, "profile": service.own_profile(profile_doc)}, "Logged in")


@router.post("/auth/forgot-password")
async def forgot_password(
    body: ForgotPasswordRequest,
    request: Request,
    service: UserProfileService = Depends(get_user_profile_service),
):
    await _rate_limit(request, service, "forgot")
    await service.request_password_reset(str(body.email).strip().lower())
    return api_success(message=FORGOT_PASSWORD_MESSAGE)


@router.post("/auth/reset-password")
async def reset_password(
    body: ResetPasswordRequest,
    request: Request,
    service: UserProfileService = Depends(get_user_profile_service),
):
    await _rate_limit(request, service, "reset")
    try:
        await service.reset_password(body.token, body.new_password)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except PermissionError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return api_success(message="Password has been reset")
