import asyncio
import base64
import os
from typing import Dict

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from ..integrations.cloudinary import (
    ensure_configured,
    get_status as get_cloud_status,
    is_enabled as cloud_enabled,
    upload_data_url,
)
from ..models.user_profile import UserProfileDocument
from ..repositories.exceptions import NotFoundRepositoryError
from ..services.user_profile_service import (
    MAX_PHOTOS,
    UserProfileService,
    get_user_profile_service,
)
from ..utils.http import api_success
from .auth import require_current_user

router = APIRouter()

ALLOWED_IMAGE_MIMES = {
    "image/jpeg",
    "image/png",
    "image/webp",
    "image/gif",
    "image/avif",
}


@router.get("/cloudinary/status")
async def cloudinary_status() -> Dict:
    return api_success(get_cloud_status())


@router.post("/uploads/photo", status_code=201)
async def upload_photo(
    photo: UploadFile = File(...),
    user: UserProfileDocument = Depends(require_current_user),
    service: UserProfileService = Depends(get_user_profile_service),
):
    if not cloud_enabled():
        raise HTTPException(status_code=500, detail="Cloudinary not configured")
    ensure_configured()
    if len(user.photos) >= MAX_PHOTOS:
        raise HTTPException(status_code=400, detail=f"Maximum {MAX_PHOTOS} photos allowed")
    mime = (photo.content_type or "").split(";")[0].strip().lower()
    if mime not in ALLOWED_IMAGE_MIMES:
        raise HTTPException(
            status_code=415,
            detail=f"Unsupported image type: {mime or 'unknown'}. Allowed images: JPEG, PNG, WebP, GIF, AVIF.",
        )
    data = await photo.read()
    # Default 5MB
    max_bytes = int(os.getenv("MAX_PHOTO_BYTES", str(5 * 1024 * 1024)))
    if len(data) > max_bytes:
        raise HTTPException(status_code=413, detail="Image too large. Max 5 MB.")
    b64 = base64.b64encode(data).decode("ascii")
    data_url = f"data:{mime};base64,{b64}"
    uploaded = await asyncio.to_thread(
        upload_data_url,
        data_url,
        folder=os.getenv("CLOUDINARY_PHOTO_FOLDER", "dating-app/photos"),
        resource_type="image",
        eager=[{"width": 800, "height": 800, "crop": "limit", "format": "webp", "quality": "auto"}],
        eager_async=False,
    )
    try:
        profile = await service.add_photo(user.user_id, uploaded["url"], uploaded["publicId"])
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except NotFoundRepositoryError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return api_success(
        {
            "url": uploaded["url"],
            "publicId": uploaded["publicId"],
            "type": mime,
            "moderationStatus": "pending",
            "photos": [p.model_dump(by_alias=True) for p in profile.photos],
        },
        "Photo uploaded",
    )
