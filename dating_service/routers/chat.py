from fastapi import APIRouter, Depends, HTTPException, Query

from ..db import get_db
from ..models.message import MessageCreateRequest
from ..models.user_profile import UserProfileDocument
from ..repositories.exceptions import NotFoundRepositoryError
from ..services.chat_service import ChatService, build_chat_service
from ..utils.http import api_success, paginated
from .auth import require_current_user

router = APIRouter(prefix="/chat", tags=["chat"])


def get_chat_service() -> ChatService:
    return build_chat_service(get_db())


def _access_error(exc: Exception) -> HTTPException:
    if isinstance(exc, PermissionError):
        return HTTPException(status_code=403, detail=str(exc))
    return HTTPException(status_code=404, detail=str(exc))


@router.get("/conversations")
async def conversations(
    user: UserProfileDocument = Depends(require_current_user),
    service: ChatService = Depends(get_chat_service),
):
    items = await service.get_conversations(user.user_id)
    return api_success({"conversations": items, "count": len(items)})


@router.get("/unread")
async def unread_count(
    user: UserProfileDocument = Depends(require_current_user),
    service: ChatService = Depends(get_chat_service),
):
    return api_success({"unreadCount": await service.get_unread_count(user.user_id)})


@router.delete("/messages/{message_id}")
async def delete_message(
    message_id: str,
    user: UserProfileDocument = Depends(require_current_user),
    service: ChatService = Depends(get_chat_service),
):
    try:
        await service.delete_message(message_id, user.user_id)
    except NotFoundRepositoryError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return api_success(message="Message deleted")


@router.post("/{match_id}/messages", status_code=201)
async def send_message(
    match_id: str,
    body: MessageCreateRequest,
    user: UserProfileDocument = Depends(require_current_user),
    service: ChatService = Depends(get_chat_service),
):
    try:
        message = await service.send_message(match_id, user.user_id, body)
    except (NotFoundRepositoryError, PermissionError) as exc:
        raise _access_error(exc) from exc
    return api_success(message.to_public(), "Message sent")


@router.get("/{match_id}/messages")
async def get_messages(
    match_id: str,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=100),
    user: UserProfileDocument = Depends(require_current_user),
    service: ChatService = Depends(get_chat_service),
):
    try:
        result = await service.get_messages(match_id, user.user_id, page=page, limit=limit)
    except (NotFoundRepositoryError, PermissionError) as exc:
        raise _access_error(exc) from exc
    return paginated(result["messages"], page=result["page"], limit=result["limit"], total=result["total"])


@router.put("/{match_id}/read")
async def mark_read(
    match_id: str,
    user: UserProfileDocument = Depends(require_current_user),
    service: ChatService = Depends(get_chat_service),
):
    try:
        modified = await service.mark_as_read(match_id, user.user_id)
    except (NotFoundRepositoryError, PermissionError) as exc:
        raise _access_error(exc) from exc
    return api_success({"markedAsRead": modified})
