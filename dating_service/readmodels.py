from typing import Any, Dict

from .cache_bus import handle_cache_event
from .services.cache_service import conversation_cache, discovery_cache, match_cache


async def _on_message_created(event: Dict[str, Any]) -> None:
    match_id = str(event.get("matchId") or "")
    if match_id:
        await conversation_cache.invalidate(match_id)
    for key in ("senderId", "receiverId"):
        user_id = str(event.get(key) or "")
        if user_id:
            await conversation_cache.invalidate_unread(user_id)


async def _on_match_created(event: Dict[str, Any]) -> None:
    for user_id in event.get("users") or []:
        await match_cache.invalidate(str(user_id))
        await discovery_cache.invalidate(str(user_id))


async def event_stream_handler(topic: str, event: Dict[str, Any]) -> None:
    """Handle cross-instance events and refresh the caches they affect."""
    t = (event.get("type") or "").lower()
    # First, process cache bus messages
    await handle_cache_event(topic, event)
    if topic.endswith("messages") and t == "message_created":
        await _on_message_created(event)
    elif topic.endswith("matches") and t == "match_created":
        await _on_match_created(event)
