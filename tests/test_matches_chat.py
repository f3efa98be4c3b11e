from __future__ import annotations

import pytest

from dating_service.services.cache_service import match_cache, online_status


async def _match(client, a, b) -> str:
    await client.post("/api/swipes", headers=a["headers"], json={"targetId": b["user_id"], "action": "like"})
    response = await client.post(
        "/api/swipes", headers=b["headers"], json={"targetId": a["user_id"], "action": "like"}
    )
    return response.json()["data"]["matchData"]["matchId"]


@pytest.mark.asyncio
async def test_list_matches_is_cached_per_user(api_client, make_user) -> None:
    alice = await make_user("alice@example.com", "Alice")
    bob = await make_user("bob@example.com", "Bob")
    match_id = await _match(api_client, alice, bob)

    response = await api_client.get("/api/matches", headers=alice["headers"])
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["total"] == 1
    assert data["matches"][0]["matchId"] == match_id
    assert data["matches"][0]["user"]["name"] == "Bob"
    assert await match_cache.get(alice["user_id"]) == data["matches"]

    unmatched = await api_client.get("/api/matches?status=unmatched", headers=alice["headers"])
    assert unmatched.json()["data"]["matches"] == []


@pytest.mark.asyncio
async def test_new_message_refreshes_cached_match_lists(api_client, make_user) -> None:
    alice = await make_user("alice@example.com", "Alice")
    bob = await make_user("bob@example.com", "Bob")
    match_id = await _match(api_client, alice, bob)
    for user in (alice, bob):
        before = (await api_client.get("/api/matches", headers=user["headers"])).json()["data"]["matches"]
        assert before[0]["messageCount"] == 0

    await api_client.post(f"/api/chat/{match_id}/messages", headers=alice["headers"], json={"content": "Hi"})

    for user in (alice, bob):
        assert await match_cache.get(user["user_id"]) is None
        after = (await api_client.get("/api/matches", headers=user["headers"])).json()["data"]["matches"]
        assert after[0]["messageCount"] == 1
        assert after[0]["conversationStarted"] is True


@pytest.mark.asyncio
async def test_unmatch_checks_membership(api_client, make_user) -> None:
    alice = await make_user("alice@example.com", "Alice")
    bob = await make_user("bob@example.com", "Bob")
    eve = await make_user("eve@example.com", "Eve")
    match_id = await _match(api_client, alice, bob)

    assert (await api_client.delete(f"/api/matches/{match_id}", headers=eve["headers"])).status_code == 403
    assert (await api_client.delete("/api/matches/not-an-id", headers=alice["headers"])).status_code == 404

    await api_client.get("/api/matches", headers=bob["headers"])
    response = await api_client.delete(f"/api/matches/{match_id}", headers=alice["headers"])
    assert response.status_code == 200
    assert response.json()["data"] == {"matchId": match_id, "status": "unmatched"}
    assert await match_cache.get(bob["user_id"]) is None

    listing = await api_client.get("/api/matches", headers=bob["headers"])
    assert listing.json()["data"]["matches"] == []


@pytest.mark.asyncio
async def test_message_flow(api_client, make_user, queued_jobs) -> None:
    alice = await make_user("alice@example.com", "Alice")
    bob = await make_user("bob@example.com", "Bob")
    match_id = await _match(api_client, alice, bob)

    sent = await api_client.post(
        f"/api/chat/{match_id}/messages", headers=alice["headers"], json={"content": "  Hi Bob!  "}
    )
    assert sent.status_code == 201
    message = sent.json()["data"]
    assert message["content"] == "Hi Bob!"
    assert message["receiverId"] == bob["user_id"]
    assert message["isRead"] is False

    pushes = [j for j in queued_jobs if j["type"] == "send-push-notification" and j["data"]["data"].get("type") == "message"]
    assert pushes[-1]["data"]["userId"] == bob["user_id"]
    assert pushes[-1]["data"]["body"] == "Hi Bob!"

    await api_client.post(f"/api/chat/{match_id}/messages", headers=alice["headers"], json={"content": "Still there?"})

    unread = await api_client.get("/api/chat/unread", headers=bob["headers"])
    assert unread.json()["data"] == {"unreadCount": 2}

    conversations = (await api_client.get("/api/chat/conversations", headers=bob["headers"])).json()["data"]
    assert conversations["count"] == 1
    convo = conversations["conversations"][0]
    assert convo["otherUser"]["name"] == "Alice"
    assert convo["latestMessage"]["content"] == "Still there?"
    assert convo["unreadCount"] == 2

    history = (await api_client.get(f"/api/chat/{match_id}/messages", headers=bob["headers"])).json()
    assert [m["content"] for m in history["data"]] == ["Hi Bob!", "Still there?"]
    assert history["pagination"] == {"page": 1, "limit": 50, "total": 2, "pages": 1, "hasNext": False, "hasPrev": False}

    unread_after = await api_client.get("/api/chat/unread", headers=bob["headers"])
    assert unread_after.json()["data"] == {"unreadCount": 0}

    marked = await api_client.put(f"/api/chat/{match_id}/read", headers=bob["headers"])
    assert marked.json()["data"] == {"markedAsRead": 0}


@pytest.mark.asyncio
async def test_online_receiver_gets_no_push(api_client, make_user, queued_jobs) -> None:
    alice = await make_user("alice@example.com", "Alice")
    bob = await make_user("bob@example.com", "Bob")
    match_id = await _match(api_client, alice, bob)
    await online_status.set_online(bob["user_id"])

    await api_client.post(f"/api/chat/{match_id}/messages", headers=alice["headers"], json={"content": "hey"})

    message_pushes = [j for j in queued_jobs if j["type"] == "send-push-notification" and j["data"]["data"].get("type") == "message"]
    assert message_pushes == []


@pytest.mark.asyncio
async def test_chat_requires_active_membership(api_client, make_user) -> None:
    alice = await make_user("alice@example.com", "Alice")
    bob = await make_user("bob@example.com", "Bob")
    eve = await make_user("eve@example.com", "Eve")
    match_id = await _match(api_client, alice, bob)

    outsider = await api_client.post(f"/api/chat/{match_id}/messages", headers=eve["headers"], json={"content": "hi"})
    assert outsider.status_code == 403
    assert (await api_client.get(f"/api/chat/{match_id}/messages", headers=eve["headers"])).status_code == 403

    empty = await api_client.post(f"/api/chat/{match_id}/messages", headers=alice["headers"], json={"content": "   "})
    assert empty.status_code == 400

    await api_client.delete(f"/api/matches/{match_id}", headers=bob["headers"])
    closed = await api_client.post(f"/api/chat/{match_id}/messages", headers=alice["headers"], json={"content": "hi"})
    assert closed.status_code == 404


@pytest.mark.asyncio
async def test_only_sender_can_delete_message(api_client, make_user) -> None:
    alice = await make_user("alice@example.com", "Alice")
    bob = await make_user("bob@example.com", "Bob")
    match_id = await _match(api_client, alice, bob)

    sent = await api_client.post(f"/api/chat/{match_id}/messages", headers=alice["headers"], json={"content": "oops"})
    message_id = sent.json()["data"]["id"]

    assert (await api_client.delete(f"/api/chat/messages/{message_id}", headers=bob["headers"])).status_code == 404
    assert (await api_client.delete(f"/api/chat/messages/{message_id}", headers=alice["headers"])).status_code == 200

    history = (await api_client.get(f"/api/chat/{match_id}/messages", headers=bob["headers"])).json()["data"]
    assert history == []
