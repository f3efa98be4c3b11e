from __future__ import annotations

import time

import pytest
from pymongo.errors import DuplicateKeyError

from dating_service.config import get_settings
from dating_service.db import get_db
from dating_service.repositories.match import MatchRepository
from dating_service.repositories.subscription import SubscriptionRepository
from dating_service.repositories.swipe import SwipeRepository
from dating_service.repositories.user_profile import UserProfileRepository
from dating_service.services.subscription_service import SubscriptionService
from dating_service.services.swipe_service import SwipeService


async def _swipe(client, user, target, action="like"):
    return await client.post(
        "/api/swipes", headers=user["headers"], json={"targetId": target["user_id"], "action": action}
    )


async def _make_premium(user_id: str) -> None:
    await SubscriptionRepository(get_db()).upsert(
        user_id,
        {"status": "active", "planType": "gold", "endDate": int(time.time() * 1000) + 86_400_000},
    )


@pytest.mark.asyncio
async def test_mutual_like_creates_a_match(api_client, make_user, queued_jobs) -> None:
    alice = await make_user("alice@example.com", "Alice")
    bob = await make_user("bob@example.com", "Bob")

    first = await _swipe(api_client, alice, bob)
    assert first.status_code == 200
    assert first.json()["data"]["isMatch"] is False
    like_pushes = [j for j in queued_jobs if j["type"] == "send-push-notification"]
    assert like_pushes[-1]["data"]["data"] == {"type": "like", "likerId": alice["user_id"]}

    second = await _swipe(api_client, bob, alice)
    data = second.json()["data"]
    assert data["isMatch"] is True
    assert data["matchData"]["matchType"] == "regular"
    assert data["matchData"]["isNewMatch"] is True
    assert data["matchData"]["matchedUser"]["id"] == alice["user_id"]
    assert data["remaining"] == 49

    match_jobs = [j for j in queued_jobs if j["type"] == "process-match"]
    assert len(match_jobs) == 1
    assert match_jobs[0]["queue"] == "dating-app.matches"

    users = UserProfileRepository(get_db())
    for user, other in ((alice, bob), (bob, alice)):
        doc = await users.get_by_user_id(user["user_id"])
        assert doc.stats.total_matches == 1
        assert other["user_id"] in doc.matches


@pytest.mark.asyncio
async def test_superlike_makes_superlike_match(api_client, make_user) -> None:
    alice = await make_user("alice@example.com", "Alice")
    bob = await make_user("bob@example.com", "Bob")

    await _swipe(api_client, alice, bob, "superlike")
    response = await _swipe(api_client, bob, alice, "like")
    assert response.json()["data"]["matchData"]["matchType"] == "superlike"


@pytest.mark.asyncio
async def test_repeated_swipe_is_idempotent(api_client, make_user, queued_jobs) -> None:
    alice = await make_user("alice@example.com", "Alice")
    bob = await make_user("bob@example.com", "Bob")

    await _swipe(api_client, alice, bob)
    await _swipe(api_client, bob, alice)
    repeat = await _swipe(api_client, bob, alice)

    data = repeat.json()["data"]
    assert data["alreadyProcessed"] is True
    assert data["isMatch"] is False
    assert len([j for j in queued_jobs if j["type"] == "process-match"]) == 1

    matches = await get_db()["matches"].count_documents({})
    assert matches == 1
    doc = await UserProfileRepository(get_db()).get_by_user_id(bob["user_id"])
    assert doc.stats.total_swipes == 1
    assert doc.stats.total_matches == 1


@pytest.mark.asyncio
async def test_swipe_rejects_self_and_unknown_target(api_client, make_user) -> None:
    alice = await make_user("alice@example.com", "Alice")

    self_swipe = await _swipe(api_client, alice, alice)
    assert self_swipe.status_code == 400
    assert self_swipe.json()["message"] == "Cannot swipe on yourself"

    unknown = await api_client.post(
        "/api/swipes", headers=alice["headers"], json={"targetId": "u_missing", "action": "like"}
    )
    assert unknown.status_code == 404

    bad_action = await api_client.post(
        "/api/swipes", headers=alice["headers"], json={"targetId": "u_missing", "action": "maybe"}
    )
    assert bad_action.status_code == 400


@pytest.mark.asyncio
async def test_daily_limit_applies_to_free_users_only(api_client, make_user, monkeypatch) -> None:
    monkeypatch.setenv("DAILY_SWIPE_LIMIT", "2")
    get_settings.cache_clear()  # type: ignore[attr-defined]

    alice = await make_user("alice@example.com", "Alice")
    targets = [await make_user(f"t{i}@example.com", f"T{i}") for i in range(4)]

    assert (await _swipe(api_client, alice, targets[0], "pass")).status_code == 200
    assert (await _swipe(api_client, alice, targets[1], "pass")).status_code == 200
    blocked = await _swipe(api_client, alice, targets[2], "pass")
    assert blocked.status_code == 429
    assert blocked.json() == {
        "success": False,
        "message": "Daily swipe limit reached",
        "remaining": 0,
        "limit": 2,
    }

    count = await api_client.get("/api/swipes/count", headers=alice["headers"])
    assert count.json()["data"] == {"used": 2, "remaining": 0, "limit": 2, "isPremium": False}

    await _make_premium(alice["user_id"])
    unlimited = await _swipe(api_client, alice, targets[3], "pass")
    assert unlimited.status_code == 200
    assert unlimited.json()["data"]["remaining"] == -1


@pytest.mark.asyncio
async def test_undo_like_unmatches_and_restores_counters(api_client, make_user) -> None:
    alice = await make_user("alice@example.com", "Alice")
    bob = await make_user("bob@example.com", "Bob")

    await _swipe(api_client, alice, bob)
    matched = await _swipe(api_client, bob, alice)
    swipe_id = matched.json()["data"]["swipeId"]

    forbidden = await api_client.post("/api/swipes/undo", headers=alice["headers"], json={"swipeId": swipe_id})
    assert forbidden.status_code == 403

    missing = await api_client.post(
        "/api/swipes/undo", headers=bob["headers"], json={"swipeId": "0123456789abcdef01234567"}
    )
    assert missing.status_code == 404

    undone = await api_client.post("/api/swipes/undo", headers=bob["headers"], json={"swipeId": swipe_id})
    assert undone.status_code == 200
    assert undone.json()["data"] == {"targetId": alice["user_id"], "action": "like"}

    match = await get_db()["matches"].find_one({})
    assert match["status"] == "unmatched"
    users = UserProfileRepository(get_db())
    bob_doc = await users.get_by_user_id(bob["user_id"])
    assert bob_doc.stats.total_matches == 0
    assert bob_doc.stats.total_swipes == 0
    assert alice["user_id"] not in bob_doc.matches

    # Liking again reactivates the same match
    again = await _swipe(api_client, bob, alice)
    data = again.json()["data"]
    assert data["isMatch"] is True
    assert data["matchData"]["wasReactivated"] is True
    assert await get_db()["matches"].count_documents({}) == 1


@pytest.mark.asyncio
async def test_swipe_lists_and_stats(api_client, make_user) -> None:
    alice = await make_user("alice@example.com", "Alice")
    bob = await make_user("bob@example.com", "Bob")
    carol = await make_user("carol@example.com", "Carol")
    dave = await make_user("dave@example.com", "Dave")

    await _swipe(api_client, alice, bob, "like")
    await _swipe(api_client, alice, carol, "pass")
    await _swipe(api_client, alice, dave, "superlike")
    await _swipe(api_client, bob, alice, "like")

    sent = await api_client.get("/api/swipes", headers=alice["headers"])
    assert sent.json()["data"]["count"] == 3

    received = await api_client.get("/api/swipes/received", headers=alice["headers"])
    assert [s["swiperId"] for s in received.json()["data"]["swipes"]] == [bob["user_id"]]

    stats = (await api_client.get("/api/swipes/stats", headers=alice["headers"])).json()["data"]
    assert stats["sent"] == {"total": 3, "likes": 1, "passes": 1, "superLikes": 1}
    assert stats["received"] == {"total": 1, "likes": 1}
    assert stats["matches"] == 1
    assert stats["matchRate"] == 100.0


@pytest.mark.asyncio
async def test_pending_likes_require_premium(api_client, make_user) -> None:
    alice = await make_user("alice@example.com", "Alice")
    bob = await make_user("bob@example.com", "Bob")
    carol = await make_user("carol@example.com", "Carol")

    await _swipe(api_client, bob, alice, "like")
    await _swipe(api_client, carol, alice, "superlike")
    await _swipe(api_client, alice, carol, "pass")

    free = (await api_client.get("/api/swipes/pending-likes", headers=alice["headers"])).json()
    assert free["data"] == {"count": 1, "isPremium": False}
    assert "premium" in free["message"].lower()

    await _make_premium(alice["user_id"])
    premium = (await api_client.get("/api/swipes/pending-likes", headers=alice["headers"])).json()["data"]
    assert premium["isPremium"] is True
    assert [like["user"]["id"] for like in premium["likes"]] == [bob["user_id"]]
    assert premium["likes"][0]["action"] == "like"


def _swipe_service(db, swipes=None, matches=None) -> SwipeService:
    return SwipeService(
        swipes or SwipeRepository(db),
        matches or MatchRepository(db),
        UserProfileRepository(db),
        SubscriptionService(SubscriptionRepository(db)),
    )


@pytest.mark.asyncio
async def test_swipe_losing_insert_race_is_already_processed(db, make_user, monkeypatch) -> None:
    alice = await make_user("alice@example.com", "Alice")
    bob = await make_user("bob@example.com", "Bob")
    swipes = SwipeRepository(db)

    async def _concurrent_insert_wins(query, update, upsert=False):
        await db["swipes"].insert_one(dict(update["$setOnInsert"]))
        raise DuplicateKeyError("E11000 duplicate key error")

    monkeypatch.setattr(swipes.collection, "update_one", _concurrent_insert_wins)

    result = await _swipe_service(db, swipes=swipes).process_swipe(alice["user_id"], bob["user_id"], "like")

    assert result.already_processed is True
    assert result.is_match is False
    assert result.swipe["action"] == "like"
    assert await db["swipes"].count_documents({"swiperId": alice["user_id"]}) == 1
    stored = await UserProfileRepository(db).get_by_user_id(alice["user_id"])
    assert stored.stats.total_swipes == 0


@pytest.mark.asyncio
async def test_concurrent_mutual_likes_create_one_match(api_client, db, make_user, monkeypatch) -> None:
    alice = await make_user("alice@example.com", "Alice")
    bob = await make_user("bob@example.com", "Bob")
    await _swipe(api_client, bob, alice)

    matches = MatchRepository(db)
    service = _swipe_service(db, matches=matches)
    real_get_by_pair = matches.get_by_pair
    calls = []

    async def _other_request_matches_first(user_a, user_b):
        calls.append((user_a, user_b))
        if len(calls) == 1:
            # bob's request creates the match between our lookup and insert
            await service.check_and_create_match(bob["user_id"], alice["user_id"], "like")
            return None
        return await real_get_by_pair(user_a, user_b)

    monkeypatch.setattr(matches, "get_by_pair", _other_request_matches_first)

    result = await service.process_swipe(alice["user_id"], bob["user_id"], "like")

    assert result.is_match is True
    assert result.match_data.is_new_match is False
    assert result.match_data.was_reactivated is False
    assert await db["matches"].count_documents({}) == 1
    users = UserProfileRepository(db)
    for user in (alice, bob):
        assert (await users.get_by_user_id(user["user_id"])).stats.total_matches == 1
