from __future__ import annotations

import time

import pytest

from dating_service.db import get_db
from dating_service.models.subscription import SubscriptionDocument
from dating_service.repositories.subscription import SubscriptionRepository
from dating_service.services.cache_service import online_status, user_cache

ADMIN = {"X-Admin-Token": "admin-secret"}
PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


@pytest.mark.asyncio
async def test_health_endpoints(api_client) -> None:
    assert (await api_client.get("/")).json() == {"status": "dating-api-ok"}
    assert (await api_client.get("/api/health/db")).status_code == 200


@pytest.mark.asyncio
async def test_admin_requires_token(api_client) -> None:
    missing = await api_client.post("/api/admin/ensure-indexes")
    assert missing.status_code == 403
    wrong = await api_client.post("/api/admin/ensure-indexes", headers={"X-Admin-Token": "nope"})
    assert wrong.status_code == 403
    assert wrong.json() == {"success": False, "message": "admin token required"}


@pytest.mark.asyncio
async def test_admin_ensure_indexes_and_cache_purge(api_client) -> None:
    response = await api_client.post("/api/admin/ensure-indexes", headers=ADMIN)
    assert response.status_code == 200
    assert response.json()["message"] == "Indexes ensured"

    await user_cache.set_profile("u1", {"userId": "u1"})
    await user_cache.set_profile("u2", {"userId": "u2"})
    purge = await api_client.post("/api/admin/cache/purge", headers=ADMIN, params={"prefix": "profile:u1"})
    assert purge.json()["data"] == {"removed": 1}
    assert await user_cache.get_profile("u1") is None
    assert await user_cache.get_profile("u2") is not None


@pytest.mark.asyncio
async def test_admin_unknown_queue_is_404(api_client) -> None:
    response = await api_client.post("/api/admin/queues/nope/pause", headers=ADMIN)
    assert response.status_code == 404
    assert response.json()["message"] == "Unknown queue: nope"


@pytest.mark.asyncio
async def test_presence_heartbeat_and_lookup(api_client, make_user) -> None:
    alice = await make_user("alice@example.com", "Alice")
    bob = await make_user("bob@example.com", "Bob")

    await api_client.post("/api/presence/heartbeat", headers=alice["headers"])
    lookup = await api_client.get(
        "/api/presence", headers=bob["headers"], params={"ids": f"{alice['user_id']},{bob['user_id']}"}
    )
    data = lookup.json()["data"]
    assert data[alice["user_id"]]["online"] is True
    assert data[bob["user_id"]]["online"] is False

    await api_client.post("/api/presence/offline", headers=alice["headers"])
    assert await online_status.is_online(alice["user_id"]) is False


@pytest.mark.asyncio
async def test_subscription_status(api_client, make_user) -> None:
    alice = await make_user("alice@example.com", "Alice")

    free = (await api_client.get("/api/subscription", headers=alice["headers"])).json()["data"]
    assert free["status"] == "free"
    assert free["isPremium"] is False

    await SubscriptionRepository(get_db()).upsert(
        alice["user_id"],
        {"status": "active", "planType": "premium", "features": ["unlimitedSwipes"], "endDate": int(time.time() * 1000) + 60_000},
    )
    premium = (await api_client.get("/api/subscription", headers=alice["headers"])).json()["data"]
    assert premium["isPremium"] is True
    assert premium["planType"] == "premium"


@pytest.mark.asyncio
async def test_push_subscription_lifecycle(api_client, make_user) -> None:
    alice = await make_user("alice@example.com", "Alice")
    sub = {"endpoint": "https://push.example/abc", "keys": {"p256dh": "k", "auth": "a"}}

    assert (await api_client.get("/api/push/public-key")).json()["data"] == {"key": None}
    assert (await api_client.post("/api/push/subscribe", headers=alice["headers"], json=sub)).status_code == 200
    assert await get_db()["push_subscriptions"].count_documents({"userId": alice["user_id"]}) == 1

    test_push = await api_client.post("/api/push/test", headers=alice["headers"], json={})
    assert test_push.status_code == 400

    removed = await api_client.post("/api/push/unsubscribe", headers=alice["headers"], json=sub)
    assert removed.json()["data"] == {"removed": True}


@pytest.mark.asyncio
async def test_photo_upload_requires_cloudinary(api_client, make_user) -> None:
    alice = await make_user("alice@example.com", "Alice")
    status = await api_client.get("/api/cloudinary/status")
    assert status.json()["data"]["configured"] is False

    response = await api_client.post(
        "/api/uploads/photo", headers=alice["headers"], files={"photo": ("me.png", PNG, "image/png")}
    )
    assert response.status_code == 500
    assert response.json()["message"] == "Cloudinary not configured"


@pytest.mark.asyncio
async def test_photo_upload_stores_photo_and_queues_moderation(api_client, make_user, monkeypatch, queued_jobs) -> None:
    alice = await make_user("alice@example.com", "Alice")
    uploaded = []

    def _fake_upload(data_url, **kwargs):
        uploaded.append((data_url, kwargs))
        return {"url": "https://res.example/me.webp", "publicId": "dating-app/photos/me"}

    monkeypatch.setattr("dating_service.routers.uploads.cloud_enabled", lambda: True)
    monkeypatch.setattr("dating_service.routers.uploads.ensure_configured", lambda: None)
    monkeypatch.setattr("dating_service.routers.uploads.upload_data_url", _fake_upload)

    wrong_type = await api_client.post(
        "/api/uploads/photo", headers=alice["headers"], files={"photo": ("me.txt", b"hello", "text/plain")}
    )
    assert wrong_type.status_code == 415

    response = await api_client.post(
        "/api/uploads/photo", headers=alice["headers"], files={"photo": ("me.png", PNG, "image/png")}
    )
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["moderationStatus"] == "pending"
    assert data["photos"][0]["publicId"] == "dating-app/photos/me"
    assert uploaded[0][0].startswith("data:image/png;base64,")

    moderation = [j for j in queued_jobs if j["type"] == "moderate-image"]
    assert moderation[0]["data"] == {
        "userId": alice["user_id"],
        "imageUrl": "https://res.example/me.webp",
        "photoId": "dating-app/photos/me",
    }
    assert moderation[0]["queue"] == "dating-app.moderation"


@pytest.mark.parametrize(
    "status,end_offset_ms,expected",
    [
        ("active", 60_000, True),
        ("active", -60_000, False),
        ("active", None, True),
        ("trial", 60_000, True),
        ("cancelled", 60_000, False),
        ("free", None, False),
    ],
)
def test_subscription_is_active(status, end_offset_ms, expected) -> None:
    now = 1_700_000_000_000
    end_date = None if end_offset_ms is None else now + end_offset_ms
    subscription = SubscriptionDocument(userId="u1", status=status, endDate=end_date)
    assert subscription.is_active(now) is expected


@pytest.mark.asyncio
async def test_expired_subscription_is_not_premium(api_client, make_user) -> None:
    alice = await make_user("alice@example.com", "Alice")
    await SubscriptionRepository(get_db()).upsert(
        alice["user_id"], {"status": "active", "planType": "gold", "endDate": int(time.time() * 1000) - 60_000}
    )
    data = (await api_client.get("/api/subscription", headers=alice["headers"])).json()["data"]
    assert data["isPremium"] is False
