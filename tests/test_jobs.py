from __future__ import annotations

import time
from datetime import datetime

import pytest

from dating_service.config import get_settings
from dating_service.jobs import processors
from dating_service.jobs.celery_app import JOB_TYPES, celery_app
from dating_service.jobs.queue import QueueService, queue_service
from dating_service.jobs.tasks import TASKS
from dating_service.services import email_service, notification_service
from dating_service.services.cache_service import discovery_cache, match_cache

DAY_MS = 24 * 60 * 60 * 1000


def _now_ms() -> int:
    return int(time.time() * 1000)


def test_every_job_type_has_a_task_and_route() -> None:
    assert set(TASKS) == set(JOB_TYPES) == set(processors.PROCESSORS)
    routes = celery_app.conf.task_routes
    assert routes["send-email"] == {"queue": "dating-app.emails"}
    assert routes["moderate-image"] == {"queue": "dating-app.moderation"}


def test_add_job_maps_options_to_celery(queued_jobs) -> None:
    job = queue_service.add_job("matches", "process-match", {"matchId": "m1"}, {"priority": 42, "delay": 1500})

    assert job == {"id": queued_jobs[0]["id"], "queue": "matches", "type": "process-match"}
    sent = queued_jobs[0]
    assert sent["queue"] == "dating-app.matches"
    assert sent["priority"] == 9
    assert sent["countdown"] == 1.5

    scheduled = queue_service.schedule_job("emails", "send-email", {"to": "a@b.c"}, 60_000, {"job_id": "fixed"})
    assert scheduled["id"] == "fixed"
    assert queued_jobs[1]["countdown"] == 60.0


def test_add_bulk_jobs_publishes_each_job(queued_jobs) -> None:
    jobs = queue_service.add_bulk_jobs(
        [
            {"queue": "analytics", "type": "track-event", "data": {"userId": "a"}},
            {"queue": "emails", "type": "send-email", "options": {"priority": 3}},
        ]
    )

    assert [job["type"] for job in jobs] == ["track-event", "send-email"]
    assert [sent["queue"] for sent in queued_jobs] == ["dating-app.analytics", "dating-app.emails"]
    assert queued_jobs[1]["data"] == {}
    assert queued_jobs[1]["priority"] == 3


def test_add_job_rejects_unknown_queue_and_type() -> None:
    with pytest.raises(ValueError):
        queue_service.add_job("nope", "send-email", {})
    with pytest.raises(ValueError):
        queue_service.add_job("emails", "not-a-job", {})


def test_add_job_returns_none_when_disabled_or_broker_fails(monkeypatch, queued_jobs) -> None:
    monkeypatch.setenv("JOBS_ENABLED", "false")
    get_settings.cache_clear()  # type: ignore[attr-defined]
    assert queue_service.add_job("emails", "send-email", {}) is None
    assert queued_jobs == []

    monkeypatch.setenv("JOBS_ENABLED", "true")
    get_settings.cache_clear()  # type: ignore[attr-defined]

    class _BrokenApp:
        def send_task(self, *args, **kwargs):
            raise ConnectionError("broker down")

    assert QueueService(app=_BrokenApp()).add_job("emails", "send-email", {}) is None


def test_add_repeatable_job_registers_beat_entry() -> None:
    key = queue_service.add_repeatable_job("emails", "send-weekly-digest", {"userId": "u1"}, minute="0", hour="9", day_of_week="1")
    try:
        entry = celery_app.conf.beat_schedule[key]
        assert entry["task"] == "send-weekly-digest"
        assert entry["options"] == {"queue": "dating-app.emails"}
    finally:
        celery_app.conf.beat_schedule.pop(key, None)


def test_recurring_cleanup_jobs_are_scheduled() -> None:
    tasks = {entry["task"] for entry in celery_app.conf.beat_schedule.values()}
    assert {"cleanup-expired-tokens", "cleanup-old-messages", "cleanup-inactive-users"} <= tasks


def test_compatibility_score() -> None:
    alice = {
        "age": 30,
        "interests": ["Hiking", "coffee", "jazz"],
        "preferredAgeRange": {"min": 25, "max": 35},
        "education": {"school": "MIT"},
        "lifestyle": {"smoking": "never", "pets": "dog"},
    }
    bob = {
        "age": 32,
        "interests": ["hiking", "Coffee"],
        "preferredAgeRange": {"min": 28, "max": 40},
        "education": {"school": "MIT"},
        "lifestyle": {"smoking": "never", "pets": "cat"},
    }
    # 2 shared interests + mutual age fit + same school + one lifestyle match
    assert processors.compatibility_score(alice, bob) == 10 + 20 + 15 + 5
    assert processors.compatibility_score({}, {}) == 0


@pytest.mark.asyncio
async def test_process_match_notifies_and_clears_caches(db, queued_jobs) -> None:
    await db["users"].insert_many(
        [
            {"userId": "a", "email": "a@example.com", "name": "Alice"},
            {"userId": "b", "email": "b@example.com", "name": "Bob", "notificationPreferences": {"matches": False}},
        ]
    )
    await match_cache.set("a", [])

    result = await processors.process_match(db, {"matchId": "m1", "user1Id": "a", "user2Id": "b"})

    assert result == {"success": True, "matchId": "m1"}
    assert await match_cache.get("a") is None
    batch = [j for j in queued_jobs if j["type"] == "send-batch-notifications"]
    notifications = batch[0]["data"]["notifications"]
    assert [n["userId"] for n in notifications] == ["a"]
    assert notifications[0]["body"] == "You and Bob liked each other!"

    with pytest.raises(ValueError):
        await processors.process_match(db, {"matchId": "m2", "user1Id": "a", "user2Id": "ghost"})


@pytest.mark.asyncio
async def test_moderate_image_without_cloudinary_approves(db, queued_jobs) -> None:
    await db["users"].insert_one(
        {"userId": "a", "email": "a@example.com", "photos": [{"url": "https://img/1.jpg", "publicId": "p1", "moderationStatus": "pending"}]}
    )
    result = await processors.moderate_image(db, {"userId": "a", "imageUrl": "https://img/1.jpg", "photoId": "p1"})

    assert result["status"] == "approved"
    user = await db["users"].find_one({"userId": "a"})
    assert user["photos"][0]["moderationStatus"] == "approved"
    assert not [j for j in queued_jobs if j["type"] == "send-push-notification"]


@pytest.mark.asyncio
async def test_moderate_image_rejection_keeps_photo_and_notifies(db, monkeypatch, queued_jobs) -> None:
    await db["users"].insert_one(
        {"userId": "a", "email": "a@example.com", "photos": [{"url": "https://img/1.jpg", "publicId": "p1", "moderationStatus": "pending"}]}
    )
    monkeypatch.setattr(processors.cloud, "moderate_image", lambda public_id: {"safe": False, "moderation": []})

    result = await processors.moderate_image(db, {"userId": "a", "imageUrl": "https://img/1.jpg", "photoId": "p1"})

    assert result["status"] == "rejected"
    user = await db["users"].find_one({"userId": "a"})
    assert user["photos"] == [{"url": "https://img/1.jpg", "publicId": "p1", "moderationStatus": "rejected"}]
    push = [j for j in queued_jobs if j["type"] == "send-push-notification"][0]["data"]
    assert push["body"] == "One of your photos didn't meet our community guidelines and was rejected."


@pytest.mark.asyncio
async def test_moderate_profile_flags_promotional_bio(db) -> None:
    await db["users"].insert_many(
        [
            {"userId": "spammer", "email": "spammer@example.com", "bio": "Click here to BUY followers", "photos": [{"url": "x"}]},
            {"userId": "fine", "email": "fine@example.com", "bio": "Loves hiking", "photos": []},
        ]
    )
    flagged = await processors.moderate_profile(db, {"userId": "spammer"})
    assert flagged["needsReview"] is True
    assert flagged["issues"][0]["field"] == "bio"

    clean = await processors.moderate_profile(db, {"userId": "fine"})
    assert clean == {"success": True, "issues": [], "needsReview": False}

    missing = await processors.moderate_profile(db, {"userId": "ghost"})
    assert missing["success"] is False


@pytest.mark.asyncio
async def test_track_event_keeps_last_hundred_entries(db) -> None:
    await db["users"].insert_one(
        {"userId": "a", "email": "a@example.com", "activityLog": [{"type": "old", "data": {}, "timestamp": i} for i in range(100)]}
    )
    await processors.track_event(db, {"userId": "a", "eventType": "swipe", "eventData": {"x": 1}, "timestamp": 999})

    user = await db["users"].find_one({"userId": "a"})
    assert len(user["activityLog"]) == 100
    assert user["activityLog"][-1] == {"type": "swipe", "data": {"x": 1}, "timestamp": 999}
    assert user["lastActive"] == 999


@pytest.mark.asyncio
async def test_cleanup_jobs(db) -> None:
    now = _now_ms()
    await db["users"].insert_many(
        [
            {"userId": "expired", "email": "expired@example.com", "passwordResetToken": "h", "passwordResetExpires": now - 1000, "isActive": True, "lastActive": now},
            {"userId": "valid", "email": "valid@example.com", "passwordResetToken": "h", "passwordResetExpires": now + DAY_MS, "isActive": True, "lastActive": now},
            {"userId": "dormant", "email": "dormant@example.com", "isActive": True, "lastActive": now - 200 * DAY_MS},
        ]
    )
    await db["messages"].insert_many(
        [
            {"matchId": "m", "senderId": "a", "receiverId": "b", "content": "old", "createdAt": now - 400 * DAY_MS},
            {"matchId": "m", "senderId": "a", "receiverId": "b", "content": "new", "createdAt": now},
        ]
    )

    tokens = await processors.cleanup_expired_tokens(db, {})
    assert tokens["modified"] == 1
    assert "passwordResetToken" not in await db["users"].find_one({"userId": "expired"})

    archived = await processors.cleanup_old_messages(db, {})
    assert archived["archived"] == 1
    assert await db["messages"].count_documents({}) == 1
    assert await db["messages_archive"].count_documents({"content": "old"}) == 1

    inactive = await processors.cleanup_inactive_users(db, {})
    assert inactive["flagged"] == 1
    assert (await db["users"].find_one({"userId": "dormant"}))["isInactive"] is True


@pytest.mark.asyncio
async def test_cleanup_old_messages_resumes_after_partial_archive(db) -> None:
    old = {"matchId": "m", "senderId": "a", "receiverId": "b", "content": "old", "createdAt": _now_ms() - 400 * DAY_MS}
    inserted = await db["messages"].insert_one(dict(old))
    await db["messages_archive"].insert_one({**old, "_id": inserted.inserted_id})

    result = await processors.cleanup_old_messages(db, {})

    assert result["archived"] == 1
    assert await db["messages"].count_documents({}) == 0
    assert await db["messages_archive"].count_documents({"_id": inserted.inserted_id}) == 1


@pytest.mark.asyncio
async def test_update_user_stats_recounts(db) -> None:
    await db["users"].insert_one({"userId": "a", "stats": {}})
    await db["swipes"].insert_many(
        [
            {"swiperId": "a", "swipedId": "b", "action": "like", "createdAt": 1},
            {"swiperId": "c", "swipedId": "a", "action": "pass", "createdAt": 1},
        ]
    )
    result = await processors.update_user_stats(db, {"userId": "a"})
    assert result["stats"] == {"swipesGiven": 1, "swipesReceived": 1, "totalMatches": 0, "messagesSent": 0}


def test_render_template_escapes_and_rejects_unknown() -> None:
    subject, html = email_service.render_template("match", {"matchName": "<b>Bob</b>"})
    assert subject == "You've got a new match! 🎉"
    assert "&lt;b&gt;Bob&lt;/b&gt;" in html
    with pytest.raises(ValueError):
        email_service.render_template("nope", {})


@pytest.mark.asyncio
async def test_send_email_skips_when_smtp_missing() -> None:
    result = await email_service.send_email("a@example.com", "welcome", {"name": "A"})
    assert result == {"success": False, "reason": "Email service not configured"}


@pytest.mark.asyncio
async def test_push_respects_preferences_and_subscriptions(db) -> None:
    await db["users"].insert_many(
        [
            {"userId": "muted", "email": "muted@example.com", "notificationPreferences": {"likes": False}},
            {"userId": "plain", "email": "plain@example.com", "notificationPreferences": {}},
        ]
    )
    muted = await notification_service.send_to_user(db, "muted", "t", "b", {"type": "like"})
    assert muted == {"success": False, "reason": "User disabled likes notifications"}

    no_subs = await notification_service.send_to_user(db, "plain", "t", "b", {"type": "like"})
    assert no_subs == {"success": False, "reason": "No push subscriptions"}

    missing = await notification_service.send_to_user(db, "ghost", "t", "b")
    assert missing["reason"] == "User not found"


class _FakeResult:
    def __init__(self, state, result=None, date_done=None):
        self.state = state
        self.result = result
        self.date_done = date_done


@pytest.mark.parametrize(
    "celery_state,result,expected",
    [
        ("PENDING", None, {"state": "waiting", "result": None, "failedReason": None, "finishedOn": None}),
        ("STARTED", None, {"state": "active", "result": None, "failedReason": None, "finishedOn": None}),
        ("RETRY", None, {"state": "delayed", "result": None, "failedReason": None, "finishedOn": None}),
        ("SUCCESS", {"ok": 1}, {"state": "completed", "result": {"ok": 1}, "failedReason": None, "finishedOn": 1_000}),
        ("FAILURE", ValueError("boom"), {"state": "failed", "result": None, "failedReason": "boom", "finishedOn": 1_000}),
    ],
)
def test_get_job_status_maps_celery_states(monkeypatch, celery_state, result, expected) -> None:
    done = datetime(1970, 1, 1, 0, 0, 1) if celery_state in ("SUCCESS", "FAILURE") else None
    monkeypatch.setattr(
        "dating_service.jobs.queue.AsyncResult",
        lambda job_id, app=None: _FakeResult(celery_state, result, done),
    )
    assert queue_service.get_job_status("job-1") == {"id": "job-1", **expected}


@pytest.mark.asyncio
async def test_calculate_compatibility_job(db) -> None:
    await db["users"].insert_many(
        [
            {"userId": "a", "email": "a@example.com", "interests": ["jazz"], "age": 30},
            {"userId": "b", "email": "b@example.com", "interests": ["Jazz"], "age": 31},
        ]
    )
    result = await processors.calculate_compatibility(db, {"user1Id": "a", "user2Id": "b"})
    assert result == {"success": True, "score": 5 + 20}

    missing = await processors.calculate_compatibility(db, {"user1Id": "a", "user2Id": "ghost"})
    assert missing == {"success": False, "reason": "User not found"}


@pytest.mark.asyncio
async def test_update_recommendations_drops_discovery_pages(db) -> None:
    await discovery_cache.set_profiles("a", [{"userId": "b"}], "page")
    await discovery_cache.set_excluded_ids("a", ["c"])

    assert await processors.update_recommendations(db, {"userId": "a"}) == {"success": True}
    assert await discovery_cache.get_profiles("a", "page") is None
    assert await discovery_cache.get_excluded_ids("a") is None


@pytest.mark.asyncio
async def test_send_batch_notifications_counts_deliveries(db, monkeypatch) -> None:
    delivered = []

    async def _send_to_user(db, user_id, title, body, data=None):
        delivered.append(user_id)
        if user_id == "muted":
            return {"success": False, "reason": "User disabled matches notifications"}
        return {"success": True, "sent": 1}

    monkeypatch.setattr(notification_service, "send_to_user", _send_to_user)
    result = await processors.send_batch_notifications(
        db,
        {"notifications": [{"userId": "a", "title": "t", "body": "b"}, {"userId": "muted", "title": "t", "body": "b"}]},
    )

    assert result == {"success": True, "sent": 1, "total": 2}
    assert delivered == ["a", "muted"]


@pytest.mark.asyncio
async def test_send_weekly_digest_counts_last_week(db, monkeypatch) -> None:
    now = _now_ms()
    await db["users"].insert_one({"userId": "a", "name": "Alice", "email": "alice@example.com"})
    await db["swipes"].insert_many(
        [
            {"swiperId": "b", "swipedId": "a", "action": "like", "createdAt": now},
            {"swiperId": "c", "swipedId": "a", "action": "superlike", "createdAt": now},
            {"swiperId": "d", "swipedId": "a", "action": "pass", "createdAt": now},
            {"swiperId": "e", "swipedId": "a", "action": "like", "createdAt": now - 10 * DAY_MS},
        ]
    )
    await db["matches"].insert_one({"users": ["a", "b"], "user1": "a", "user2": "b", "createdAt": now})

    assert await processors.send_weekly_digest(db, {"userId": "a"}) == {
        "success": False,
        "reason": "Email service not configured",
    }

    sent = []

    async def _send_email(to, template, data):
        sent.append((to, template, data))
        return {"success": True}

    monkeypatch.setattr(email_service, "is_configured", lambda: True)
    monkeypatch.setattr(email_service, "send_email", _send_email)

    result = await processors.send_weekly_digest(db, {"userId": "a"})
    assert result == {"success": True, "likes": 2, "matches": 1}
    assert sent == [("alice@example.com", "weeklyDigest", {"name": "Alice", "likes": 2, "matches": 1})]

    missing = await processors.send_weekly_digest(db, {"userId": "ghost"})
    assert missing == {"success": False, "reason": "User not found or no email"}
