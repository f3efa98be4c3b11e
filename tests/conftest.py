from __future__ import annotations

from collections.abc import AsyncIterator
from types import SimpleNamespace
from typing import Any, Dict, List
import uuid

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

from dating_service.cache import cache as local_cache
from dating_service.config import get_settings
from dating_service.db import close_mongo_connection, connect_to_mongo, get_db
from dating_service.jobs.celery_app import celery_app
from dating_service.main import app

STRONG_PASSWORD = "Passw0rd!"


@pytest.fixture(autouse=True)
def _env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MONGO_URI", "mongodb://localhost:27017/test")
    monkeypatch.setenv("MONGO_DB_NAME", "dating-app-test")
    monkeypatch.setenv("JWT_SECRET", "test-secret")
    monkeypatch.setenv("ADMIN_TOKEN", "admin-secret")
    monkeypatch.setenv("AUTH_RATE_LIMIT_MAX", "1000")
    monkeypatch.setenv("DAILY_SWIPE_LIMIT", "50")
    monkeypatch.setenv("JOBS_ENABLED", "true")
    monkeypatch.setenv("REDIS_PUBSUB_ENABLED", "false")
    for name in ("REDIS_URL", "SMTP_HOST", "VAPID_PUBLIC_KEY", "VAPID_PRIVATE_KEY", "CLOUDINARY_URL", "CLOUDINARY_CLOUD_NAME"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()  # type: ignore[attr-defined]


@pytest_asyncio.fixture(autouse=True)
async def _clear_local_cache() -> AsyncIterator[None]:
    await local_cache.clear()
    yield
    await local_cache.clear()


@pytest.fixture(autouse=True)
def queued_jobs(monkeypatch: pytest.MonkeyPatch) -> List[Dict[str, Any]]:
    """Capture every job published to the broker instead of sending it."""
    jobs: List[Dict[str, Any]] = []

    def _send_task(name: str, args=None, **kwargs):
        job_id = kwargs.get("task_id") or uuid.uuid4().hex
        jobs.append({"type": name, "data": (args or [None])[0], "id": job_id, **kwargs})
        return SimpleNamespace(id=job_id)

    monkeypatch.setattr(celery_app, "send_task", _send_task)
    return jobs


@pytest_asyncio.fixture
async def mongo_client(monkeypatch: pytest.MonkeyPatch) -> AsyncIterator[AsyncMongoMockClient]:
    client = AsyncMongoMockClient()

    def _client_factory(*_args, **_kwargs) -> AsyncMongoMockClient:
        return client

    monkeypatch.setattr("dating_service.db.AsyncIOMotorClient", _client_factory)
    yield client
    client.close()


@pytest_asyncio.fixture
async def db(mongo_client: AsyncMongoMockClient):
    await connect_to_mongo()
    yield get_db()
    await close_mongo_connection()


@pytest_asyncio.fixture
async def api_client(db) -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


async def signup(client: AsyncClient, email: str, name: str = "Test", **extra: Any) -> Dict[str, Any]:
    """Create an account and return ``{token, profile, headers}``."""
    body = {"email": email, "password": STRONG_PASSWORD, "name": name, "age": 28, "gender": "female", **extra}
    response = await client.post("/api/auth/signup", json=body)
    assert response.status_code == 201, response.text
    data = response.json()["data"]
    data["headers"] = {"Authorization": f"Bearer {data['token']}"}
    data["user_id"] = data["profile"]["userId"]
    return data


@pytest.fixture
def make_user(api_client):
    async def _make(email: str, name: str = "Test", **extra: Any) -> Dict[str, Any]:
        return await signup(api_client, email, name, **extra)

    return _make
