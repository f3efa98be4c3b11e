import logging
import os
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from ..config import get_settings
from .mongo import ensure_all_indexes

_client: Optional[AsyncIOMotorClient] = None
_db: Optional[AsyncIOMotorDatabase] = None


def create_client(uri: str) -> AsyncIOMotorClient:
    """Build a Motor client with the service's fast-fail timeouts."""

    settings = get_settings()
    return AsyncIOMotorClient(
        uri,
        maxPoolSize=20,
        serverSelectionTimeoutMS=int(os.getenv("MONGO_SERVER_SELECTION_TIMEOUT_MS", "3000")),
        connectTimeoutMS=int(os.getenv("MONGO_CONNECT_TIMEOUT_MS", "3000")),
        socketTimeoutMS=int(os.getenv("MONGO_SOCKET_TIMEOUT_MS", "5000")),
        **({"directConnection": True} if settings.mongo_direct else {}),
    )


async def connect_to_mongo() -> None:
    """Initialise the shared MongoDB client and ensure indexes."""

    global _client, _db

    settings = get_settings()
    if not settings.mongo_uri and not settings.mongo_alt_uri:
        raise RuntimeError("Missing MONGO_URI env var for dating service")

    logger = logging.getLogger("uvicorn.error")

    async def _try_connect(uri: str) -> tuple[AsyncIOMotorClient, AsyncIOMotorDatabase]:
        client = create_client(uri)
        db = client[settings.mongo_db]
        await client.admin.command("ping")
        await ensure_all_indexes(db)
        return client, db

    primary_error: Optional[Exception] = None

    if settings.mongo_uri:
        try:
            _client, _db = await _try_connect(settings.mongo_uri)
            logger.info("MongoDB connected: db=%s", settings.mongo_db)
            return
        except Exception as exc:  # pragma: no cover - connection issues
            primary_error = exc
            logger.error("Mongo primary URI failed: %s", exc)

    if settings.mongo_alt_uri:
        try:
            _client, _db = await _try_connect(settings.mongo_alt_uri)
            logger.info("MongoDB connected via ALT URI: db=%s", settings.mongo_db)
            return
        except Exception as exc:  # pragma: no cover - same as above
            logger.error("Mongo ALT URI failed: %s", exc)

    raise primary_error or RuntimeError("Mongo connection failed")


async def close_mongo_connection() -> None:
    """Close the MongoDB client if it is initialised."""

    global _client, _db
    if _client:
        try:
            _client.close()
        finally:
            logging.getLogger("uvicorn.error").info("MongoDB connection closed")
        _client = None
        _db = None


def is_connected() -> bool:
    return _client is not None and _db is not None


def get_db() -> AsyncIOMotorDatabase:
    if _db is None:
        raise RuntimeError("MongoDB database not connected. Did you call connect_to_mongo()?")
    return _db


def get_client() -> AsyncIOMotorClient:
    if _client is None:
        raise RuntimeError("Mongo client not initialised. Did you call connect_to_mongo()?")
    return _client


__all__ = [
    "connect_to_mongo",
    "close_mongo_connection",
    "create_client",
    "get_client",
    "get_db",
    "is_connected",
]
