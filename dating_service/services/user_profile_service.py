from __future__ import annotations

import hashlib
import logging
import os
import secrets
import time
from typing import Any, Dict, Optional

import bcrypt
import jwt

from ..config import get_settings
from ..db import get_db
from ..jobs import queue
from ..models.user_profile import (
    OwnUserProfile,
    UserLoginRequest,
    UserProfile,
    UserProfileDocument,
    UserProfilePatch,
    UserSignupRequest,
)
from ..repositories.exceptions import DuplicateKeyRepositoryError, NotFoundRepositoryError
from ..repositories.user_profile import UserProfileRepository
from ..utils.geo import build_point
from .cache_service import discovery_cache, rate_limit_cache, user_cache

LOGGER = logging.getLogger("uvicorn.error")

MAX_PHOTOS = 6
COMPLETENESS_FIELDS = ("name", "age", "gender", "bio", "photos", "interests", "location", "education")


def profile_completeness(doc: Dict[str, Any]) -> int:
    """Percentage of the profile fields that are filled in."""
    filled = 0
    for field in COMPLETENESS_FIELDS:
        value = doc.get(field)
        if isinstance(value, dict):
            value = any(value.values())
        if value:
            filled += 1
    return round(filled * 100 / len(COMPLETENESS_FIELDS))


def hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class UserProfileService:
    """Orchestrates sign-up, login, password reset and profile updates."""

    def __init__(
        self,
        repository: UserProfileRepository,
        *,
        jwt_secret: str,
        token_ttl_seconds: int,
        rate_limit_window: int,
        rate_limit_max: int,
        password_reset_ttl: int = 3600,
        frontend_url: str = "",
    ) -> None:
        self._repository = repository
        self._jwt_secret = jwt_secret
        self._token_ttl = token_ttl_seconds
        self._rate_limit_window = rate_limit_window
        self._rate_limit_max = rate_limit_max
        self._password_reset_ttl = password_reset_ttl
        self._frontend_url = frontend_url.rstrip("/")

    @property
    def repository(self) -> UserProfileRepository:
        return self._repository

    @staticmethod
    def _now_ms() -> int:
        return int(time.time() * 1000)

    @staticmethod
    def _generate_user_id() -> str:
        return f"u_{int(time.time()*1000)}_{os.urandom(4).hex()}"

    @staticmethod
    def hash_password(raw: str) -> str:
        salt = bcrypt.gensalt()
        return bcrypt.hashpw(raw.encode("utf-8"), salt).decode("utf-8")

    @staticmethod
    def verify_password(raw: str, hashed: str) -> bool:
        try:
            return bcrypt.checkpw(raw.encode("utf-8"), hashed.encode("utf-8"))
        except ValueError:
            return False

    @staticmethod
    def password_strength(password: str) -> bool:
        score = 0
        if any(c.islower() for c in password):
            score += 1
        if any(c.isupper() for c in password):
            score += 1
        if any(c.isdigit() for c in password):
            score += 1
        if any(c in "!@#$%^&*()-_=+[]{};:,<.>/?" for c in password):
            score += 1
        return score >= 3 and len(password) >= 8

    async def allow_rate(self, key: str) -> bool:
        result = await rate_limit_cache.check_limit(
            f"auth:{key}", self._rate_limit_max, self._rate_limit_window
        )
        return bool(result["allowed"])

    def issue_token(self, user_id: str, email: str) -> str:
        now = int(time.time())
        payload = {
            "sub": user_id,
            "email": email,
            "iat": now,
            "exp": now + self._token_ttl,
        }
        return jwt.encode(payload, self._jwt_secret, algorithm="HS256")

    def decode_token(self, token: str) -> Optional[Dict[str, Any]]:
        try:
            return jwt.decode(token, self._jwt_secret, algorithms=["HS256"])
        except jwt.PyJWTError:
            return None

    async def get_profile_from_token(self, token: str) -> Optional[UserProfileDocument]:
        if not token:
            return None
        payload = self.decode_token(token)
        if not payload:
            return None
        user_id = str(payload.get("sub") or "").strip()
        if not user_id:
            return None
        return await self._repository.get_by_user_id(user_id)

    async def get_by_user_id(self, user_id: str) -> Optional[UserProfileDocument]:
        if not user_id:
            return None
        return await self._repository.get_by_user_id(user_id)

    async def get_public_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Public profile through the read-through user cache."""

        async def _fetch() -> Optional[Dict[str, Any]]:
            doc = await self._repository.get_by_user_id(user_id)
            if doc is None or not doc.is_active:
                return None
            return self.public_profile(doc)

        return await user_cache.get_or_fetch(user_id, _fetch)

    async def register_user(self, payload: UserSignupRequest) -> UserProfileDocument:
        email = str(payload.email).strip().lower()
        if await self._repository.email_exists(email):
            raise DuplicateKeyRepositoryError("email already registered")
        if not self.password_strength(payload.password):
            raise ValueError("weak password")

        now_ms = self._now_ms()
        extra = {"age": payload.age, "gender": payload.gender}
        extra["profileCompleteness"] = profile_completeness({"name": payload.name, **extra})
        profile = await self._repository.create_profile(
            user_id=self._generate_user_id(),
            email=email,
            name=payload.name.strip(),
            password_hash=self.hash_password(payload.password),
            created_at=now_ms,
            updated_at=now_ms,
            extra=extra,
        )
        await queue.send_email(profile.email, "welcome", {"name": profile.name})
        return profile

    async def authenticate_user(self, payload: UserLoginRequest) -> UserProfileDocument:
        profile = await self._repository.get_by_email(str(payload.email))
        if not profile:
            raise NotFoundRepositoryError("user not found")
        if not self.verify_password(payload.password, profile.password_hash):
            raise PermissionError("invalid credentials")
        await self._repository.update_profile(user_id=profile.user_id, updates={"lastActive": self._now_ms()})
        return profile

    async def update_profile(self, user_id: str, patch: UserProfilePatch) -> UserProfileDocument:
        updates: Dict[str, Any] = {}
        data = patch.model_dump(by_alias=True, exclude_unset=True, exclude_none=True)

        if "name" in data:
            name = data["name"].strip()
            if not name:
                raise ValueError("name required")
            updates["name"] = name
        for field in ("bio", "age", "gender", "preferredGender", "preferredAgeRange", "lifestyle", "education", "notificationPreferences"):
            if field in data:
                updates[field] = data[field]
        if "interests" in data:
            deduped: list[str] = []
            for entry in data["interests"]:
                cleaned = entry.strip() if isinstance(entry, str) else ""
                if cleaned and cleaned not in deduped:
                    deduped.append(cleaned)
            updates["interests"] = deduped[:20]
        if "location" in data:
            loc = data["location"]
            updates["location"] = build_point(loc["latitude"], loc["longitude"])

        if not updates:
            profile = await self._repository.get_by_user_id(user_id)
            if not profile:
                raise NotFoundRepositoryError("user not found")
            return profile

        current = await self._repository.get_raw(user_id) or {}
        updates["profileCompleteness"] = profile_completeness({**current, **updates})
        updates["updatedAt"] = self._now_ms()
        profile = await self._repository.update_profile(user_id=user_id, updates=updates)
        await self.invalidate_user_caches(user_id)
        return profile

    async def update_location(self, user_id: str, latitude: float, longitude: float) -> UserProfileDocument:
        profile = await self._repository.update_profile(
            user_id=user_id,
            updates={
                "location": build_point(latitude, longitude),
                "updatedAt": self._now_ms(),
            },
        )
        await discovery_cache.invalidate(user_id)
        return profile

    async def add_photo(self, user_id: str, url: str, public_id: Optional[str]) -> UserProfileDocument:
        """Append an uploaded photo pending moderation and queue the moderation job."""
        current = await self._repository.get_by_user_id(user_id)
        if not current:
            raise NotFoundRepositoryError("user not found")
        if len(current.photos) >= MAX_PHOTOS:
            raise ValueError(f"Maximum {MAX_PHOTOS} photos allowed")

        now_ms = self._now_ms()
        photo = {"url": url, "publicId": public_id, "moderationStatus": "pending", "uploadedAt": now_ms}
        profile = await self._repository.add_photo(user_id, photo, now_ms)
        completeness = profile_completeness(profile.model_dump(by_alias=True))
        if completeness != profile.profile_completeness:
            profile = await self._repository.update_profile(
                user_id=user_id, updates={"profileCompleteness": completeness}
            )
        await self.invalidate_user_caches(user_id)
        await queue.moderate_image(user_id, url, public_id)
        return profile

    async def invalidate_user_caches(self, user_id: str) -> None:
        await user_cache.invalidate(user_id)
        await discovery_cache.invalidate(user_id)

    async def request_password_reset(self, email: str) -> Optional[str]:
        """Store a hashed reset token and queue the email. Returns the raw token, or None for unknown emails."""
        profile = await self._repository.get_by_email(email)
        if not profile:
            return None
        token = secrets.token_hex(32)
        expires_at = self._now_ms() + self._password_reset_ttl * 1000
        await self._repository.set_reset_token(profile.user_id, hash_reset_token(token), expires_at)
        await queue.send_email(
            profile.email,
            "passwordReset",
            {"name": profile.name, "resetLink": f"{self._frontend_url}/reset-password?token={token}"},
        )
        return token

    async def reset_password(self, token: str, new_password: str) -> UserProfileDocument:
        if not new_password or len(new_password) < 8:
            raise ValueError("Password must be at least 8 characters")
        profile = await self._repository.get_by_reset_token(hash_reset_token(token), self._now_ms())
        if not profile:
            raise PermissionError("Invalid or expired reset token")
        await self._repository.update_password(profile.user_id, self.hash_password(new_password), self._now_ms())
        return profile

    @staticmethod
    def public_profile(doc: UserProfileDocument) -> Dict[str, Any]:
        return UserProfile.model_validate(doc.model_dump(by_alias=True)).model_dump(by_alias=True)

    @staticmethod
    def own_profile(doc: UserProfileDocument) -> Dict[str, Any]:
        return OwnUserProfile.model_validate(doc.model_dump(by_alias=True)).model_dump(by_alias=True)


def get_user_profile_service() -> UserProfileService:
    settings = get_settings()
    return UserProfileService(
        UserProfileRepository(get_db()),
        jwt_secret=settings.jwt_secret,
        token_ttl_seconds=settings.auth_token_ttl,
        rate_limit_window=settings.auth_rate_limit_window,
        rate_limit_max=settings.auth_rate_limit_max,
        password_reset_ttl=settings.password_reset_ttl,
        frontend_url=settings.frontend_url,
    )


__all__ = [
    "UserProfileService",
    "get_user_profile_service",
    "hash_reset_token",
    "profile_completeness",
]
