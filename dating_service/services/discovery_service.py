from __future__ import annotations

import logging
from typing import Any, Dict, List

from motor.motor_asyncio import AsyncIOMotorDatabase

from ..repositories.exceptions import NotFoundRepositoryError
from ..repositories.swipe import SwipeRepository
from ..repositories.user_profile import UserProfileRepository
from ..utils.geo import haversine_distance_m, point_lat_lng
from .cache_service import discovery_cache

LOGGER = logging.getLogger("uvicorn.error")

MAX_RADIUS_M = 50000
MAX_RESULTS = 50

_PUBLIC_FIELDS = ("userId", "name", "age", "gender", "bio", "photos", "interests", "profileCompleteness", "lastActive")


def validate_query(lat: float, lng: float, radius: float) -> None:
    if not -90 <= lat <= 90:
        raise ValueError("Latitude must be between -90 and 90")
    if not -180 <= lng <= 180:
        raise ValueError("Longitude must be between -180 and 180")
    if not 0 < radius <= MAX_RADIUS_M:
        raise ValueError(f"Radius must be between 1 and {MAX_RADIUS_M} meters")


class DiscoveryService:
    def __init__(self, users: UserProfileRepository, swipes: SwipeRepository) -> None:
        self._users = users
        self._swipes = swipes

    async def _excluded_ids(self, user_id: str) -> List[str]:
        cached = await discovery_cache.get_excluded_ids(user_id)
        if cached is not None:
            return cached
        ids = await self._swipes.swiped_ids(user_id)
        await discovery_cache.set_excluded_ids(user_id, ids)
        return ids

    async def discover(self, user_id: str, *, lat: float, lng: float, radius: float) -> List[Dict[str, Any]]:
        validate_query(lat, lng, radius)
        cache_page = f"{lat:.4f}:{lng:.4f}:{int(radius)}"
        cached = await discovery_cache.get_profiles(user_id, cache_page)
        if cached is not None:
            return cached

        user = await self._users.get_by_user_id(user_id)
        if user is None:
            raise NotFoundRepositoryError("User not found")
        excluded = set(await self._excluded_ids(user_id))
        excluded.add(user_id)

        candidates = self._users.iter_candidates(
            exclude_ids=excluded,
            min_age=user.preferred_age_range.min,
            max_age=user.preferred_age_range.max,
            gender=user.preferred_gender,
        )

        profiles: List[Dict[str, Any]] = []
        scanned = 0
        async for candidate in candidates:
            scanned += 1
            point = point_lat_lng(candidate.get("location"))
            if point is None:
                continue
            distance_m = haversine_distance_m(lat, lng, point[0], point[1])
            if distance_m is None or distance_m > radius:
                continue
            profile = {field: candidate.get(field) for field in _PUBLIC_FIELDS}
            profile["distance"] = round(distance_m / 1000.0, 1)
            profiles.append(profile)
            if len(profiles) >= MAX_RESULTS:
                break

        LOGGER.debug("Discovery for %s: %d of %d candidates in range", user_id, len(profiles), scanned)
        await discovery_cache.set_profiles(user_id, profiles, cache_page)
        return profiles

    async def get_settings(self, user_id: str) -> Dict[str, Any]:
        user = await self._users.get_by_user_id(user_id)
        if user is None:
            raise NotFoundRepositoryError("User not found")
        return {
            "preferredGender": user.preferred_gender,
            "preferredAgeRange": user.preferred_age_range.model_dump(),
            "currentLocation": user.location.model_dump() if user.location else None,
        }


def build_discovery_service(db: AsyncIOMotorDatabase) -> DiscoveryService:
    return DiscoveryService(UserProfileRepository(db), SwipeRepository(db))


__all__ = ["DiscoveryService", "build_discovery_service", "validate_query"]
