import math
from typing import Any, Dict, Optional

_EARTH_RADIUS_M = 6371008.8


def haversine_distance_m(
    lat1: Optional[float],
    lon1: Optional[float],
    lat2: Optional[float],
    lon2: Optional[float],
) -> Optional[float]:
    """Return the great-circle distance in meters between two coordinates."""
    try:
        if lat1 is None or lon1 is None or lat2 is None or lon2 is None:
            return None
        phi1 = math.radians(float(lat1))
        phi2 = math.radians(float(lat2))
        dphi = math.radians(float(lat2) - float(lat1))
        dlambda = math.radians(float(lon2) - float(lon1))
    except (TypeError, ValueError):
        return None

    sin_dphi = math.sin(dphi / 2.0)
    sin_dlambda = math.sin(dlambda / 2.0)
    a = sin_dphi * sin_dphi + math.cos(phi1) * math.cos(phi2) * sin_dlambda * sin_dlambda
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(max(0.0, 1 - a)))
    return float(_EARTH_RADIUS_M * c)


def point_lat_lng(raw: Any) -> Optional[tuple[float, float]]:
    """``(lat, lng)`` from a GeoJSON point, or None when malformed."""
    if not isinstance(raw, dict) or str(raw.get("type") or "").lower() != "point":
        return None
    coords = raw.get("coordinates")
    if not isinstance(coords, (list, tuple)) or len(coords) < 2:
        return None
    try:
        lng, lat = float(coords[0]), float(coords[1])
    except (TypeError, ValueError):
        return None
    if not (-90 <= lat <= 90 and -180 <= lng <= 180):
        return None
    return lat, lng


def build_point(lat: float, lng: float) -> Dict[str, Any]:
    return {"type": "Point", "coordinates": [float(lng), float(lat)]}
