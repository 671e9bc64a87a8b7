"""Straight-line distance, ETA and coordinate parsing."""

import math
import re

from dispatch.models.driver import GeoPoint

EARTH_RADIUS_M = 6_371_000

_COORDINATES = re.compile(
    r"^\s*(?:location:)?\s*(-?\d+(?:\.\d+)?)\s*,\s*(-?\d+(?:\.\d+)?)\s*$",
    re.IGNORECASE,
)
_URL = re.compile(r"https?://|maps\.app\.goo\.gl|google\.com/maps", re.IGNORECASE)


def haversine_m(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance between two points in meters."""
    lat1, lon1 = math.radians(a.lat), math.radians(a.lon)
    lat2, lon2 = math.radians(b.lat), math.radians(b.lon)

    dlat = lat2 - lat1
    dlon = lon2 - lon1

    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))

    return EARTH_RADIUS_M * c


def eta_seconds(distance_m: float, speed_kmph: float = 30.0) -> int | None:
    """Travel time at constant speed, or ``None`` for a non-positive speed."""
    speed_ms = speed_kmph * 1000 / 3600
    if speed_ms <= 0:
        return None
    return round(distance_m / speed_ms)


def parse_coordinates(text: str | None) -> GeoPoint | None:
    """Read ``lat,lon`` or ``location:lat,lon``; anything else is ``None``."""
    if not text:
        return None
    match = _COORDINATES.match(text)
    if not match:
        return None
    try:
        return GeoPoint(lat=float(match.group(1)), lon=float(match.group(2)))
    except ValueError:
        return None


def looks_like_url(text: str) -> bool:
    return bool(_URL.search(text))


def maps_search_link(point: GeoPoint) -> str:
    return f"https://www.google.com/maps/search/?api=1&query={point.lat},{point.lon}"


def maps_directions_link(origin: GeoPoint, destination: GeoPoint) -> str:
    return (
        "https://www.google.com/maps/dir/?api=1"
        f"&origin={origin.lat},{origin.lon}"
        f"&destination={destination.lat},{destination.lon}&travelmode=driving"
    )
