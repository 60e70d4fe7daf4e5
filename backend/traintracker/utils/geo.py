"""Shared geodesic distance utilities.

Canonical haversine implementation used by both geofence variants
(polygon zones and radius-to-crossing).
"""
from __future__ import annotations

import math
from typing import NamedTuple

_EARTH_RADIUS_M: float = 6_371_000.0  # Earth mean radius in metres


class GeoPoint(NamedTuple):
    """WGS-84 coordinate in decimal degrees."""
    lat: float
    lng: float


def haversine_meters(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in metres between two WGS-84 coordinates."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlam = math.radians(lng2 - lng1)
    a = (
        math.sin(dphi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(dlam / 2) ** 2
    )
    return _EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def distance_between(a: GeoPoint, b: GeoPoint) -> float:
    """Haversine distance in metres between two GeoPoints."""
    return haversine_meters(a.lat, a.lng, b.lat, b.lng)
