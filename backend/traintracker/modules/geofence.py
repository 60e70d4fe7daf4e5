"""Polygon geofence: gates reports to configured reporting zones.

Containment uses the even-odd ray-casting rule with ``lng`` as x and ``lat``
as y. Edges wrap from the last vertex to the first, so polygons that are not
explicitly closed behave the same as closed ones; a duplicated closing vertex
produces a zero-length edge that never toggles the result.

Points exactly on an edge: the half-open ``(yi > lat) != (yj > lat)`` test
counts a vertex only for the edge above it, so points on bottom/left edges
tend to read as inside and points on top/right edges as outside. This is
floating-point dependent and callers must not rely on it.

Validation order:
  1. enforcement disabled → valid (never blocks a report)
  2. GPS accuracy worse than the threshold → rejected before any geometry
  3. containment against active zones (test zones only when allowed)
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

from traintracker.utils.geo import GeoPoint, distance_between

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Zone:
    id: str
    name: str
    polygon: tuple[GeoPoint, ...]
    description: str = ""
    is_active: bool = True
    is_test_zone: bool = False


@dataclass(frozen=True)
class CrossingPoint:
    id: str
    name: str
    lat: float
    lng: float

    @property
    def point(self) -> GeoPoint:
        return GeoPoint(self.lat, self.lng)


@dataclass(frozen=True)
class GeofenceConfig:
    max_distance_meters: float = 500.0
    min_accuracy_meters: float = 100.0
    enforce: bool = True
    allow_test_zones: bool = False
    debug: bool = False


@dataclass(frozen=True)
class ZoneValidation:
    is_valid: bool
    is_in_zone: bool
    matched_zones: tuple[Zone, ...] = ()
    reason: str = ""
    debug: Optional[dict] = field(default=None, compare=False)

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "is_in_zone": self.is_in_zone,
            "zones": [{"id": z.id, "name": z.name} for z in self.matched_zones],
            "reason": self.reason,
            "debug": self.debug,
        }


def accuracy_rejection(accuracy: float, config: GeofenceConfig) -> Optional[str]:
    """Reason string when a GPS fix is too coarse to trust, else None."""
    if accuracy > config.min_accuracy_meters:
        return (
            f"GPS accuracy too low ({accuracy:.0f}m). "
            f"Need {config.min_accuracy_meters:.0f}m or better."
        )
    return None


# ── Geometry helpers ──────────────────────────────────────────────────────────

def is_point_in_polygon(point: GeoPoint, polygon: Sequence[GeoPoint]) -> bool:
    """Even-odd ray casting; the ray runs from the point towards +lng."""
    inside = False
    j = len(polygon) - 1
    for i in range(len(polygon)):
        xi, yi = polygon[i].lng, polygon[i].lat
        xj, yj = polygon[j].lng, polygon[j].lat
        if (yi > point.lat) != (yj > point.lat):
            x_cross = (xj - xi) * (point.lat - yi) / (yj - yi) + xi
            if point.lng < x_cross:
                inside = not inside
        j = i
    return inside


def polygon_center(polygon: Sequence[GeoPoint]) -> GeoPoint:
    """Vertex average. Good enough for map labels and nearest-zone hints."""
    lat = sum(p.lat for p in polygon) / len(polygon)
    lng = sum(p.lng for p in polygon) / len(polygon)
    return GeoPoint(lat, lng)


def _eligible(zone: Zone, include_test_zones: bool) -> bool:
    if not zone.is_active:
        return False
    return include_test_zones or not zone.is_test_zone


def containing_zones(
    point: GeoPoint, zones: Sequence[Zone], include_test_zones: bool = False
) -> list[Zone]:
    """Active zones containing the point, in configuration order."""
    return [
        z for z in zones
        if _eligible(z, include_test_zones) and is_point_in_polygon(point, z.polygon)
    ]


def nearest_zone(
    point: GeoPoint, zones: Sequence[Zone], include_test_zones: bool = False
) -> Optional[tuple[Zone, float]]:
    """Closest eligible zone by distance to its polygon centre, or None."""
    best: Optional[tuple[Zone, float]] = None
    for zone in zones:
        if not _eligible(zone, include_test_zones):
            continue
        distance = distance_between(point, polygon_center(zone.polygon))
        if best is None or distance < best[1]:
            best = (zone, distance)
    return best


# ── Validation ────────────────────────────────────────────────────────────────

def validate_zone(
    point: GeoPoint,
    accuracy: float,
    zones: Sequence[Zone],
    config: GeofenceConfig,
    include_test_zones: Optional[bool] = None,
) -> ZoneValidation:
    """Decide whether a location reading may submit a report.

    Args:
        point: Reported location.
        accuracy: GPS accuracy radius in metres (smaller is better).
        zones: Configured zones; inactive ones are ignored.
        config: Thresholds and enforcement flag.
        include_test_zones: Overrides ``config.allow_test_zones`` when given.

    Returns:
        ZoneValidation with every matching zone and a reason naming them, or
        explaining the rejection.
    """
    debug = None
    if config.debug:
        debug = {"point": point._asdict(), "accuracy": accuracy, "config_enforced": config.enforce}

    if not config.enforce:
        return ZoneValidation(
            is_valid=True, is_in_zone=False,
            reason="Geo-fence validation disabled", debug=debug,
        )

    rejection = accuracy_rejection(accuracy, config)
    if rejection:
        return ZoneValidation(is_valid=False, is_in_zone=False, reason=rejection, debug=debug)

    allow_test = config.allow_test_zones if include_test_zones is None else include_test_zones
    matched = tuple(containing_zones(point, zones, allow_test))

    if not matched:
        return ZoneValidation(
            is_valid=False, is_in_zone=False,
            reason="Not within range of any zone: you must be near the train tracks to submit a report",
            debug=debug,
        )

    names = ", ".join(z.name for z in matched)
    if any(z.is_test_zone for z in matched):
        reason = f"In test zone: {names}"
    else:
        reason = f"Within reporting zone: {names}"
    return ZoneValidation(
        is_valid=True, is_in_zone=True, matched_zones=matched, reason=reason, debug=debug,
    )
