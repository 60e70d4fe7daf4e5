"""Radius-to-crossing geofence.

A location is in range when its haversine distance to at least one crossing is
within ``max_distance_meters``. The nearest crossing is tracked whether or not
the check passes so a rejection can say how far away the user is.

Ties between equidistant crossings keep the first one in configuration order.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

from traintracker.modules.geofence import CrossingPoint, GeofenceConfig, accuracy_rejection
from traintracker.utils.geo import GeoPoint, distance_between

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CrossingValidation:
    is_valid: bool
    is_in_range: bool
    nearest_crossing: Optional[CrossingPoint] = None
    distance_meters: Optional[float] = None
    reason: str = ""
    distances: tuple[tuple[CrossingPoint, float], ...] = field(default=(), compare=False)
    debug: Optional[dict] = field(default=None, compare=False)

    def to_dict(self) -> dict:
        nearest = self.nearest_crossing
        return {
            "is_valid": self.is_valid,
            "is_in_range": self.is_in_range,
            "nearest_crossing": (
                {"id": nearest.id, "name": nearest.name, "lat": nearest.lat, "lng": nearest.lng}
                if nearest else None
            ),
            "distance_meters": (
                round(self.distance_meters, 1) if self.distance_meters is not None else None
            ),
            "reason": self.reason,
            "debug": self.debug,
        }


def nearest_crossing(
    point: GeoPoint, crossings: Sequence[CrossingPoint]
) -> Optional[tuple[CrossingPoint, float]]:
    """Closest crossing and its distance in metres, or None if none configured."""
    best: Optional[tuple[CrossingPoint, float]] = None
    for crossing in crossings:
        distance = distance_between(point, crossing.point)
        if best is None or distance < best[1]:
            best = (crossing, distance)
    return best


def describe_distance(point: GeoPoint, crossings: Sequence[CrossingPoint]) -> str:
    """Short user-facing distance hint to the nearest crossing."""
    nearest = nearest_crossing(point, crossings)
    if nearest is None:
        return "No crossings configured"
    crossing, distance = nearest
    meters = round(distance)
    if meters < 100:
        return f"Very close to {crossing.name}"
    if meters < 1000:
        return f"{meters}m from {crossing.name}"
    return f"{meters / 1000:.1f}km from {crossing.name}"


def validate_crossing(
    point: GeoPoint,
    accuracy: float,
    crossings: Sequence[CrossingPoint],
    config: GeofenceConfig,
) -> CrossingValidation:
    """Decide whether a location is close enough to a crossing to report."""

    def _debug(enforced: bool, distances=()) -> Optional[dict]:
        if not config.debug:
            return None
        return {
            "user_location": point._asdict(),
            "accuracy": accuracy,
            "distances": [{"crossing": c.name, "distance": round(d)} for c, d in distances],
            "config_enforced": enforced,
            "max_allowed_distance": config.max_distance_meters,
        }

    if not config.enforce:
        return CrossingValidation(
            is_valid=True, is_in_range=False,
            reason="Geo-fence validation disabled", debug=_debug(False),
        )

    rejection = accuracy_rejection(accuracy, config)
    if rejection:
        return CrossingValidation(
            is_valid=False, is_in_range=False, reason=rejection, debug=_debug(True),
        )

    distances = tuple((c, distance_between(point, c.point)) for c in crossings)
    if not distances:
        return CrossingValidation(
            is_valid=False, is_in_range=False,
            reason="Not within range of any crossing: no crossings configured",
            debug=_debug(True),
        )

    nearest, min_distance = distances[0]
    for crossing, distance in distances[1:]:
        if distance < min_distance:
            nearest, min_distance = crossing, distance
    in_range = any(d <= config.max_distance_meters for _, d in distances)

    if not in_range:
        return CrossingValidation(
            is_valid=False, is_in_range=False,
            nearest_crossing=nearest, distance_meters=min_distance,
            reason=(
                f"Too far from train crossings ({min_distance:.0f}m away). "
                f"Must be within {config.max_distance_meters:.0f}m."
            ),
            distances=distances, debug=_debug(True, distances),
        )

    return CrossingValidation(
        is_valid=True, is_in_range=True,
        nearest_crossing=nearest, distance_meters=min_distance,
        reason=f"Within range of {nearest.name} ({min_distance:.0f}m away)",
        distances=distances, debug=_debug(True, distances),
    )
