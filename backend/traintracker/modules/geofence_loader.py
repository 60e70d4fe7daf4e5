"""Loads zones and crossings from geofence.yaml into an immutable snapshot.

Thresholds come from Settings; geometry comes from the YAML file. The loaded
GeofenceSnapshot is never mutated: reload builds a fresh snapshot and replaces
the module-level reference in a single assignment, so a request that already
holds a snapshot keeps seeing one consistent configuration.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import yaml

from traintracker.config import settings
from traintracker.modules.geofence import CrossingPoint, GeofenceConfig, Zone
from traintracker.utils.geo import GeoPoint

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeofenceSnapshot:
    config: GeofenceConfig
    zones: tuple[Zone, ...] = ()
    crossings: tuple[CrossingPoint, ...] = ()


_SNAPSHOT: GeofenceSnapshot | None = None


# Keys accepted under ``settings:``; the environment always wins over them
_SETTINGS_KEYS: dict[str, type] = {
    "max_distance_meters": float,
    "min_accuracy_meters": float,
    "enforce": bool,
    "allow_test_zones": bool,
    "debug": bool,
}


def config_from_settings() -> GeofenceConfig:
    return GeofenceConfig(
        max_distance_meters=settings.GEOFENCE_MAX_DISTANCE_METERS,
        min_accuracy_meters=settings.GEOFENCE_MIN_ACCURACY_METERS,
        enforce=settings.ENFORCE_GEOFENCE,
        allow_test_zones=settings.ALLOW_TEST_ZONES,
        debug=settings.GEOFENCE_DEBUG,
    )


def _parse_point(raw: Any, where: str) -> GeoPoint:
    try:
        if isinstance(raw, dict):
            return GeoPoint(float(raw["lat"]), float(raw["lng"]))
        if isinstance(raw, (list, tuple)) and len(raw) == 2:
            return GeoPoint(float(raw[0]), float(raw[1]))
    except (KeyError, TypeError, ValueError) as e:
        raise ValueError(f"{where}: bad point {raw!r} ({e!r})") from e
    raise ValueError(f"{where}: expected {{lat, lng}} or [lat, lng], got {raw!r}")


def _require_mapping(raw: Any, where: str) -> dict:
    if not isinstance(raw, dict):
        raise ValueError(f"{where}: expected a mapping, got {type(raw).__name__}")
    return raw


def _require_list(raw: Any, where: str) -> list:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValueError(f"{where}: expected a list, got {type(raw).__name__}")
    return raw


def _parse_zone(raw: Any, index: int) -> Zone:
    raw = _require_mapping(raw, f"zones[{index}]")
    zone_id = raw.get("id") or raw.get("name")
    if not zone_id:
        raise ValueError(f"zones[{index}] is missing both id and name")
    where = f"zone {zone_id!r}"
    polygon = tuple(_parse_point(p, where) for p in _require_list(raw.get("polygon"), where))
    # A repeated closing vertex is not a distinct vertex
    distinct = len(set(polygon))
    if distinct < 3:
        raise ValueError(f"zone {zone_id!r} needs at least 3 distinct vertices, got {distinct}")
    return Zone(
        id=str(zone_id),
        name=raw.get("name") or str(zone_id),
        description=raw.get("description", ""),
        polygon=polygon,
        is_active=bool(raw.get("is_active", True)),
        is_test_zone=bool(raw.get("is_test_zone", False)),
    )


def _parse_crossing(raw: Any, index: int) -> CrossingPoint:
    raw = _require_mapping(raw, f"crossings[{index}]")
    crossing_id = raw.get("id") or raw.get("name")
    if not crossing_id:
        raise ValueError(f"crossings[{index}] is missing both id and name")
    point = _parse_point(raw, f"crossing {crossing_id!r}")
    return CrossingPoint(
        id=str(crossing_id),
        name=raw.get("name") or str(crossing_id),
        lat=point.lat,
        lng=point.lng,
    )


def _check_settings_section(raw: Any, config: GeofenceConfig) -> None:
    """Validate the optional ``settings:`` block and warn where it disagrees with the environment."""
    if raw is None:
        return
    raw = _require_mapping(raw, "settings")
    for key, value in raw.items():
        kind = _SETTINGS_KEYS.get(key)
        if kind is None:
            raise ValueError(f"settings: unknown key {key!r}")
        if kind is bool:
            if not isinstance(value, bool):
                raise ValueError(f"settings.{key}: expected true/false, got {value!r}")
        elif isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
            raise ValueError(f"settings.{key}: expected a non-negative number, got {value!r}")
        current = getattr(config, key)
        if value != current:
            logger.warning(
                "geofence.yaml settings.%s=%s ignored; environment value %s applies",
                key, value, current,
            )


def parse_geofence(data: Any, config: Optional[GeofenceConfig] = None) -> GeofenceSnapshot:
    """Build a snapshot from an already-parsed YAML mapping; malformed input raises ValueError."""
    data = _require_mapping(data, "geofence config")
    config = config or config_from_settings()
    _check_settings_section(data.get("settings"), config)
    zones = tuple(_parse_zone(z, i) for i, z in enumerate(_require_list(data.get("zones"), "zones")))
    crossings = tuple(
        _parse_crossing(c, i) for i, c in enumerate(_require_list(data.get("crossings"), "crossings"))
    )
    ids = [z.id for z in zones]
    if len(ids) != len(set(ids)):
        raise ValueError("duplicate zone ids in geofence config")
    return GeofenceSnapshot(config=config, zones=zones, crossings=crossings)


def load_geofence_file(path: Path, config: Optional[GeofenceConfig] = None) -> GeofenceSnapshot:
    if not path.exists():
        logger.warning("geofence.yaml not found at %s: no zones or crossings configured", path)
        return GeofenceSnapshot(config=config or config_from_settings())
    with open(path) as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"{path}: invalid YAML ({e})") from e
    snapshot = parse_geofence(data if data is not None else {}, config)
    logger.info(
        "Loaded geofence config from %s: %d zones, %d crossings",
        path, len(snapshot.zones), len(snapshot.crossings),
    )
    return snapshot


def _config_path() -> Path:
    path = Path(settings.GEOFENCE_CONFIG)
    if not path.is_absolute() and not path.exists():
        # config/ is at repo root (one level above backend/)
        path = Path(__file__).resolve().parents[3] / settings.GEOFENCE_CONFIG
    return path


def get_geofence_snapshot() -> GeofenceSnapshot:
    global _SNAPSHOT
    if _SNAPSHOT is None:
        _SNAPSHOT = load_geofence_file(_config_path())
    return _SNAPSHOT


def reload_geofence_snapshot() -> GeofenceSnapshot:
    """Force-reload geofence config from disk (e.g. after YAML edits)."""
    global _SNAPSHOT
    _SNAPSHOT = load_geofence_file(_config_path())
    return _SNAPSHOT
