from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from traintracker.config import settings
from traintracker.database import get_db, ping
from traintracker.models.train_report import TrainReport
from traintracker.modules import report_service
from traintracker.modules.consensus import explain_consensus
from traintracker.modules.crossing_geofence import describe_distance, validate_crossing
from traintracker.modules.geofence import validate_zone
from traintracker.modules.geofence_loader import get_geofence_snapshot, reload_geofence_snapshot
from traintracker.schemas.error import ErrorResponse
from traintracker.schemas.geofence import LocationReading
from traintracker.schemas.train_report import SimulatedReportRequest, TrainReportCreateRequest
from traintracker.utils.geo import GeoPoint

logger = logging.getLogger(__name__)

router = APIRouter()

_NOT_FOUND = {404: {"model": ErrorResponse}}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _client_ip(request: Request) -> str:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.headers.get("x-real-ip") or (
        request.client.host if request.client else "Unknown"
    )


# ---------------------------------------------------------------------------
# Train reports
# ---------------------------------------------------------------------------

@router.get("/train-reports", tags=["reports"])
def list_train_reports(db: Session = Depends(get_db)):
    """Most recent valid reports (clear, or crossing not yet expired)."""
    reports = report_service.list_valid_reports(db, _now(), settings.RECENT_REPORTS_LIMIT)
    return {"data": [report_service.serialize_report(r) for r in reports]}


@router.post(
    "/train-reports", tags=["reports"], responses={400: {"model": ErrorResponse}},
)
def create_train_report(body: TrainReportCreateRequest, request: Request, db: Session = Depends(get_db)):
    """Submit a crossing/clear report, gated by the geofence when enforced."""
    snapshot = get_geofence_snapshot()
    if snapshot.config.enforce:
        if body.location is None:
            raise HTTPException(status_code=400, detail="Location is required to submit a report")
        is_valid, reason = report_service.check_location(
            snapshot, body.location.lat, body.location.lng, body.location.accuracy,
        )
        if not is_valid:
            raise HTTPException(status_code=400, detail=reason)

    report = report_service.create_report(
        db,
        is_train_crossing=body.is_train_crossing,
        now=_now(),
        user_ip_address=_client_ip(request),
        user_agent=request.headers.get("user-agent") or "Unknown",
    )
    return {"data": report_service.serialize_report(report)}


@router.get("/train-reports/latest", tags=["reports"], responses=_NOT_FOUND)
def get_latest_train_report(db: Session = Depends(get_db)):
    report = report_service.latest_report(db)
    if not report:
        raise HTTPException(status_code=404, detail="No reports yet")
    return {"data": report_service.serialize_report(report)}


@router.get("/train-reports/{report_id}", tags=["reports"], responses=_NOT_FOUND)
def get_train_report(report_id: int, db: Session = Depends(get_db)):
    report = db.query(TrainReport).filter(TrainReport.id == report_id).first()
    if not report:
        raise HTTPException(status_code=404, detail="Report not found")
    return {"data": report_service.serialize_report(report)}


@router.post("/simulate-report", tags=["reports"])
def simulate_report(body: SimulatedReportRequest, db: Session = Depends(get_db)):
    """Create a report on behalf of a named simulated user (no geofence gate)."""
    user = body.simulated_user
    report = report_service.create_report(
        db,
        is_train_crossing=body.is_train_crossing,
        now=_now(),
        user_ip_address=f"127.0.0.1-{user}",
        user_agent=f"SimulatedUser/{user}",
        session_id=report_service.new_session_id(user),
    )
    return {"data": report_service.serialize_report(report)}


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------

@router.get("/train-status", tags=["status"])
def train_status(db: Session = Depends(get_db)):
    """Status from the newest report alone; None once it is stale."""
    report = report_service.latest_report(db)
    if not report:
        return {"data": {"status": None}}
    return {
        "data": {
            "status": report_service.latest_status(report, _now()),
            "last_report": report_service.serialize_report(report),
        }
    }


@router.get("/consensus", tags=["status"])
def consensus(db: Session = Depends(get_db)):
    """Safety-first consensus over the recent report window."""
    result = report_service.current_consensus(db, _now())
    data = result.to_dict()
    data["explanation"] = explain_consensus(result)
    data["window_minutes"] = settings.CONSENSUS_TIME_WINDOW_MINUTES
    return {"data": data}


@router.get("/config", tags=["system"])
def client_config():
    return {
        "data": {
            "consensus_time_window_minutes": settings.CONSENSUS_TIME_WINDOW_MINUTES,
            "train_crossing_expiration_minutes": settings.TRAIN_CROSSING_EXPIRATION_MINUTES,
            "report_cooldown_seconds": settings.REPORT_COOLDOWN_SECONDS,
            "geofence_mode": settings.GEOFENCE_MODE,
            "enforce_geofence": get_geofence_snapshot().config.enforce,
        }
    }


# ---------------------------------------------------------------------------
# Geofence
# ---------------------------------------------------------------------------

@router.get("/geofence", tags=["geofence"])
def list_geofence():
    """Configured zones and crossings from the active snapshot."""
    snapshot = get_geofence_snapshot()
    return {
        "zones": [
            {
                "id": z.id,
                "name": z.name,
                "description": z.description,
                "is_active": z.is_active,
                "is_test_zone": z.is_test_zone,
                "polygon": [p._asdict() for p in z.polygon],
            }
            for z in snapshot.zones
        ],
        "crossings": [
            {"id": c.id, "name": c.name, "lat": c.lat, "lng": c.lng}
            for c in snapshot.crossings
        ],
        "max_distance_meters": snapshot.config.max_distance_meters,
        "min_accuracy_meters": snapshot.config.min_accuracy_meters,
    }


@router.post("/geofence/zone", tags=["geofence"])
def check_zone(body: LocationReading):
    """Polygon check; test zones count only when ALLOW_TEST_ZONES is set."""
    snapshot = get_geofence_snapshot()
    result = validate_zone(
        GeoPoint(body.lat, body.lng), body.accuracy, snapshot.zones, snapshot.config,
    )
    return result.to_dict()


@router.post("/geofence/crossing", tags=["geofence"])
def check_crossing(body: LocationReading):
    snapshot = get_geofence_snapshot()
    point = GeoPoint(body.lat, body.lng)
    data = validate_crossing(point, body.accuracy, snapshot.crossings, snapshot.config).to_dict()
    data["description"] = describe_distance(point, snapshot.crossings)
    return data


@router.post("/geofence/reload", tags=["geofence"])
def reload_geofence():
    """Swap in a freshly loaded geofence snapshot (after YAML edits)."""
    snapshot = reload_geofence_snapshot()
    return {"status": "reloaded", "zones": len(snapshot.zones), "crossings": len(snapshot.crossings)}


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

@router.get("/health", tags=["system"])
def health_check(db: Session = Depends(get_db)):
    """Liveness plus report-store reachability. Always 200; a store failure reads as degraded."""
    db_status, latency_ms = ping(db)
    snapshot = get_geofence_snapshot()
    return {
        "status": "ok" if db_status == "ok" else "degraded",
        "version": settings.VERSION,
        "database": {"status": db_status, "latency_ms": latency_ms},
        "geofence": {
            "enforced": snapshot.config.enforce,
            "mode": settings.GEOFENCE_MODE,
            "zones": len(snapshot.zones),
            "crossings": len(snapshot.crossings),
        },
    }
