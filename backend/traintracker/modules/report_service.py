"""Report store access and the glue between stored rows and the engines.

Routes and the CLI go through these helpers; the consensus and geofence
engines themselves never touch the database or the clock.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from traintracker.config import settings
from traintracker.models.base import GeofenceModeEnum
from traintracker.models.train_report import TrainReport
from traintracker.modules.consensus import ConsensusResult, compute_consensus
from traintracker.modules.crossing_geofence import validate_crossing
from traintracker.modules.geofence import validate_zone
from traintracker.modules.geofence_loader import GeofenceSnapshot
from traintracker.utils.geo import GeoPoint

logger = logging.getLogger(__name__)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def serialize_report(report: TrainReport) -> dict:
    reported_at = _as_utc(report.reported_at)
    expires_at = _as_utc(report.expires_at)
    return {
        "id": report.id,
        "is_train_crossing": report.is_train_crossing,
        "reported_at": reported_at.isoformat() if reported_at else None,
        "expires_at": expires_at.isoformat() if expires_at else None,
        "user_ip_address": report.user_ip_address,
        "user_agent": report.user_agent,
        "session_id": report.session_id,
        "is_simulated": report.session_id.startswith("sim-"),
    }


def new_session_id(simulated_user: Optional[str] = None) -> str:
    token = uuid.uuid4().hex[:13]
    return f"sim-{simulated_user}-{token}" if simulated_user else token


def create_report(
    db: Session,
    is_train_crossing: bool,
    now: datetime,
    user_ip_address: str = "Unknown",
    user_agent: str = "Unknown",
    session_id: Optional[str] = None,
) -> TrainReport:
    """Persist a new report. Crossing reports get an expiry; clear reports don't."""
    expires_at = (
        now + timedelta(minutes=settings.TRAIN_CROSSING_EXPIRATION_MINUTES)
        if is_train_crossing else None
    )
    report = TrainReport(
        is_train_crossing=is_train_crossing,
        reported_at=now,
        expires_at=expires_at,
        user_ip_address=user_ip_address,
        user_agent=user_agent,
        session_id=session_id or new_session_id(),
    )
    db.add(report)
    db.commit()
    logger.info(
        "Recorded %s report from %s (session %s)",
        "crossing" if is_train_crossing else "clear", user_ip_address, report.session_id,
    )
    return report


def list_valid_reports(db: Session, now: datetime, limit: int) -> list[TrainReport]:
    """Clear reports plus unexpired crossing reports, newest first."""
    return (
        db.query(TrainReport)
        .filter(or_(
            TrainReport.is_train_crossing.is_(False),
            TrainReport.expires_at.is_(None),
            TrainReport.expires_at > now,
        ))
        .order_by(TrainReport.reported_at.desc())
        .limit(limit)
        .all()
    )


def fetch_recent_reports(db: Session, now: datetime) -> list[TrainReport]:
    """Rows inside the store lookback; the engine narrows further.

    The lookback never drops below the consensus window, so every report the
    engine would count is handed to it.
    """
    lookback = max(settings.REPORT_LOOKBACK_MINUTES, settings.CONSENSUS_TIME_WINDOW_MINUTES)
    cutoff = now - timedelta(minutes=lookback)
    return (
        db.query(TrainReport)
        .filter(TrainReport.reported_at >= cutoff)
        .order_by(TrainReport.reported_at.desc())
        .all()
    )


def latest_report(db: Session) -> Optional[TrainReport]:
    return db.query(TrainReport).order_by(TrainReport.reported_at.desc()).first()


def latest_status(report: Optional[TrainReport], now: datetime) -> Optional[bool]:
    """Status implied by the newest report, None once it has gone stale."""
    if report is None:
        return None
    stale_before = now - timedelta(minutes=settings.STALE_STATUS_MINUTES)
    if _as_utc(report.reported_at) < stale_before:
        return None
    return report.is_train_crossing


def current_consensus(db: Session, now: datetime) -> ConsensusResult:
    rows = fetch_recent_reports(db, now)
    return compute_consensus(
        [row.to_report() for row in rows],
        now=now,
        window_minutes=settings.CONSENSUS_TIME_WINDOW_MINUTES,
    )


def check_location(
    snapshot: GeofenceSnapshot,
    lat: float,
    lng: float,
    accuracy: float,
    mode: Optional[str] = None,
) -> tuple[bool, str]:
    """Run the configured geofence variant; returns (is_valid, reason)."""
    mode = mode or settings.GEOFENCE_MODE
    point = GeoPoint(lat, lng)
    if GeofenceModeEnum(mode) is GeofenceModeEnum.ZONE:
        result = validate_zone(point, accuracy, snapshot.zones, snapshot.config)
    else:
        result = validate_crossing(point, accuracy, snapshot.crossings, snapshot.config)
    if not result.is_valid:
        logger.info("Geofence rejected (%s mode) %.5f,%.5f: %s", mode, lat, lng, result.reason)
    return result.is_valid, result.reason
