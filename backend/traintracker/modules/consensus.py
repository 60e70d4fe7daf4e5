"""Safety-first consensus over recent train reports.

Reduces the reports submitted within a trailing window to a single
crossing / clear / unknown status plus a confidence level.

Policy (false "clear" is far more costly than false "crossing"):
  - No recent valid reports          → status None,  confidence low
  - ANY recent crossing report       → status True,  regardless of clear volume
      ≥2 crossing                    → high
      1 crossing, 0 clear            → medium
      1 crossing, ≥1 clear           → low
  - Only clear reports               → status False
      ≥3 clear → high, 2 → medium, 1 → low

A crossing report stops counting once its expires_at has passed; clear reports
never expire. The engine is pure: the caller supplies the reports and the clock.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from traintracker.models.base import ConfidenceEnum

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Report:
    """Write-once report record as seen by the engine."""
    id: object
    is_crossing: bool
    reported_at: datetime
    expires_at: Optional[datetime] = None


@dataclass(frozen=True)
class ReportCounts:
    crossing: int = 0
    clear: int = 0
    total: int = 0


@dataclass(frozen=True)
class ConsensusResult:
    status: Optional[bool]
    confidence: ConfidenceEnum
    counts: ReportCounts

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "confidence": self.confidence.value,
            "recent_reports": {
                "crossing": self.counts.crossing,
                "clear": self.counts.clear,
                "total": self.counts.total,
            },
        }


def _as_utc(value: datetime) -> datetime:
    """Naive datetimes (SQLite round-trips) are treated as UTC."""
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def is_report_valid(report: Report, now: datetime) -> bool:
    """A report counts unless it is a crossing report whose expiry has passed."""
    if not report.is_crossing or report.expires_at is None:
        return True
    return _as_utc(report.expires_at) > _as_utc(now)


def filter_recent(
    reports: Iterable[Report], now: datetime, window_minutes: int
) -> list[Report]:
    """Reports inside the trailing window that are still valid at ``now``."""
    now = _as_utc(now)
    cutoff = now - timedelta(minutes=window_minutes)
    return [
        r for r in reports
        if _as_utc(r.reported_at) >= cutoff and is_report_valid(r, now)
    ]


def _decide(counts: ReportCounts) -> tuple[Optional[bool], ConfidenceEnum]:
    if counts.total == 0:
        return None, ConfidenceEnum.LOW

    if counts.crossing > 0:
        if counts.crossing >= 2:
            return True, ConfidenceEnum.HIGH
        if counts.clear == 0:
            return True, ConfidenceEnum.MEDIUM
        return True, ConfidenceEnum.LOW

    if counts.clear > 0:
        if counts.clear >= 3:
            return False, ConfidenceEnum.HIGH
        if counts.clear == 2:
            return False, ConfidenceEnum.MEDIUM
        return False, ConfidenceEnum.LOW

    # total > 0 with neither crossing nor clear reports cannot come out of a
    # partition of the recent set.
    logger.warning("Consensus fell through with inconsistent counts %s", counts)
    return None, ConfidenceEnum.LOW


def compute_consensus(
    reports: Iterable[Report], now: datetime, window_minutes: int
) -> ConsensusResult:
    """Reduce reports to a consensus status under the safety-first policy.

    Args:
        reports: Candidate reports in any order. Objects only need the
            ``is_crossing``, ``reported_at`` and ``expires_at`` attributes.
        now: The evaluation instant (injected so callers and tests pin it).
        window_minutes: Trailing window length; reports with
            ``reported_at >= now - window`` are considered.

    Returns:
        ConsensusResult whose counts cover only reports that passed both the
        recency filter and the validity predicate.
    """
    recent = filter_recent(reports, now, window_minutes)
    crossing = sum(1 for r in recent if r.is_crossing)
    counts = ReportCounts(
        crossing=crossing,
        clear=len(recent) - crossing,
        total=len(recent),
    )
    status, confidence = _decide(counts)
    return ConsensusResult(status=status, confidence=confidence, counts=counts)


def explain_consensus(result: ConsensusResult) -> str:
    """Human-readable summary of a consensus result."""
    counts = result.counts
    if result.status is None:
        return "No recent reports available"
    if result.status:
        return (
            f"Train crossing detected ({counts.crossing} crossing vs "
            f"{counts.clear} clear reports, {result.confidence.value} confidence)"
        )
    return f"Tracks clear ({counts.clear} clear reports, {result.confidence.value} confidence)"
