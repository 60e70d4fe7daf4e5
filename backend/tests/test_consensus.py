"""Tests for the safety-first consensus engine.

Tests cover:
  - Empty and fully-stale windows yield no opinion
  - ANY crossing report forces crossing status (never outvoted by clear reports)
  - Confidence tiers for crossing-only, mixed and clear-only sets
  - Expiry applies to crossing reports only
  - Window boundary is inclusive
  - The fall-through branch is unreachable for consistent counts
  - explain_consensus wording per branch

All tests are unit-level and require no database.
"""
import logging
from datetime import datetime, timedelta, timezone

import pytest

from traintracker.models.base import ConfidenceEnum
from traintracker.modules.consensus import (
    ConsensusResult,
    Report,
    ReportCounts,
    _decide,
    compute_consensus,
    explain_consensus,
    filter_recent,
    is_report_valid,
)

T0 = datetime(2025, 9, 27, 12, 0, 0, tzinfo=timezone.utc)


def crossing(at, expires_at=None, rid=None):
    return Report(id=rid, is_crossing=True, reported_at=at, expires_at=expires_at)


def clear(at, rid=None):
    return Report(id=rid, is_crossing=False, reported_at=at)


def secs(n):
    return timedelta(seconds=n)


# ── Documented scenarios ──────────────────────────────────────────────────────

class TestDocumentedScenarios:

    def test_single_crossing_is_medium(self):
        result = compute_consensus([crossing(T0)], now=T0 + timedelta(minutes=1), window_minutes=5)
        assert result.status is True
        assert result.confidence == ConfidenceEnum.MEDIUM
        assert result.counts == ReportCounts(crossing=1, clear=0, total=1)

    def test_two_crossings_is_high(self):
        reports = [crossing(T0), crossing(T0 + secs(10))]
        result = compute_consensus(reports, now=T0 + secs(20), window_minutes=5)
        assert result.status is True
        assert result.confidence == ConfidenceEnum.HIGH
        assert result.counts == ReportCounts(2, 0, 2)

    def test_crossing_wins_when_outnumbered(self):
        """One crossing vs two clear: still crossing, low confidence."""
        reports = [crossing(T0), clear(T0 + secs(5)), clear(T0 + secs(10))]
        result = compute_consensus(reports, now=T0 + secs(15), window_minutes=5)
        assert result.status is True
        assert result.confidence == ConfidenceEnum.LOW
        assert result.counts == ReportCounts(1, 2, 3)

    def test_three_clear_is_high(self):
        reports = [clear(T0), clear(T0 + secs(5)), clear(T0 + secs(10))]
        result = compute_consensus(reports, now=T0 + secs(15), window_minutes=5)
        assert result.status is False
        assert result.confidence == ConfidenceEnum.HIGH
        assert result.counts == ReportCounts(0, 3, 3)


# ── Policy ────────────────────────────────────────────────────────────────────

class TestPolicy:

    def test_no_reports(self):
        result = compute_consensus([], now=T0, window_minutes=5)
        assert result.status is None
        assert result.confidence == ConfidenceEnum.LOW
        assert result.counts == ReportCounts(0, 0, 0)

    def test_all_reports_outside_window(self):
        reports = [crossing(T0), clear(T0)]
        result = compute_consensus(reports, now=T0 + timedelta(minutes=6), window_minutes=5)
        assert result.status is None
        assert result.confidence == ConfidenceEnum.LOW
        assert result.counts.total == 0

    @pytest.mark.parametrize("n_clear", [0, 1, 2, 5, 50])
    def test_any_crossing_forces_crossing(self, n_clear):
        reports = [crossing(T0)] + [clear(T0 + secs(i + 1)) for i in range(n_clear)]
        result = compute_consensus(reports, now=T0 + secs(60), window_minutes=5)
        assert result.status is True

    def test_two_crossings_high_even_with_many_clear(self):
        reports = [crossing(T0), crossing(T0)] + [clear(T0) for _ in range(10)]
        result = compute_consensus(reports, now=T0 + secs(30), window_minutes=5)
        assert result.status is True
        assert result.confidence == ConfidenceEnum.HIGH

    @pytest.mark.parametrize("n_clear,expected", [
        (1, ConfidenceEnum.LOW),
        (2, ConfidenceEnum.MEDIUM),
        (3, ConfidenceEnum.HIGH),
        (7, ConfidenceEnum.HIGH),
    ])
    def test_clear_confidence_tiers(self, n_clear, expected):
        reports = [clear(T0 + secs(i)) for i in range(n_clear)]
        result = compute_consensus(reports, now=T0 + secs(30), window_minutes=5)
        assert result.status is False
        assert result.confidence == expected

    def test_input_order_is_irrelevant(self):
        reports = [clear(T0 + secs(5)), crossing(T0), clear(T0 + secs(10))]
        forward = compute_consensus(reports, now=T0 + secs(15), window_minutes=5)
        backward = compute_consensus(list(reversed(reports)), now=T0 + secs(15), window_minutes=5)
        assert forward == backward

    def test_inputs_are_not_mutated(self):
        reports = [crossing(T0, expires_at=T0 + secs(1)), clear(T0)]
        snapshot = list(reports)
        compute_consensus(reports, now=T0 + secs(30), window_minutes=5)
        assert reports == snapshot

    def test_accepts_generator(self):
        result = compute_consensus((clear(T0) for _ in range(2)), now=T0, window_minutes=5)
        assert result.counts.total == 2


# ── Recency and validity ──────────────────────────────────────────────────────

class TestRecencyAndValidity:

    def test_expired_crossing_excluded_even_inside_window(self):
        reports = [crossing(T0, expires_at=T0 + secs(30))]
        result = compute_consensus(reports, now=T0 + secs(60), window_minutes=5)
        assert result.status is None
        assert result.counts.total == 0

    def test_expired_crossing_leaves_clear_reports(self):
        reports = [crossing(T0, expires_at=T0 + secs(30)), clear(T0 + secs(40))]
        result = compute_consensus(reports, now=T0 + secs(60), window_minutes=5)
        assert result.status is False
        assert result.counts == ReportCounts(0, 1, 1)

    def test_expiry_exactly_now_is_expired(self):
        report = crossing(T0, expires_at=T0 + secs(60))
        assert is_report_valid(report, T0 + secs(60)) is False
        assert is_report_valid(report, T0 + secs(59)) is True

    def test_crossing_without_expiry_is_valid(self):
        assert is_report_valid(crossing(T0, expires_at=None), T0 + timedelta(days=365))

    def test_clear_report_never_expires(self):
        report = Report(id=1, is_crossing=False, reported_at=T0, expires_at=T0)
        assert is_report_valid(report, T0 + timedelta(hours=5))

    def test_window_boundary_is_inclusive(self):
        now = T0 + timedelta(minutes=5)
        assert len(filter_recent([clear(T0)], now, 5)) == 1
        assert len(filter_recent([clear(T0 - secs(1))], now, 5)) == 0

    def test_naive_datetimes_treated_as_utc(self):
        """SQLite hands back naive datetimes; they must compare against an aware clock."""
        naive = T0.replace(tzinfo=None)
        reports = [Report(id=1, is_crossing=True, reported_at=naive, expires_at=naive + secs(600))]
        result = compute_consensus(reports, now=T0 + secs(30), window_minutes=5)
        assert result.status is True
        assert result.counts.crossing == 1

    def test_window_size_changes_result(self):
        reports = [crossing(T0), clear(T0 + timedelta(minutes=8))]
        now = T0 + timedelta(minutes=9)
        assert compute_consensus(reports, now, window_minutes=5).status is False
        assert compute_consensus(reports, now, window_minutes=10).status is True


# ── Fall-through branch ───────────────────────────────────────────────────────

class TestFallthrough:

    def test_unreachable_for_consistent_counts(self, caplog):
        """Every partition of a recent set resolves before the fall-through."""
        with caplog.at_level(logging.WARNING, logger="traintracker.modules.consensus"):
            for n_crossing in range(6):
                for n_clear in range(6):
                    counts = ReportCounts(n_crossing, n_clear, n_crossing + n_clear)
                    status, _ = _decide(counts)
                    if counts.total:
                        assert status is not None
        assert "fell through" not in caplog.text

    def test_inconsistent_counts_are_deterministic(self, caplog):
        with caplog.at_level(logging.WARNING, logger="traintracker.modules.consensus"):
            status, confidence = _decide(ReportCounts(crossing=0, clear=0, total=3))
        assert status is None
        assert confidence == ConfidenceEnum.LOW
        assert "fell through" in caplog.text


# ── Explanation ───────────────────────────────────────────────────────────────

class TestExplanation:

    def test_no_reports(self):
        result = ConsensusResult(None, ConfidenceEnum.LOW, ReportCounts())
        assert explain_consensus(result) == "No recent reports available"

    def test_crossing_embeds_counts_and_confidence(self):
        result = ConsensusResult(True, ConfidenceEnum.LOW, ReportCounts(1, 2, 3))
        text = explain_consensus(result)
        assert "crossing" in text.lower()
        assert "1 crossing" in text
        assert "2 clear" in text
        assert "low confidence" in text

    def test_clear_embeds_counts_and_confidence(self):
        result = ConsensusResult(False, ConfidenceEnum.MEDIUM, ReportCounts(0, 2, 2))
        text = explain_consensus(result)
        assert text.startswith("Tracks clear")
        assert "2 clear" in text
        assert "medium confidence" in text

    def test_branches_distinguishable(self):
        texts = {
            explain_consensus(ConsensusResult(s, ConfidenceEnum.HIGH, ReportCounts(2, 2, 4)))
            for s in (None, True, False)
        }
        assert len(texts) == 3


def test_confidence_rank_ordering():
    assert ConfidenceEnum.HIGH.rank > ConfidenceEnum.MEDIUM.rank > ConfidenceEnum.LOW.rank


def test_to_dict_shape():
    result = compute_consensus([crossing(T0)], now=T0, window_minutes=5)
    assert result.to_dict() == {
        "status": True,
        "confidence": "medium",
        "recent_reports": {"crossing": 1, "clear": 0, "total": 1},
    }
