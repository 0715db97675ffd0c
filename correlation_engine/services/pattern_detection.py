"""Pattern detection over the whole approved report set.

One analysis run:

    1. Record a ``running`` row in the run log.
    2. Cluster recent geolocated reports (DBSCAN on great-circle
       distance) and upsert one GEOGRAPHIC_CLUSTER pattern per cluster.
    3. Z-score weekly report counts over the trailing window and upsert a
       TEMPORAL_ANOMALY pattern for every week at or beyond the threshold.
    4. Index each calendar month against the monthly average and upsert a
       SEASONAL_PATTERN for months above the high band or below the low one.
    5. Archive ACTIVE patterns not updated for ``stale_after_days``.
    6. Mark the run completed with its counts.

A store failure inside one detector is logged and counted in
``failed_steps``; the other detectors still run.  Anything else fails
the run: it is marked failed and the error propagates.

The scoring helpers below are pure functions so they can be tested
without a store.
"""

from __future__ import annotations

import calendar
import math
import time
from collections import deque
from collections.abc import Awaitable, Callable, Iterable
from datetime import date, datetime, timedelta, timezone
from statistics import fmean, pstdev
from typing import NamedTuple

import structlog

from correlation_engine.config.settings import PatternSettings
from correlation_engine.interfaces.report_store import IReportStore
from correlation_engine.models.pattern import (
    DetectedPattern,
    GeographicCluster,
    MonthlyCount,
    PatternCounts,
    PatternRunResult,
    PatternStatus,
    PatternType,
    WeeklyCount,
)
from correlation_engine.models.report import Coordinates, Report
from correlation_engine.utils.errors import CorrelationEngineError
from correlation_engine.utils.geo import KM_PER_DEGREE, haversine_km
from correlation_engine.utils.logging import get_logger, run_context

_logger: structlog.BoundLogger = get_logger(__name__)

_NOISE = -1
_SCORE_DIGITS = 4


def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _clamp_score(value: float) -> float:
    return round(min(max(value, 0.0), 1.0), _SCORE_DIGITS)


# ---------------------------------------------------------------------------
# Temporal anomalies
# ---------------------------------------------------------------------------


class WeekAnomaly(NamedTuple):
    week: WeeklyCount
    z_score: float
    mean: float
    std_deviation: float


def find_anomalous_weeks(weeks: list[WeeklyCount], threshold: float) -> list[WeekAnomaly]:
    """Return the weeks whose count is at least *threshold* standard deviations from the mean.

    Uses the population standard deviation over the weeks given.  A flat
    series (deviation 0) has no anomalies.
    """
    if not weeks:
        return []

    counts = [week.report_count for week in weeks]
    mean = fmean(counts)
    std = pstdev(counts)
    if std == 0:
        return []

    anomalies: list[WeekAnomaly] = []
    for week in weeks:
        z_score = (week.report_count - mean) / std
        if abs(z_score) >= threshold:
            anomalies.append(WeekAnomaly(week, z_score, mean, std))
    return anomalies


def temporal_confidence(z_score: float) -> float:
    return _clamp_score(abs(z_score) / 5)


def temporal_significance(report_count: int) -> float:
    return _clamp_score(report_count / 100)


# ---------------------------------------------------------------------------
# Seasonal patterns
# ---------------------------------------------------------------------------


def seasonal_indices(months: list[MonthlyCount]) -> list[tuple[MonthlyCount, float]]:
    """Pair each month with its count divided by the average monthly count.

    The average is over the months present.  When it is 0 every index is 1.
    """
    if not months:
        return []
    average = fmean(month.report_count for month in months)
    return [
        (month, month.report_count / average if average > 0 else 1.0)
        for month in months
    ]


def is_seasonal_outlier(index: float, high: float = 1.5, low: float = 0.5) -> bool:
    """True when a seasonal index is strictly above *high* or strictly below *low*."""
    return index > high or index < low


def seasonal_significance(index: float) -> float:
    return _clamp_score(abs(index - 1) / 2)


# ---------------------------------------------------------------------------
# Geographic clusters
# ---------------------------------------------------------------------------


def _neighbours(points: list[Coordinates], eps_km: float) -> list[list[int]]:
    """Indices within *eps_km* of each point, the point itself included."""
    lat_window = eps_km / KM_PER_DEGREE
    result: list[list[int]] = []
    for here in points:
        near = []
        for j, there in enumerate(points):
            # Cheap latitude cut before the great-circle distance.
            if abs(here.latitude - there.latitude) > lat_window:
                continue
            if haversine_km(here.latitude, here.longitude, there.latitude, there.longitude) <= eps_km:
                near.append(j)
        result.append(near)
    return result


def _summarise(members: list[Report]) -> GeographicCluster:
    center = Coordinates(
        latitude=fmean(r.coordinates.latitude for r in members),
        longitude=fmean(r.coordinates.longitude for r in members),
    )
    radius_km = max(
        haversine_km(center.latitude, center.longitude, r.coordinates.latitude, r.coordinates.longitude)
        for r in members
    )
    area = math.pi * radius_km**2
    dates = [r.event_date for r in members if r.event_date is not None]
    return GeographicCluster(
        report_ids=tuple(sorted(r.id for r in members)),
        center=center,
        radius_km=radius_km,
        density=len(members) / area if area > 0 else 0.0,
        categories=tuple(sorted({r.category for r in members})),
        first_date=min(dates) if dates else None,
        last_date=max(dates) if dates else None,
    )


def cluster_reports(reports: Iterable[Report], eps_km: float, min_points: int) -> list[GeographicCluster]:
    """Group geolocated reports with DBSCAN.

    A report with at least *min_points* reports (itself included) within
    *eps_km* is a core point; clusters grow through core points and pick
    up border points on the way.  Everything else is noise.  Reports
    without coordinates are ignored.
    """
    located = [report for report in reports if report.coordinates is not None]
    neighbours = _neighbours([report.coordinates for report in located], eps_km)
    labels: list[int | None] = [None] * len(located)
    cluster_id = 0

    for i in range(len(located)):
        if labels[i] is not None:
            continue
        if len(neighbours[i]) < min_points:
            labels[i] = _NOISE
            continue

        labels[i] = cluster_id
        queue = deque(neighbours[i])
        while queue:
            j = queue.popleft()
            if labels[j] == _NOISE:
                labels[j] = cluster_id
                continue
            if labels[j] is not None:
                continue
            labels[j] = cluster_id
            if len(neighbours[j]) >= min_points:
                queue.extend(neighbours[j])
        cluster_id += 1

    clusters = []
    for label in range(cluster_id):
        members = [report for report, assigned in zip(located, labels) if assigned == label]
        clusters.append(_summarise(members))
    return clusters


def cluster_confidence(cluster: GeographicCluster) -> float:
    """Size and density, weighted 0.6 / 0.4."""
    return _clamp_score(
        min(cluster.report_count / 20, 1.0) * 0.6 + min(cluster.density / 10, 1.0) * 0.4
    )


def cluster_significance(cluster: GeographicCluster) -> float:
    """Size and category spread, weighted 0.7 / 0.3."""
    return _clamp_score(
        min(cluster.report_count / 50, 1.0) * 0.7 + min(len(cluster.categories) / 5, 1.0) * 0.3
    )


def cluster_status(last_date: date | None, today: date) -> PatternStatus:
    """Lifecycle from the age of the newest report in the cluster."""
    if last_date is None:
        return PatternStatus.HISTORICAL
    age_days = (today - last_date).days
    if age_days < 7:
        return PatternStatus.EMERGING
    if age_days < 30:
        return PatternStatus.ACTIVE
    if age_days < 90:
        return PatternStatus.DECLINING
    return PatternStatus.HISTORICAL


def _nearest_pattern(
    center: Coordinates,
    patterns: list[DetectedPattern],
    radius_km: float,
) -> DetectedPattern | None:
    best: DetectedPattern | None = None
    best_distance = radius_km
    for pattern in patterns:
        if pattern.center is None:
            continue
        distance = haversine_km(
            center.latitude, center.longitude, pattern.center.latitude, pattern.center.longitude
        )
        if distance <= best_distance:
            best, best_distance = pattern, distance
    return best


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class PatternDetectionService:
    """Runs the pattern detectors and keeps the pattern table current."""

    def __init__(
        self,
        store: IReportStore,
        settings: PatternSettings,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._store = store
        self._settings = settings
        self._clock = clock

    async def run(self, run_type: str = "full") -> PatternRunResult:
        """Execute one analysis run and return what it did."""
        start = time.perf_counter()
        run_id = await self._store.start_pattern_run(run_type, self._clock())
        with run_context("pattern_analysis", run_id=run_id):
            return await self._run(run_id, run_type, start)

    async def _run(self, run_id: int, run_type: str, start: float) -> PatternRunResult:
        _logger.info("pattern_analysis_started", run_id=run_id, run_type=run_type)

        try:
            reports_analyzed = await self._store.count_approved_reports()
            counts = PatternCounts()
            for step, detector in (
                ("geographic_clusters", self.detect_geographic_clusters),
                ("temporal_anomalies", self.detect_temporal_anomalies),
                ("seasonal_patterns", self.detect_seasonal_patterns),
            ):
                counts = counts + await self._run_step(step, detector)
            archived = await self.archive_stale_patterns()
        except Exception as exc:
            _logger.error(
                "pattern_analysis_failed",
                run_id=run_id,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            await self._store.fail_pattern_run(run_id, self._clock(), str(exc))
            raise

        result = PatternRunResult(
            run_id=run_id,
            reports_analyzed=reports_analyzed,
            patterns_detected=counts.detected,
            patterns_updated=counts.updated,
            patterns_archived=archived,
            failed_steps=counts.failed_steps,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        await self._store.complete_pattern_run(result, self._clock())
        _logger.info("pattern_analysis_complete", **result.model_dump())
        return result

    async def _run_step(
        self,
        step: str,
        detector: Callable[[], Awaitable[PatternCounts]],
    ) -> PatternCounts:
        try:
            counts = await detector()
        except CorrelationEngineError as exc:
            _logger.error(
                "pattern_step_failed",
                step=step,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return PatternCounts(failed_steps=1)
        _logger.debug("pattern_step_complete", step=step, detected=counts.detected, updated=counts.updated)
        return counts

    async def _save(self, pattern: DetectedPattern) -> PatternCounts:
        await self._store.save_pattern(pattern, self._clock())
        if pattern.id is None:
            return PatternCounts(detected=1)
        return PatternCounts(updated=1)

    async def detect_geographic_clusters(self) -> PatternCounts:
        """Cluster recent geolocated reports and upsert one pattern per cluster.

        A cluster updates the nearest ACTIVE or EMERGING cluster pattern
        whose centre lies within half the clustering radius; each stored
        pattern is matched at most once per run.
        """
        settings = self._settings
        today = self._clock().date()
        reports = await self._store.find_geolocated_reports_since(
            today - timedelta(days=settings.cluster_days_back)
        )
        clusters = cluster_reports(reports, settings.cluster_eps_km, settings.cluster_min_points)
        if not clusters:
            return PatternCounts()

        unclaimed = await self._store.find_patterns(
            PatternType.GEOGRAPHIC_CLUSTER,
            (PatternStatus.ACTIVE, PatternStatus.EMERGING),
        )
        counts = PatternCounts()
        for cluster in clusters:
            match = _nearest_pattern(cluster.center, unclaimed, settings.cluster_eps_km / 2)
            if match is not None:
                unclaimed.remove(match)
            counts = counts + await self._save(
                DetectedPattern(
                    id=match.id if match else None,
                    pattern_type=PatternType.GEOGRAPHIC_CLUSTER,
                    status=cluster_status(cluster.last_date, today),
                    confidence_score=cluster_confidence(cluster),
                    significance_score=cluster_significance(cluster),
                    report_count=cluster.report_count,
                    pattern_start_date=cluster.first_date,
                    pattern_end_date=cluster.last_date,
                    center=cluster.center,
                    radius_km=round(cluster.radius_km, 3),
                    metadata={"density": round(cluster.density, _SCORE_DIGITS)},
                    categories=cluster.categories,
                    report_ids=cluster.report_ids,
                )
            )
        return counts

    async def detect_temporal_anomalies(self) -> PatternCounts:
        """Upsert a pattern for each anomalous week, keyed by its start date."""
        today = self._clock().date()
        weeks = await self._store.weekly_report_counts(today - timedelta(weeks=self._settings.weeks_back))
        anomalies = find_anomalous_weeks(weeks, self._settings.zscore_threshold)
        if not anomalies:
            return PatternCounts()

        existing = {
            pattern.pattern_start_date: pattern
            for pattern in await self._store.find_patterns(PatternType.TEMPORAL_ANOMALY)
        }
        counts = PatternCounts()
        for anomaly in anomalies:
            week = anomaly.week
            previous = existing.get(week.week_start)
            counts = counts + await self._save(
                DetectedPattern(
                    id=previous.id if previous else None,
                    pattern_type=PatternType.TEMPORAL_ANOMALY,
                    confidence_score=temporal_confidence(anomaly.z_score),
                    significance_score=temporal_significance(week.report_count),
                    report_count=week.report_count,
                    pattern_start_date=week.week_start,
                    pattern_end_date=week.week_start,
                    metadata={
                        "z_score": round(anomaly.z_score, 3),
                        "is_spike": anomaly.z_score > 0,
                        "mean_baseline": round(anomaly.mean, 2),
                        "std_deviation": round(anomaly.std_deviation, 2),
                        "categories": week.categories,
                    },
                    categories=tuple(sorted(week.categories)),
                )
            )
        return counts

    async def detect_seasonal_patterns(self) -> PatternCounts:
        """Upsert a pattern for each month outside the seasonal bands, keyed by month."""
        settings = self._settings
        indexed = [
            (month, index)
            for month, index in seasonal_indices(await self._store.monthly_report_counts())
            if is_seasonal_outlier(index, settings.seasonal_high_index, settings.seasonal_low_index)
        ]
        if not indexed:
            return PatternCounts()

        existing = {
            pattern.metadata.get("month"): pattern
            for pattern in await self._store.find_patterns(PatternType.SEASONAL_PATTERN)
        }
        counts = PatternCounts()
        for month, index in indexed:
            previous = existing.get(month.month)
            counts = counts + await self._save(
                DetectedPattern(
                    id=previous.id if previous else None,
                    pattern_type=PatternType.SEASONAL_PATTERN,
                    confidence_score=0.8,
                    significance_score=seasonal_significance(index),
                    report_count=month.report_count,
                    metadata={
                        "month": month.month,
                        "month_name": calendar.month_name[month.month],
                        "seasonal_index": round(index, 3),
                        "is_peak": index > 1,
                        "top_category": month.top_category,
                    },
                    categories=(month.top_category,) if month.top_category else (),
                )
            )
        return counts

    async def archive_stale_patterns(self) -> int:
        """Move ACTIVE patterns not updated within ``stale_after_days`` to HISTORICAL."""
        cutoff = self._clock() - timedelta(days=self._settings.stale_after_days)
        archived = await self._store.archive_stale_patterns(cutoff)
        if archived:
            _logger.info("patterns_archived", count=archived, updated_before=cutoff.isoformat())
        return archived

    async def trending_patterns(self, limit: int) -> list[DetectedPattern]:
        """Return the most significant ACTIVE and EMERGING patterns."""
        return await self._store.get_trending_patterns(limit)
