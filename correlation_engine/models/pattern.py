"""Pattern models: aggregate signals detected across many reports.

Where a connection relates two reports, a pattern summarises a group:

    GEOGRAPHIC_CLUSTER  -- a dense spatial group of recent reports
    TEMPORAL_ANOMALY    -- a week with an unusual number of reports
    SEASONAL_PATTERN    -- a calendar month well above or below average

``WeeklyCount`` and ``MonthlyCount`` are the aggregates the store hands
to the detectors; ``DetectedPattern`` is the persisted result.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from correlation_engine.models.report import Coordinates


class PatternType(str, Enum):
    GEOGRAPHIC_CLUSTER = "geographic_cluster"
    TEMPORAL_ANOMALY = "temporal_anomaly"
    SEASONAL_PATTERN = "seasonal_pattern"


class PatternStatus(str, Enum):
    """Lifecycle of a detected pattern.  HISTORICAL patterns are archived."""

    EMERGING = "emerging"
    ACTIVE = "active"
    DECLINING = "declining"
    HISTORICAL = "historical"


class WeeklyCount(BaseModel):
    """Approved reports whose event date falls in one Monday-start week."""

    model_config = ConfigDict(frozen=True)

    week_start: date
    report_count: int = Field(ge=0)
    categories: dict[str, int] = Field(default_factory=dict)


class MonthlyCount(BaseModel):
    """Approved reports per calendar month, pooled across years."""

    model_config = ConfigDict(frozen=True)

    month: int = Field(ge=1, le=12)
    report_count: int = Field(ge=0)
    top_category: str | None = None


class GeographicCluster(BaseModel):
    """One density-connected group of geolocated reports."""

    model_config = ConfigDict(frozen=True)

    report_ids: tuple[str, ...]
    center: Coordinates
    radius_km: float = Field(ge=0.0)
    # Reports per square kilometre of the bounding circle; 0 when it has no area.
    density: float = Field(ge=0.0)
    categories: tuple[str, ...] = ()
    first_date: date | None = None
    last_date: date | None = None

    @property
    def report_count(self) -> int:
        return len(self.report_ids)


class DetectedPattern(BaseModel):
    """A stored pattern row."""

    model_config = ConfigDict(frozen=True)

    id: int | None = None
    pattern_type: PatternType
    status: PatternStatus = PatternStatus.ACTIVE
    confidence_score: float = Field(ge=0.0, le=1.0)
    significance_score: float = Field(ge=0.0, le=1.0)
    report_count: int = Field(default=0, ge=0)
    pattern_start_date: date | None = None
    pattern_end_date: date | None = None
    center: Coordinates | None = None
    radius_km: float | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    categories: tuple[str, ...] = ()
    # Member reports; only geographic clusters link individual reports.
    report_ids: tuple[str, ...] = ()
    first_detected_at: datetime | None = None
    last_updated_at: datetime | None = None


class PatternCounts(BaseModel):
    """New and updated patterns from one detector, summed with ``+``."""

    model_config = ConfigDict(frozen=True)

    detected: int = Field(default=0, ge=0)
    updated: int = Field(default=0, ge=0)
    failed_steps: int = Field(default=0, ge=0)

    def __add__(self, other: PatternCounts) -> PatternCounts:
        return PatternCounts(
            detected=self.detected + other.detected,
            updated=self.updated + other.updated,
            failed_steps=self.failed_steps + other.failed_steps,
        )


class PatternRunResult(BaseModel):
    """What one pattern analysis run did."""

    model_config = ConfigDict(frozen=True)

    run_id: int
    reports_analyzed: int = Field(default=0, ge=0)
    patterns_detected: int = Field(default=0, ge=0)
    patterns_updated: int = Field(default=0, ge=0)
    patterns_archived: int = Field(default=0, ge=0)
    # Detectors whose store queries failed; their patterns are missing from this run.
    failed_steps: int = Field(default=0, ge=0)
    duration_ms: float = 0.0
