"""Domain models for the correlation engine.

Re-exports every public model so callers can write
``from correlation_engine.models import Report``.

    - report.py      -- Report, Coordinates, ReportStatus
    - connection.py  -- Candidate, ScoredConnection, Connection,
                        ConnectedReport, BatchStats, BatchRun
    - pattern.py     -- DetectedPattern, PatternType, PatternStatus,
                        WeeklyCount, MonthlyCount, GeographicCluster,
                        PatternCounts, PatternRunResult
"""

from __future__ import annotations

from correlation_engine.models.connection import (
    BatchRun,
    BatchStats,
    Candidate,
    ConnectedReport,
    Connection,
    ConnectionKind,
    ScoredConnection,
)
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
from correlation_engine.models.report import (
    KNOWN_CATEGORIES,
    Coordinates,
    Report,
    ReportStatus,
)

__all__ = [
    "BatchRun",
    "BatchStats",
    "Candidate",
    "ConnectedReport",
    "Connection",
    "ConnectionKind",
    "Coordinates",
    "DetectedPattern",
    "GeographicCluster",
    "KNOWN_CATEGORIES",
    "MonthlyCount",
    "PatternCounts",
    "PatternRunResult",
    "PatternStatus",
    "PatternType",
    "Report",
    "ReportStatus",
    "ScoredConnection",
    "WeeklyCount",
]
