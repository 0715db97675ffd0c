"""Connection models: candidates, scored links, stored rows, run statistics.

Data moves through the discovery pass in this order:

    Candidate          -- a neighbour report plus the strategy that found it
    ScoredConnection   -- a candidate after scoring (kind, strength, text)
    Connection         -- a persisted row in the connection store

``BatchStats`` is the aggregate a batch run returns.  It is an immutable
value; per-report results are merged with ``+`` instead of mutating a
shared counter.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from correlation_engine.models.report import Report


class ConnectionKind(str, Enum):
    """Candidate strategy and, after scoring, the kind of the connection."""

    GEOGRAPHIC = "geographic"
    TEMPORAL = "temporal"
    CROSS_CATEGORY = "cross_category"


class Candidate(BaseModel):
    """A report provisionally related to the report under analysis."""

    model_config = ConfigDict(frozen=True)

    report: Report
    strategy: ConnectionKind


class ScoredConnection(BaseModel):
    """A candidate that earned a positive strength from the scorer."""

    model_config = ConfigDict(frozen=True)

    target_id: str
    kind: ConnectionKind
    strength: float = Field(ge=0.0, le=1.0)
    explanation: str
    note: str | None = None


class Connection(BaseModel):
    """A stored, directional link from an analyzed report to a neighbour."""

    model_config = ConfigDict(frozen=True)

    id: int | None = None
    source_id: str
    target_id: str
    kind: ConnectionKind
    strength: float = Field(ge=0.0, le=1.0)
    explanation: str
    note: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_scored(cls, source_id: str, scored: ScoredConnection) -> Connection:
        return cls(
            source_id=source_id,
            target_id=scored.target_id,
            kind=scored.kind,
            strength=scored.strength,
            explanation=scored.explanation,
            note=scored.note,
        )


class ConnectedReport(BaseModel):
    """A connection as seen from one of its endpoints, for display."""

    model_config = ConfigDict(frozen=True)

    # Stored connection id, or "fallback_<report id>" for category matches.
    id: str
    connected_report_id: str
    connected_report_title: str | None = None
    connected_report_slug: str | None = None
    connected_report_category: str
    # A ConnectionKind value, or a display label for fallback matches.
    connection_type: str
    connection_strength: float = Field(ge=0.0, le=1.0)
    explanation: str
    note: str | None = None


class BatchStats(BaseModel):
    """Aggregate outcome of one batch run."""

    model_config = ConfigDict(frozen=True)

    processed: int = Field(default=0, ge=0)
    connections_created: int = Field(default=0, ge=0)
    errors: int = Field(default=0, ge=0)

    def __add__(self, other: BatchStats) -> BatchStats:
        return BatchStats(
            processed=self.processed + other.processed,
            connections_created=self.connections_created + other.connections_created,
            errors=self.errors + other.errors,
        )


class BatchRun(BaseModel):
    """What one invocation of the batch runner did."""

    model_config = ConfigDict(frozen=True)

    selected: int = Field(default=0, ge=0)
    # Selected but never started because the time budget ran out.
    skipped: int = Field(default=0, ge=0)
    stats: BatchStats = Field(default_factory=BatchStats)
    duration_ms: float = 0.0
