"""Report domain models.

A report is one submitted account of an anomalous phenomenon.  From the
engine's point of view reports are read-mostly: the only field it ever
writes is ``last_analyzed_at``.

Optional fields mirror the candidate-search preconditions: a report
without ``coordinates`` never enters geographic search, one without
``event_date`` never enters temporal search, and one with no ``tags``
never enters cross-category search.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

# Phenomenon categories used by the reporting application.  Categories are
# stored as plain strings so unknown values still round-trip.
KNOWN_CATEGORIES: tuple[str, ...] = (
    "ufos_aliens",
    "cryptids",
    "ghosts_hauntings",
    "psychic_phenomena",
    "consciousness_practices",
    "psychological_experiences",
    "biological_factors",
    "perception_sensory",
    "religion_mythology",
    "esoteric_practices",
    "multi_disciplinary",
    "combination",
)


class ReportStatus(str, Enum):
    """Moderation state of a report.  Only APPROVED reports are analyzed."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Coordinates(BaseModel):
    """A WGS84 latitude/longitude pair in decimal degrees."""

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)


class Report(BaseModel):
    """A single phenomenon report."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    title: str | None = None
    slug: str | None = None
    category: str
    status: ReportStatus = ReportStatus.APPROVED
    location_name: str | None = None
    coordinates: Coordinates | None = None
    event_date: date | None = None
    tags: frozenset[str] = Field(default_factory=frozenset)
    created_at: datetime | None = None
    # None means the report has never been through a discovery pass.
    last_analyzed_at: datetime | None = None

    def shares_location_name(self, other: Report) -> bool:
        """True when both reports name the same place, ignoring case."""
        if not self.location_name or not other.location_name:
            return False
        return self.location_name.lower() == other.location_name.lower()
