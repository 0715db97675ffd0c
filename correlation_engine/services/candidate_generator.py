"""Candidate generation and deduplication for connection discovery.

Three independent strategies propose neighbours for a source report:

    geographic      -- inside a ~100 km box around the source's coordinates
    temporal        -- same category, event date within +/- 30 days
    cross_category  -- different category, at least one shared tag

A strategy whose precondition is missing (no coordinates, no event date,
no tags) contributes nothing; that is not an error.  Store failures are
not caught here, they fail the whole report.

``deduplicate_candidates`` merges the three lists in strategy priority
order.  Each neighbour keeps the tag of the first strategy that found it.

Design pattern: Service (stateless, receives dependencies via constructor).
"""

from __future__ import annotations

from datetime import timedelta
from typing import NamedTuple

import structlog

from correlation_engine.config.settings import CorrelationSettings
from correlation_engine.interfaces.report_store import IReportStore
from correlation_engine.models.connection import Candidate, ConnectionKind
from correlation_engine.models.report import Report
from correlation_engine.utils.geo import bounding_box

logger = structlog.get_logger(logger_name=__name__)


class CandidateLists(NamedTuple):
    """Raw per-strategy results, in dedup priority order."""

    geographic: list[Report]
    temporal: list[Report]
    cross_category: list[Report]


class CandidateGenerator:
    """Runs the three candidate strategies against the report store."""

    def __init__(self, store: IReportStore, settings: CorrelationSettings) -> None:
        self._store = store
        self._settings = settings

    async def geographic(self, report: Report) -> list[Report]:
        """Approved geolocated reports inside the search box around *report*."""
        if report.coordinates is None:
            return []
        box = bounding_box(
            report.coordinates.latitude,
            report.coordinates.longitude,
            self._settings.geographic_radius_km,
        )
        return await self._store.find_reports_in_box(
            box=box,
            exclude_id=report.id,
            limit=self._settings.geographic_limit,
        )

    async def temporal(self, report: Report) -> list[Report]:
        """Approved same-category reports with an event date near *report*'s."""
        if report.event_date is None:
            return []
        window = timedelta(days=self._settings.temporal_window_days)
        return await self._store.find_reports_in_date_range(
            category=report.category,
            start=report.event_date - window,
            end=report.event_date + window,
            exclude_id=report.id,
            limit=self._settings.temporal_limit,
        )

    async def cross_category(self, report: Report) -> list[Report]:
        """Approved reports of another category sharing at least one tag."""
        if not report.tags:
            return []
        return await self._store.find_reports_sharing_tags(
            tags=report.tags,
            exclude_category=report.category,
            exclude_id=report.id,
            limit=self._settings.cross_category_limit,
        )

    async def generate(self, report: Report) -> CandidateLists:
        """Run all three strategies for *report*."""
        lists = CandidateLists(
            geographic=await self.geographic(report),
            temporal=await self.temporal(report),
            cross_category=await self.cross_category(report),
        )
        logger.debug(
            "candidates_generated",
            report_id=report.id,
            geographic=len(lists.geographic),
            temporal=len(lists.temporal),
            cross_category=len(lists.cross_category),
        )
        return lists


def deduplicate_candidates(source_id: str, lists: CandidateLists) -> list[Candidate]:
    """Merge strategy results into unique candidates, first strategy wins.

    The seen-map is seeded with *source_id* so a report is never its own
    candidate.
    """
    seen: dict[str, Candidate | None] = {source_id: None}
    ordered = (
        (ConnectionKind.GEOGRAPHIC, lists.geographic),
        (ConnectionKind.TEMPORAL, lists.temporal),
        (ConnectionKind.CROSS_CATEGORY, lists.cross_category),
    )
    for strategy, reports in ordered:
        for candidate_report in reports:
            if candidate_report.id in seen:
                continue
            seen[candidate_report.id] = Candidate(report=candidate_report, strategy=strategy)

    return [candidate for candidate in seen.values() if candidate is not None]
