"""Abstract base class for report/connection persistence.

Defines the store contract the discovery pass consumes: filtered range
and equality queries with ordering and limits, delete-by-predicate, bulk
insert and single-field update.  No transaction ever spans more than one
analyzed report.  Pattern analysis adds aggregate counts and a small
table of detected patterns plus a log of analysis runs.

Implementations may use SQLite (local), PostgreSQL, or a hosted data
API; business logic only sees this interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date, datetime

from correlation_engine.models.connection import Connection
from correlation_engine.models.pattern import (
    DetectedPattern,
    MonthlyCount,
    PatternRunResult,
    PatternStatus,
    PatternType,
    WeeklyCount,
)
from correlation_engine.models.report import Report
from correlation_engine.utils.geo import BoundingBox


# Concrete implementation: SQLiteReportStore (correlation_engine/providers/store/).
class IReportStore(ABC):
    """Contract for report and connection persistence.

    All operations are async to support network-backed stores.  Every
    candidate query only ever returns APPROVED reports.
    """

    # -- Batch selection --------------------------------------------------

    @abstractmethod
    async def fetch_reports_due_for_analysis(
        self,
        analyzed_before: datetime,
        limit: int,
    ) -> list[Report]:
        """Return approved reports never analyzed or last analyzed before a cutoff.

        Parameters
        ----------
        analyzed_before:
            Reports whose ``last_analyzed_at`` is older than this are due.
        limit:
            Maximum number of reports to return.

        Returns
        -------
        list[Report]
            Newest ``created_at`` first.
        """

    # -- Candidate queries ------------------------------------------------

    @abstractmethod
    async def find_reports_in_box(
        self,
        box: BoundingBox,
        exclude_id: str,
        limit: int,
    ) -> list[Report]:
        """Return approved, geolocated reports inside *box*, other than *exclude_id*."""

    @abstractmethod
    async def find_reports_in_date_range(
        self,
        category: str,
        start: date,
        end: date,
        exclude_id: str,
        limit: int,
    ) -> list[Report]:
        """Return approved reports of *category* with ``start <= event_date <= end``."""

    @abstractmethod
    async def find_reports_sharing_tags(
        self,
        tags: frozenset[str],
        exclude_category: str,
        exclude_id: str,
        limit: int,
    ) -> list[Report]:
        """Return approved reports outside *exclude_category* with at least one tag in *tags*."""

    # -- Connection persistence -------------------------------------------

    @abstractmethod
    async def replace_connections(
        self,
        report_id: str,
        connections: list[Connection],
    ) -> int:
        """Atomically replace every connection touching *report_id*.

        Deletes all rows where *report_id* is the source or the target,
        then inserts *connections*, in a single transaction.

        Returns
        -------
        int
            Number of rows inserted.
        """

    @abstractmethod
    async def mark_analyzed(self, report_id: str, analyzed_at: datetime) -> None:
        """Set ``last_analyzed_at`` on one report."""

    @abstractmethod
    async def get_connections(self, report_id: str, limit: int) -> list[Connection]:
        """Return connections where *report_id* is source or target, strongest first."""

    # -- Reports ----------------------------------------------------------

    @abstractmethod
    async def get_report(self, report_id: str) -> Report | None:
        """Return one report by id, or ``None``."""

    @abstractmethod
    async def get_reports(self, report_ids: list[str]) -> list[Report]:
        """Return the reports with the given ids (missing ids are skipped)."""

    @abstractmethod
    async def find_recent_in_category(
        self,
        category: str,
        exclude_id: str,
        limit: int,
    ) -> list[Report]:
        """Return the newest approved reports of *category* other than *exclude_id*."""

    @abstractmethod
    async def upsert_reports(self, reports: list[Report]) -> int:
        """Insert or replace reports (with their tags).  Returns the count written."""

    # -- Pattern analysis -------------------------------------------------

    @abstractmethod
    async def count_approved_reports(self) -> int:
        """Return the number of approved reports."""

    @abstractmethod
    async def find_geolocated_reports_since(self, since: date) -> list[Report]:
        """Return approved, geolocated reports with ``event_date >= since``."""

    @abstractmethod
    async def weekly_report_counts(self, since: date) -> list[WeeklyCount]:
        """Count approved reports per Monday-start week of their event date.

        Only weeks on or after *since* that contain at least one report are
        returned, oldest first, with a per-category breakdown.
        """

    @abstractmethod
    async def monthly_report_counts(self) -> list[MonthlyCount]:
        """Count approved reports per calendar month of their event date, across all years."""

    @abstractmethod
    async def find_patterns(
        self,
        pattern_type: PatternType,
        statuses: tuple[PatternStatus, ...] | None = None,
    ) -> list[DetectedPattern]:
        """Return stored patterns of one type, optionally filtered by status."""

    @abstractmethod
    async def save_pattern(self, pattern: DetectedPattern, saved_at: datetime) -> int:
        """Insert a pattern (``id`` is None) or update the row with its id.

        ``last_updated_at`` is set to *saved_at*; on insert so is
        ``first_detected_at``.  The pattern's report links are rewritten.

        Returns
        -------
        int
            The pattern id.
        """

    @abstractmethod
    async def archive_stale_patterns(self, updated_before: datetime) -> int:
        """Mark ACTIVE patterns last updated before the cutoff HISTORICAL.  Returns the count."""

    @abstractmethod
    async def get_trending_patterns(self, limit: int) -> list[DetectedPattern]:
        """Return ACTIVE and EMERGING patterns, most significant first."""

    @abstractmethod
    async def start_pattern_run(self, run_type: str, started_at: datetime) -> int:
        """Record a pattern analysis run in the ``running`` state.  Returns its id."""

    @abstractmethod
    async def complete_pattern_run(self, result: PatternRunResult, completed_at: datetime) -> None:
        """Mark a run completed and store its counts."""

    @abstractmethod
    async def fail_pattern_run(self, run_id: int, completed_at: datetime, error_message: str) -> None:
        """Mark a run failed with the error that stopped it."""

    # -- Lifecycle --------------------------------------------------------

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables/indices if they don't exist.  Called at startup."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this provider."""
