"""SQLite-backed report, connection and pattern store.

Persists reports, their tags, the derived connection set and detected
patterns (with a log of pattern analysis runs) to a local SQLite database
(``data/reports.db`` by default).  Uses ``aiosqlite`` for async I/O and
opens one connection per operation.

Timestamps are stored as UTC ISO-8601 strings with fixed precision and
dates as ``YYYY-MM-DD`` so that SQL string comparison orders them
correctly.  Any ``aiosqlite.Error`` is re-raised as :class:`StoreError`.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from correlation_engine.interfaces.report_store import IReportStore
from correlation_engine.models.connection import Connection, ConnectionKind
from correlation_engine.models.pattern import (
    DetectedPattern,
    MonthlyCount,
    PatternRunResult,
    PatternStatus,
    PatternType,
    WeeklyCount,
)
from correlation_engine.models.report import Coordinates, Report, ReportStatus
from correlation_engine.utils.errors import StoreError
from correlation_engine.utils.geo import BoundingBox

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/reports.db")
_PROVIDER_NAME = "sqlite_report_store"

_CREATE_REPORTS_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS reports (
    id               TEXT PRIMARY KEY,
    title            TEXT,
    slug             TEXT,
    category         TEXT NOT NULL,
    status           TEXT NOT NULL DEFAULT 'approved',
    location_name    TEXT,
    latitude         REAL,
    longitude        REAL,
    event_date       TEXT,
    created_at       TEXT NOT NULL,
    last_analyzed_at TEXT
);
"""

_CREATE_REPORT_TAGS_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS report_tags (
    report_id TEXT NOT NULL REFERENCES reports(id) ON DELETE CASCADE,
    tag       TEXT NOT NULL,
    PRIMARY KEY (report_id, tag)
);
"""

_CREATE_CONNECTIONS_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS report_connections (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    source_report_id    TEXT NOT NULL,
    target_report_id    TEXT NOT NULL,
    connection_type     TEXT NOT NULL,
    connection_strength REAL NOT NULL,
    explanation         TEXT NOT NULL,
    note                TEXT,
    created_at          TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
);
"""

_CREATE_PATTERNS_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS detected_patterns (
    id                 INTEGER PRIMARY KEY AUTOINCREMENT,
    pattern_type       TEXT NOT NULL,
    status             TEXT NOT NULL DEFAULT 'active',
    confidence_score   REAL NOT NULL CHECK (confidence_score BETWEEN 0 AND 1),
    significance_score REAL NOT NULL CHECK (significance_score BETWEEN 0 AND 1),
    report_count       INTEGER NOT NULL DEFAULT 0,
    pattern_start_date TEXT,
    pattern_end_date   TEXT,
    center_latitude    REAL,
    center_longitude   REAL,
    radius_km          REAL,
    metadata           TEXT NOT NULL DEFAULT '{}',
    categories         TEXT NOT NULL DEFAULT '[]',
    first_detected_at  TEXT NOT NULL,
    last_updated_at    TEXT NOT NULL
);
"""

_CREATE_PATTERN_REPORTS_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS pattern_reports (
    pattern_id INTEGER NOT NULL REFERENCES detected_patterns(id) ON DELETE CASCADE,
    report_id  TEXT NOT NULL,
    PRIMARY KEY (pattern_id, report_id)
);
"""

_CREATE_PATTERN_RUNS_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS pattern_analysis_runs (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    run_type          TEXT NOT NULL,
    status            TEXT NOT NULL DEFAULT 'running',
    started_at        TEXT NOT NULL,
    completed_at      TEXT,
    reports_analyzed  INTEGER NOT NULL DEFAULT 0,
    patterns_detected INTEGER NOT NULL DEFAULT 0,
    patterns_updated  INTEGER NOT NULL DEFAULT 0,
    patterns_archived INTEGER NOT NULL DEFAULT 0,
    error_message     TEXT
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_reports_status_created ON reports(status, created_at);",
    "CREATE INDEX IF NOT EXISTS idx_reports_location ON reports(latitude, longitude);",
    "CREATE INDEX IF NOT EXISTS idx_reports_category_date ON reports(category, event_date);",
    "CREATE INDEX IF NOT EXISTS idx_report_tags_tag ON report_tags(tag);",
    "CREATE INDEX IF NOT EXISTS idx_connections_source ON report_connections(source_report_id);",
    "CREATE INDEX IF NOT EXISTS idx_connections_target ON report_connections(target_report_id);",
    "CREATE INDEX IF NOT EXISTS idx_patterns_type_status ON detected_patterns(pattern_type, status);",
    "CREATE INDEX IF NOT EXISTS idx_pattern_reports_report ON pattern_reports(report_id);",
]

_REPORT_COLUMNS = (
    "r.id, r.title, r.slug, r.category, r.status, r.location_name, r.latitude, "
    "r.longitude, r.event_date, r.created_at, r.last_analyzed_at"
)

_SELECT_DUE_SQL = f"""\
SELECT {_REPORT_COLUMNS}
FROM reports r
WHERE r.status = 'approved'
  AND (r.last_analyzed_at IS NULL OR r.last_analyzed_at < ?)
ORDER BY r.created_at DESC, r.id
LIMIT ?;
"""

_SELECT_IN_BOX_SQL = f"""\
SELECT {_REPORT_COLUMNS}
FROM reports r
WHERE r.status = 'approved'
  AND r.id != ?
  AND r.latitude IS NOT NULL
  AND r.longitude IS NOT NULL
  AND r.latitude BETWEEN ? AND ?
  AND r.longitude BETWEEN ? AND ?
ORDER BY r.created_at DESC, r.id
LIMIT ?;
"""

_SELECT_IN_DATE_RANGE_SQL = f"""\
SELECT {_REPORT_COLUMNS}
FROM reports r
WHERE r.status = 'approved'
  AND r.id != ?
  AND r.category = ?
  AND r.event_date IS NOT NULL
  AND r.event_date BETWEEN ? AND ?
ORDER BY r.created_at DESC, r.id
LIMIT ?;
"""

_SELECT_SHARING_TAGS_SQL = """\
SELECT {columns}
FROM reports r
WHERE r.status = 'approved'
  AND r.id != ?
  AND r.category != ?
  AND r.id IN (SELECT report_id FROM report_tags WHERE tag IN ({placeholders}))
ORDER BY r.created_at DESC, r.id
LIMIT ?;
"""

_SELECT_RECENT_IN_CATEGORY_SQL = f"""\
SELECT {_REPORT_COLUMNS}
FROM reports r
WHERE r.status = 'approved'
  AND r.id != ?
  AND r.category = ?
ORDER BY r.created_at DESC, r.id
LIMIT ?;
"""

_UPSERT_REPORT_SQL = """\
INSERT INTO reports (
    id, title, slug, category, status, location_name, latitude, longitude,
    event_date, created_at, last_analyzed_at
)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(id) DO UPDATE SET
    title = excluded.title,
    slug = excluded.slug,
    category = excluded.category,
    status = excluded.status,
    location_name = excluded.location_name,
    latitude = excluded.latitude,
    longitude = excluded.longitude,
    event_date = excluded.event_date,
    created_at = excluded.created_at,
    last_analyzed_at = excluded.last_analyzed_at;
"""

_DELETE_CONNECTIONS_SQL = """\
DELETE FROM report_connections
WHERE source_report_id = ? OR target_report_id = ?;
"""

_INSERT_CONNECTION_SQL = """\
INSERT INTO report_connections (
    source_report_id, target_report_id, connection_type,
    connection_strength, explanation, note
)
VALUES (?, ?, ?, ?, ?, ?);
"""

_SELECT_CONNECTIONS_SQL = """\
SELECT id, source_report_id, target_report_id, connection_type,
       connection_strength, explanation, note, created_at
FROM report_connections
WHERE source_report_id = ? OR target_report_id = ?
ORDER BY connection_strength DESC, id
LIMIT ?;
"""

_SELECT_GEOLOCATED_SINCE_SQL = f"""\
SELECT {_REPORT_COLUMNS}
FROM reports r
WHERE r.status = 'approved'
  AND r.latitude IS NOT NULL
  AND r.longitude IS NOT NULL
  AND r.event_date IS NOT NULL
  AND r.event_date >= ?
ORDER BY r.event_date, r.id;
"""

# 'weekday 0' moves forward to Sunday (or stays on one); minus six days is that week's Monday.
_SELECT_WEEKLY_COUNTS_SQL = """\
SELECT date(event_date, 'weekday 0', '-6 days') AS week_start,
       category,
       COUNT(*) AS report_count
FROM reports
WHERE status = 'approved'
  AND event_date IS NOT NULL
  AND event_date >= ?
GROUP BY week_start, category
ORDER BY week_start, category;
"""

_SELECT_MONTHLY_COUNTS_SQL = """\
SELECT CAST(strftime('%m', event_date) AS INTEGER) AS month,
       category,
       COUNT(*) AS report_count
FROM reports
WHERE status = 'approved'
  AND event_date IS NOT NULL
GROUP BY month, category
ORDER BY month, category;
"""

_PATTERN_COLUMNS = (
    "id, pattern_type, status, confidence_score, significance_score, report_count, "
    "pattern_start_date, pattern_end_date, center_latitude, center_longitude, radius_km, "
    "metadata, categories, first_detected_at, last_updated_at"
)

_INSERT_PATTERN_SQL = """\
INSERT INTO detected_patterns (
    pattern_type, status, confidence_score, significance_score, report_count,
    pattern_start_date, pattern_end_date, center_latitude, center_longitude,
    radius_km, metadata, categories, first_detected_at, last_updated_at
)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
"""

_UPDATE_PATTERN_SQL = """\
UPDATE detected_patterns SET
    pattern_type = ?,
    status = ?,
    confidence_score = ?,
    significance_score = ?,
    report_count = ?,
    pattern_start_date = ?,
    pattern_end_date = ?,
    center_latitude = ?,
    center_longitude = ?,
    radius_km = ?,
    metadata = ?,
    categories = ?,
    last_updated_at = ?
WHERE id = ?;
"""

_ARCHIVE_STALE_PATTERNS_SQL = """\
UPDATE detected_patterns
SET status = 'historical'
WHERE status = 'active'
  AND last_updated_at < ?;
"""

_SELECT_TRENDING_PATTERNS_SQL = f"""\
SELECT {_PATTERN_COLUMNS}
FROM detected_patterns
WHERE status IN ('active', 'emerging')
ORDER BY significance_score DESC, last_updated_at DESC, id
LIMIT ?;
"""

_INSERT_PATTERN_RUN_SQL = """\
INSERT INTO pattern_analysis_runs (run_type, status, started_at)
VALUES (?, 'running', ?);
"""

_COMPLETE_PATTERN_RUN_SQL = """\
UPDATE pattern_analysis_runs SET
    status = 'completed',
    completed_at = ?,
    reports_analyzed = ?,
    patterns_detected = ?,
    patterns_updated = ?,
    patterns_archived = ?
WHERE id = ?;
"""

_FAIL_PATTERN_RUN_SQL = """\
UPDATE pattern_analysis_runs SET
    status = 'failed',
    completed_at = ?,
    error_message = ?
WHERE id = ?;
"""


def _to_iso_timestamp(value: datetime) -> str:
    """UTC ISO-8601 with microseconds; naive datetimes are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class SQLiteReportStore(IReportStore):
    """SQLite-backed report and connection persistence."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        """Open a connection with row access by name and foreign keys on."""
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                db.row_factory = aiosqlite.Row
                await db.execute("PRAGMA foreign_keys = ON;")
                yield db
        except aiosqlite.Error as exc:
            raise StoreError(str(exc), provider_name=_PROVIDER_NAME) from exc

    async def initialize(self) -> None:
        """Create the report, connection and pattern tables with their indices."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with self._connect() as db:
            await db.execute(_CREATE_REPORTS_TABLE_SQL)
            await db.execute(_CREATE_REPORT_TAGS_TABLE_SQL)
            await db.execute(_CREATE_CONNECTIONS_TABLE_SQL)
            await db.execute(_CREATE_PATTERNS_TABLE_SQL)
            await db.execute(_CREATE_PATTERN_REPORTS_TABLE_SQL)
            await db.execute(_CREATE_PATTERN_RUNS_TABLE_SQL)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("report_store_initialized", path=str(self._db_path))

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    async def _hydrate(self, db: aiosqlite.Connection, rows: list[aiosqlite.Row]) -> list[Report]:
        """Turn report rows into Report models, attaching each report's tags."""
        if not rows:
            return []

        ids = [row["id"] for row in rows]
        placeholders = ", ".join("?" for _ in ids)
        cursor = await db.execute(
            f"SELECT report_id, tag FROM report_tags WHERE report_id IN ({placeholders});",
            ids,
        )
        tags_by_report: dict[str, set[str]] = {}
        for tag_row in await cursor.fetchall():
            tags_by_report.setdefault(tag_row["report_id"], set()).add(tag_row["tag"])

        reports: list[Report] = []
        for row in rows:
            coordinates = None
            if row["latitude"] is not None and row["longitude"] is not None:
                coordinates = Coordinates(latitude=row["latitude"], longitude=row["longitude"])
            reports.append(
                Report(
                    id=row["id"],
                    title=row["title"],
                    slug=row["slug"],
                    category=row["category"],
                    status=ReportStatus(row["status"]),
                    location_name=row["location_name"],
                    coordinates=coordinates,
                    event_date=date.fromisoformat(row["event_date"]) if row["event_date"] else None,
                    tags=frozenset(tags_by_report.get(row["id"], ())),
                    created_at=_parse_timestamp(row["created_at"]),
                    last_analyzed_at=_parse_timestamp(row["last_analyzed_at"]),
                )
            )
        return reports

    async def _select_reports(self, query: str, params: list[Any]) -> list[Report]:
        async with self._connect() as db:
            cursor = await db.execute(query, params)
            rows = await cursor.fetchall()
            return await self._hydrate(db, list(rows))

    @staticmethod
    def _row_to_connection(row: aiosqlite.Row) -> Connection:
        return Connection(
            id=row["id"],
            source_id=row["source_report_id"],
            target_id=row["target_report_id"],
            kind=ConnectionKind(row["connection_type"]),
            strength=row["connection_strength"],
            explanation=row["explanation"],
            note=row["note"],
            created_at=_parse_timestamp(row["created_at"]),
        )

    # ------------------------------------------------------------------
    # Batch selection and candidate queries
    # ------------------------------------------------------------------

    async def fetch_reports_due_for_analysis(
        self,
        analyzed_before: datetime,
        limit: int,
    ) -> list[Report]:
        """Return approved reports never analyzed or analyzed before the cutoff."""
        return await self._select_reports(
            _SELECT_DUE_SQL,
            [_to_iso_timestamp(analyzed_before), limit],
        )

    async def find_reports_in_box(
        self,
        box: BoundingBox,
        exclude_id: str,
        limit: int,
    ) -> list[Report]:
        """Return approved, geolocated reports inside the box."""
        return await self._select_reports(
            _SELECT_IN_BOX_SQL,
            [
                exclude_id,
                box.min_latitude,
                box.max_latitude,
                box.min_longitude,
                box.max_longitude,
                limit,
            ],
        )

    async def find_reports_in_date_range(
        self,
        category: str,
        start: date,
        end: date,
        exclude_id: str,
        limit: int,
    ) -> list[Report]:
        """Return approved same-category reports with an event date in range."""
        return await self._select_reports(
            _SELECT_IN_DATE_RANGE_SQL,
            [exclude_id, category, start.isoformat(), end.isoformat(), limit],
        )

    async def find_reports_sharing_tags(
        self,
        tags: frozenset[str],
        exclude_category: str,
        exclude_id: str,
        limit: int,
    ) -> list[Report]:
        """Return approved other-category reports sharing at least one tag."""
        if not tags:
            return []
        ordered_tags = sorted(tags)
        query = _SELECT_SHARING_TAGS_SQL.format(
            columns=_REPORT_COLUMNS,
            placeholders=", ".join("?" for _ in ordered_tags),
        )
        return await self._select_reports(
            query,
            [exclude_id, exclude_category, *ordered_tags, limit],
        )

    async def find_recent_in_category(
        self,
        category: str,
        exclude_id: str,
        limit: int,
    ) -> list[Report]:
        """Return the newest approved reports of a category."""
        return await self._select_reports(
            _SELECT_RECENT_IN_CATEGORY_SQL,
            [exclude_id, category, limit],
        )

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    async def replace_connections(
        self,
        report_id: str,
        connections: list[Connection],
    ) -> int:
        """Delete every connection touching the report and insert the new set."""
        rows = [
            (
                conn.source_id,
                conn.target_id,
                conn.kind.value,
                conn.strength,
                conn.explanation,
                conn.note,
            )
            for conn in connections
        ]
        async with self._connect() as db:
            try:
                cursor = await db.execute(_DELETE_CONNECTIONS_SQL, (report_id, report_id))
                deleted = cursor.rowcount
                if rows:
                    await db.executemany(_INSERT_CONNECTION_SQL, rows)
                await db.commit()
            except aiosqlite.Error:
                await db.rollback()
                raise

        logger.debug(
            "connections_replaced",
            report_id=report_id,
            deleted=deleted,
            inserted=len(rows),
        )
        return len(rows)

    async def mark_analyzed(self, report_id: str, analyzed_at: datetime) -> None:
        """Stamp last_analyzed_at on one report."""
        async with self._connect() as db:
            cursor = await db.execute(
                "UPDATE reports SET last_analyzed_at = ? WHERE id = ?;",
                (_to_iso_timestamp(analyzed_at), report_id),
            )
            await db.commit()
            updated = cursor.rowcount
        if updated == 0:
            raise StoreError(f"No report with id {report_id!r}", provider_name=_PROVIDER_NAME)

    async def get_connections(self, report_id: str, limit: int) -> list[Connection]:
        """Return connections touching the report, strongest first."""
        async with self._connect() as db:
            cursor = await db.execute(_SELECT_CONNECTIONS_SQL, (report_id, report_id, limit))
            rows = await cursor.fetchall()
        return [self._row_to_connection(row) for row in rows]

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    async def get_report(self, report_id: str) -> Report | None:
        """Return one report by id, or None."""
        reports = await self.get_reports([report_id])
        return reports[0] if reports else None

    async def get_reports(self, report_ids: list[str]) -> list[Report]:
        """Return the reports with the given ids."""
        if not report_ids:
            return []
        placeholders = ", ".join("?" for _ in report_ids)
        return await self._select_reports(
            f"SELECT {_REPORT_COLUMNS} FROM reports r WHERE r.id IN ({placeholders});",
            list(report_ids),
        )

    async def upsert_reports(self, reports: list[Report]) -> int:
        """Insert or update reports and rewrite their tag rows."""
        now = datetime.now(tz=timezone.utc)
        async with self._connect() as db:
            try:
                for report in reports:
                    coords = report.coordinates
                    await db.execute(
                        _UPSERT_REPORT_SQL,
                        (
                            report.id,
                            report.title,
                            report.slug,
                            report.category,
                            report.status.value,
                            report.location_name,
                            coords.latitude if coords else None,
                            coords.longitude if coords else None,
                            report.event_date.isoformat() if report.event_date else None,
                            _to_iso_timestamp(report.created_at or now),
                            _to_iso_timestamp(report.last_analyzed_at)
                            if report.last_analyzed_at
                            else None,
                        ),
                    )
                    await db.execute("DELETE FROM report_tags WHERE report_id = ?;", (report.id,))
                    if report.tags:
                        await db.executemany(
                            "INSERT INTO report_tags (report_id, tag) VALUES (?, ?);",
                            [(report.id, tag) for tag in sorted(report.tags)],
                        )
                await db.commit()
            except aiosqlite.Error:
                await db.rollback()
                raise

        logger.info("reports_upserted", count=len(reports))
        return len(reports)

    # ------------------------------------------------------------------
    # Pattern analysis
    # ------------------------------------------------------------------

    async def count_approved_reports(self) -> int:
        """Return the number of approved reports."""
        async with self._connect() as db:
            cursor = await db.execute("SELECT COUNT(*) FROM reports WHERE status = 'approved';")
            row = await cursor.fetchone()
        return int(row[0])

    async def find_geolocated_reports_since(self, since: date) -> list[Report]:
        """Return approved, geolocated reports with an event date on or after *since*."""
        return await self._select_reports(_SELECT_GEOLOCATED_SINCE_SQL, [since.isoformat()])

    async def weekly_report_counts(self, since: date) -> list[WeeklyCount]:
        """Count approved reports per Monday-start week, oldest week first."""
        async with self._connect() as db:
            cursor = await db.execute(_SELECT_WEEKLY_COUNTS_SQL, (since.isoformat(),))
            rows = await cursor.fetchall()

        by_week: dict[str, dict[str, int]] = {}
        for row in rows:
            by_week.setdefault(row["week_start"], {})[row["category"]] = row["report_count"]
        return [
            WeeklyCount(
                week_start=date.fromisoformat(week_start),
                report_count=sum(categories.values()),
                categories=categories,
            )
            for week_start, categories in by_week.items()
        ]

    async def monthly_report_counts(self) -> list[MonthlyCount]:
        """Count approved reports per calendar month with the month's top category."""
        async with self._connect() as db:
            cursor = await db.execute(_SELECT_MONTHLY_COUNTS_SQL)
            rows = await cursor.fetchall()

        by_month: dict[int, dict[str, int]] = {}
        for row in rows:
            by_month.setdefault(row["month"], {})[row["category"]] = row["report_count"]

        counts: list[MonthlyCount] = []
        for month, categories in by_month.items():
            # Ties go to the alphabetically first category.
            top_category = min(categories, key=lambda name: (-categories[name], name))
            counts.append(
                MonthlyCount(
                    month=month,
                    report_count=sum(categories.values()),
                    top_category=top_category,
                )
            )
        return counts

    async def _attach_report_ids(
        self,
        db: aiosqlite.Connection,
        rows: list[aiosqlite.Row],
    ) -> list[DetectedPattern]:
        if not rows:
            return []

        ids = [row["id"] for row in rows]
        placeholders = ", ".join("?" for _ in ids)
        cursor = await db.execute(
            f"SELECT pattern_id, report_id FROM pattern_reports "
            f"WHERE pattern_id IN ({placeholders}) ORDER BY report_id;",
            ids,
        )
        links: dict[int, list[str]] = {}
        for link in await cursor.fetchall():
            links.setdefault(link["pattern_id"], []).append(link["report_id"])

        patterns: list[DetectedPattern] = []
        for row in rows:
            center = None
            if row["center_latitude"] is not None and row["center_longitude"] is not None:
                center = Coordinates(latitude=row["center_latitude"], longitude=row["center_longitude"])
            patterns.append(
                DetectedPattern(
                    id=row["id"],
                    pattern_type=PatternType(row["pattern_type"]),
                    status=PatternStatus(row["status"]),
                    confidence_score=row["confidence_score"],
                    significance_score=row["significance_score"],
                    report_count=row["report_count"],
                    pattern_start_date=date.fromisoformat(row["pattern_start_date"])
                    if row["pattern_start_date"]
                    else None,
                    pattern_end_date=date.fromisoformat(row["pattern_end_date"])
                    if row["pattern_end_date"]
                    else None,
                    center=center,
                    radius_km=row["radius_km"],
                    metadata=json.loads(row["metadata"]),
                    categories=tuple(json.loads(row["categories"])),
                    report_ids=tuple(links.get(row["id"], ())),
                    first_detected_at=_parse_timestamp(row["first_detected_at"]),
                    last_updated_at=_parse_timestamp(row["last_updated_at"]),
                )
            )
        return patterns

    async def find_patterns(
        self,
        pattern_type: PatternType,
        statuses: tuple[PatternStatus, ...] | None = None,
    ) -> list[DetectedPattern]:
        """Return stored patterns of one type, optionally filtered by status."""
        query = f"SELECT {_PATTERN_COLUMNS} FROM detected_patterns WHERE pattern_type = ?"
        params: list[Any] = [pattern_type.value]
        if statuses:
            query += f" AND status IN ({', '.join('?' for _ in statuses)})"
            params.extend(status.value for status in statuses)
        query += " ORDER BY id;"

        async with self._connect() as db:
            cursor = await db.execute(query, params)
            rows = await cursor.fetchall()
            return await self._attach_report_ids(db, list(rows))

    async def save_pattern(self, pattern: DetectedPattern, saved_at: datetime) -> int:
        """Insert or update a pattern and rewrite its report links."""
        stamp = _to_iso_timestamp(saved_at)
        center = pattern.center
        values = (
            pattern.pattern_type.value,
            pattern.status.value,
            pattern.confidence_score,
            pattern.significance_score,
            pattern.report_count,
            pattern.pattern_start_date.isoformat() if pattern.pattern_start_date else None,
            pattern.pattern_end_date.isoformat() if pattern.pattern_end_date else None,
            center.latitude if center else None,
            center.longitude if center else None,
            pattern.radius_km,
            json.dumps(pattern.metadata, sort_keys=True),
            json.dumps(list(pattern.categories)),
        )

        async with self._connect() as db:
            try:
                if pattern.id is None:
                    cursor = await db.execute(_INSERT_PATTERN_SQL, (*values, stamp, stamp))
                    pattern_id = cursor.lastrowid
                else:
                    cursor = await db.execute(_UPDATE_PATTERN_SQL, (*values, stamp, pattern.id))
                    if cursor.rowcount == 0:
                        raise StoreError(
                            f"No pattern with id {pattern.id}",
                            provider_name=_PROVIDER_NAME,
                        )
                    pattern_id = pattern.id

                await db.execute("DELETE FROM pattern_reports WHERE pattern_id = ?;", (pattern_id,))
                if pattern.report_ids:
                    await db.executemany(
                        "INSERT INTO pattern_reports (pattern_id, report_id) VALUES (?, ?);",
                        [(pattern_id, report_id) for report_id in sorted(set(pattern.report_ids))],
                    )
                await db.commit()
            except (aiosqlite.Error, StoreError):
                await db.rollback()
                raise

        logger.debug(
            "pattern_saved",
            pattern_id=pattern_id,
            pattern_type=pattern.pattern_type.value,
            inserted=pattern.id is None,
        )
        return pattern_id

    async def archive_stale_patterns(self, updated_before: datetime) -> int:
        """Move ACTIVE patterns not updated since the cutoff to HISTORICAL."""
        async with self._connect() as db:
            cursor = await db.execute(_ARCHIVE_STALE_PATTERNS_SQL, (_to_iso_timestamp(updated_before),))
            await db.commit()
            return cursor.rowcount

    async def get_trending_patterns(self, limit: int) -> list[DetectedPattern]:
        """Return ACTIVE and EMERGING patterns, most significant first."""
        async with self._connect() as db:
            cursor = await db.execute(_SELECT_TRENDING_PATTERNS_SQL, (limit,))
            rows = await cursor.fetchall()
            return await self._attach_report_ids(db, list(rows))

    async def start_pattern_run(self, run_type: str, started_at: datetime) -> int:
        """Insert a ``running`` analysis run and return its id."""
        async with self._connect() as db:
            cursor = await db.execute(_INSERT_PATTERN_RUN_SQL, (run_type, _to_iso_timestamp(started_at)))
            await db.commit()
            return cursor.lastrowid

    async def complete_pattern_run(self, result: PatternRunResult, completed_at: datetime) -> None:
        """Mark a run completed with its counts."""
        async with self._connect() as db:
            await db.execute(
                _COMPLETE_PATTERN_RUN_SQL,
                (
                    _to_iso_timestamp(completed_at),
                    result.reports_analyzed,
                    result.patterns_detected,
                    result.patterns_updated,
                    result.patterns_archived,
                    result.run_id,
                ),
            )
            await db.commit()

    async def fail_pattern_run(self, run_id: int, completed_at: datetime, error_message: str) -> None:
        """Mark a run failed."""
        async with self._connect() as db:
            await db.execute(
                _FAIL_PATTERN_RUN_SQL,
                (_to_iso_timestamp(completed_at), error_message, run_id),
            )
            await db.commit()

    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this provider."""
        return _PROVIDER_NAME
