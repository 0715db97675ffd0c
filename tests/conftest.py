"""Shared pytest fixtures for the correlation engine test suite."""

from __future__ import annotations

from collections.abc import Callable
from datetime import date, datetime, timezone
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from correlation_engine.config.settings import CorrelationSettings
from correlation_engine.interfaces.report_store import IReportStore
from correlation_engine.models.report import Coordinates, Report, ReportStatus
from correlation_engine.providers.store.sqlite_report_store import SQLiteReportStore

FIXED_NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)


def _make_report(
    report_id: str = "r-source",
    category: str = "ufos_aliens",
    *,
    latitude: float | None = None,
    longitude: float | None = None,
    event_date: date | None = None,
    tags: tuple[str, ...] | set[str] = (),
    location_name: str | None = None,
    status: ReportStatus = ReportStatus.APPROVED,
    title: str | None = None,
    created_at: datetime | None = None,
    last_analyzed_at: datetime | None = None,
) -> Report:
    coordinates = None
    if latitude is not None and longitude is not None:
        coordinates = Coordinates(latitude=latitude, longitude=longitude)
    return Report(
        id=report_id,
        title=title or f"Report {report_id}",
        slug=report_id,
        category=category,
        status=status,
        location_name=location_name,
        coordinates=coordinates,
        event_date=event_date,
        tags=frozenset(tags),
        created_at=created_at or FIXED_NOW,
        last_analyzed_at=last_analyzed_at,
    )


@pytest.fixture
def make_report() -> Callable[..., Report]:
    """Factory for Report models with sensible defaults."""
    return _make_report


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def correlation_settings() -> CorrelationSettings:
    """Production defaults."""
    return CorrelationSettings()


@pytest.fixture
def mock_store() -> MagicMock:
    """An IReportStore whose every query returns nothing."""
    store = MagicMock(spec=IReportStore)
    store.fetch_reports_due_for_analysis = AsyncMock(return_value=[])
    store.find_reports_in_box = AsyncMock(return_value=[])
    store.find_reports_in_date_range = AsyncMock(return_value=[])
    store.find_reports_sharing_tags = AsyncMock(return_value=[])
    store.find_recent_in_category = AsyncMock(return_value=[])
    store.replace_connections = AsyncMock(side_effect=lambda _rid, rows: len(rows))
    store.mark_analyzed = AsyncMock(return_value=None)
    store.get_connections = AsyncMock(return_value=[])
    store.get_report = AsyncMock(return_value=None)
    store.get_reports = AsyncMock(return_value=[])
    store.upsert_reports = AsyncMock(side_effect=lambda reports: len(reports))
    store.count_approved_reports = AsyncMock(return_value=0)
    store.find_geolocated_reports_since = AsyncMock(return_value=[])
    store.weekly_report_counts = AsyncMock(return_value=[])
    store.monthly_report_counts = AsyncMock(return_value=[])
    store.find_patterns = AsyncMock(return_value=[])
    store.save_pattern = AsyncMock(return_value=1)
    store.archive_stale_patterns = AsyncMock(return_value=0)
    store.get_trending_patterns = AsyncMock(return_value=[])
    store.start_pattern_run = AsyncMock(return_value=1)
    store.complete_pattern_run = AsyncMock(return_value=None)
    store.fail_pattern_run = AsyncMock(return_value=None)
    store.initialize = AsyncMock(return_value=None)
    store.get_provider_name = MagicMock(return_value="mock_store")
    return store


@pytest_asyncio.fixture
async def sqlite_store(tmp_path: Path) -> SQLiteReportStore:
    """An initialized SQLite store in a temp directory."""
    store = SQLiteReportStore(db_path=tmp_path / "reports.db")
    await store.initialize()
    return store
