"""Integration tests for FastAPI API endpoints using TestClient.

The app is built by ``create_app`` with a temp SQLite database, so the
lifespan wiring, middleware and routes are exercised together.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from correlation_engine.config.settings import Settings
from correlation_engine.main import create_app
from correlation_engine.models.pattern import DetectedPattern, PatternStatus, PatternType
from correlation_engine.providers.store.sqlite_report_store import SQLiteReportStore
from correlation_engine.utils.errors import BatchError, StoreError

SECRET = "s3cret"
AUTH = {"Authorization": f"Bearer {SECRET}"}
TRIGGER = "/api/v1/cron/generate-connections"
PATTERNS_TRIGGER = "/api/v1/cron/analyze-patterns"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _settings(tmp_path: Path, **overrides) -> Settings:
    values = {
        "database_path": str(tmp_path / "reports.db"),
        "cron_secret": SECRET,
        "app_env": "production",
        "correlation_config_path": str(tmp_path / "no-config.yaml"),
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def _seed(db_path: str, reports) -> None:
    async def _load() -> None:
        store = SQLiteReportStore(db_path=db_path)
        await store.initialize()
        await store.upsert_reports(reports)

    asyncio.run(_load())


@pytest.fixture
def seeded_settings(tmp_path, make_report) -> Settings:
    settings = _settings(tmp_path)
    _seed(
        settings.database_path,
        [
            make_report("a", "cryptids", latitude=40.0, longitude=-75.0, title="Jersey Devil"),
            make_report("b", "cryptids", latitude=40.045, longitude=-75.0, title="Leeds Tracks"),
            make_report("c", "cryptids", title="Unplaced"),
        ],
    )
    return settings


# ---------------------------------------------------------------------------
# Trigger auth
# ---------------------------------------------------------------------------


class TestTriggerAuth:
    def test_missing_token(self, tmp_path) -> None:
        with TestClient(create_app(_settings(tmp_path))) as client:
            response = client.post(TRIGGER)
        assert response.status_code == 401
        assert response.json() == {"detail": "Unauthorized"}

    def test_wrong_token(self, tmp_path) -> None:
        with TestClient(create_app(_settings(tmp_path))) as client:
            response = client.post(TRIGGER, headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    def test_token_without_bearer_prefix(self, tmp_path) -> None:
        with TestClient(create_app(_settings(tmp_path))) as client:
            response = client.post(TRIGGER, headers={"Authorization": SECRET})
        assert response.status_code == 401

    def test_no_secret_outside_development_refused(self, tmp_path) -> None:
        with TestClient(create_app(_settings(tmp_path, cron_secret=""))) as client:
            response = client.post(TRIGGER, headers={"Authorization": "Bearer "})
        assert response.status_code == 401

    def test_no_secret_in_development_open(self, tmp_path) -> None:
        app = create_app(_settings(tmp_path, cron_secret="", app_env="development"))
        with TestClient(app) as client:
            response = client.post(TRIGGER)
        assert response.status_code == 200

    def test_get_not_allowed(self, tmp_path) -> None:
        with TestClient(create_app(_settings(tmp_path))) as client:
            response = client.get(TRIGGER, headers=AUTH)
        assert response.status_code == 405


# ---------------------------------------------------------------------------
# Trigger
# ---------------------------------------------------------------------------


class TestGenerateConnections:
    def test_empty_store(self, tmp_path) -> None:
        with TestClient(create_app(_settings(tmp_path))) as client:
            response = client.post(TRIGGER, headers=AUTH)

        assert response.status_code == 200
        assert response.json() == {
            "message": "No reports to process",
            "stats": {"processed": 0, "connections_created": 0, "errors": 0},
        }

    def test_batch_summary(self, seeded_settings) -> None:
        with TestClient(create_app(seeded_settings)) as client:
            first = client.post(TRIGGER, headers=AUTH)
            second = client.post(TRIGGER, headers=AUTH)

        assert first.status_code == 200
        assert first.json() == {
            "message": "Connection generation complete",
            "stats": {"processed": 3, "connections_created": 2, "errors": 0},
        }
        # Everything was just analyzed, so the cooldown keeps it out.
        assert second.json()["message"] == "No reports to process"

    def test_selection_failure_is_500(self, tmp_path) -> None:
        app = create_app(_settings(tmp_path))
        with TestClient(app) as client:
            runner = MagicMock()
            runner.run = AsyncMock(side_effect=BatchError("Failed to select reports for analysis"))
            app.state.batch_runner = runner

            response = client.post(TRIGGER, headers=AUTH)

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error", "detail": None}


# ---------------------------------------------------------------------------
# Connections read path
# ---------------------------------------------------------------------------


class TestReportConnections:
    def test_after_batch(self, seeded_settings) -> None:
        with TestClient(create_app(seeded_settings)) as client:
            client.post(TRIGGER, headers=AUTH)
            response = client.get("/api/v1/reports/a/connections")

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        [conn] = body["connections"]
        assert conn["connected_report_id"] == "b"
        assert conn["connected_report_title"] == "Leeds Tracks"
        assert conn["connection_type"] == "geographic"
        assert conn["connection_strength"] == 0.9
        assert "5km" in conn["explanation"]

    def test_fallback_to_same_category(self, seeded_settings) -> None:
        with TestClient(create_app(seeded_settings)) as client:
            response = client.get("/api/v1/reports/c/connections")

        body = response.json()
        assert response.status_code == 200
        assert sorted(row["connected_report_id"] for row in body["connections"]) == ["a", "b"]
        for row in body["connections"]:
            assert row["id"] == f"fallback_{row['connected_report_id']}"
            assert row["connection_type"] == "Same Category"
            assert row["connection_strength"] == 0.7
            assert row["explanation"] == "Both reports involve cryptids phenomena"

    def test_limit_clamped(self, seeded_settings) -> None:
        with TestClient(create_app(seeded_settings)) as client:
            low = client.get("/api/v1/reports/c/connections", params={"limit": 0})
            high = client.get("/api/v1/reports/c/connections", params={"limit": 500})

        assert low.status_code == 200
        assert low.json()["total"] == 1
        assert high.json()["total"] == 2

    def test_unknown_report(self, tmp_path) -> None:
        with TestClient(create_app(_settings(tmp_path))) as client:
            response = client.get("/api/v1/reports/missing/connections")
        assert response.status_code == 404
        assert response.json() == {"detail": "Report not found"}

    def test_store_error_handled_by_middleware(self, tmp_path) -> None:
        app = create_app(_settings(tmp_path))
        with TestClient(app) as client:
            lookup = MagicMock()
            lookup.connections_for = AsyncMock(side_effect=StoreError("database is locked"))
            app.state.lookup_service = lookup

            response = client.get("/api/v1/reports/a/connections")

        assert response.status_code == 500
        assert response.json() == {"error": "StoreError", "detail": "database is locked"}


# ---------------------------------------------------------------------------
# Pattern analysis
# ---------------------------------------------------------------------------


def _seed_patterns(db_path: str, patterns) -> None:
    async def _load() -> None:
        store = SQLiteReportStore(db_path=db_path)
        await store.initialize()
        for pattern in patterns:
            await store.save_pattern(pattern, datetime.now(tz=timezone.utc))

    asyncio.run(_load())


class TestAnalyzePatterns:
    def test_missing_token(self, tmp_path) -> None:
        with TestClient(create_app(_settings(tmp_path))) as client:
            response = client.post(PATTERNS_TRIGGER)
        assert response.status_code == 401
        assert response.json() == {"detail": "Unauthorized"}

    def test_get_not_allowed(self, tmp_path) -> None:
        with TestClient(create_app(_settings(tmp_path))) as client:
            response = client.get(PATTERNS_TRIGGER, headers=AUTH)
        assert response.status_code == 405

    def test_empty_store(self, tmp_path) -> None:
        with TestClient(create_app(_settings(tmp_path))) as client:
            response = client.post(PATTERNS_TRIGGER, headers=AUTH)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        result = body["result"]
        assert result["run_id"] == 1
        assert result["reports_analyzed"] == 0
        assert result["patterns_detected"] == 0
        assert result["patterns_archived"] == 0
        assert result["failed_steps"] == 0

    def test_failure_is_500(self, tmp_path) -> None:
        app = create_app(_settings(tmp_path))
        with TestClient(app) as client:
            service = MagicMock()
            service.run = AsyncMock(side_effect=RuntimeError("boom"))
            app.state.pattern_service = service

            response = client.post(PATTERNS_TRIGGER, headers=AUTH)

        assert response.status_code == 500
        assert response.json() == {"error": "Pattern analysis failed", "detail": "boom"}


class TestTrendingPatterns:
    def test_live_patterns_most_significant_first(self, tmp_path) -> None:
        settings = _settings(tmp_path)
        _seed_patterns(
            settings.database_path,
            [
                DetectedPattern(
                    pattern_type=PatternType.TEMPORAL_ANOMALY,
                    confidence_score=0.6,
                    significance_score=0.3,
                ),
                DetectedPattern(
                    pattern_type=PatternType.SEASONAL_PATTERN,
                    confidence_score=0.8,
                    significance_score=0.7,
                    metadata={"month": 10, "month_name": "October"},
                ),
                DetectedPattern(
                    pattern_type=PatternType.GEOGRAPHIC_CLUSTER,
                    status=PatternStatus.HISTORICAL,
                    confidence_score=0.9,
                    significance_score=0.9,
                ),
            ],
        )

        with TestClient(create_app(settings)) as client:
            response = client.get("/api/v1/patterns/trending")
            clamped = client.get("/api/v1/patterns/trending", params={"limit": 0})

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 2
        assert [p["pattern_type"] for p in body["patterns"]] == ["seasonal_pattern", "temporal_anomaly"]
        assert body["patterns"][0]["metadata"]["month_name"] == "October"
        assert clamped.json()["total"] == 1


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class TestHealth:
    def test_health(self, tmp_path) -> None:
        with TestClient(create_app(_settings(tmp_path))) as client:
            response = client.get("/api/v1/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["store"] == "sqlite_report_store"
        assert body["version"] == "0.1.0"
