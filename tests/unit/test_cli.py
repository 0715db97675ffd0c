"""Unit tests for the connections CLI (correlation_engine.cli.connections).

Handlers are driven directly and checked through their exit codes and
the resulting database state.
"""

from __future__ import annotations

import asyncio
import json

import pytest

from correlation_engine.cli.connections import (
    _build_parser,
    _handle_load,
    _handle_patterns,
    _handle_run,
    _handle_show,
    main,
)
from correlation_engine.config.settings import Settings
from correlation_engine.providers.store.sqlite_report_store import SQLiteReportStore

REPORTS = [
    {
        "id": "a",
        "title": "First",
        "category": "ufos_aliens",
        "coordinates": {"latitude": 40.0, "longitude": -75.0},
        "tags": ["lights"],
        "created_at": "2026-01-01T00:00:00Z",
    },
    {
        "id": "b",
        "title": "Second",
        "category": "ufos_aliens",
        "coordinates": {"latitude": 40.045, "longitude": -75.0},
        "created_at": "2026-01-02T00:00:00Z",
    },
]


@pytest.fixture
def cli_settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        database_path=str(tmp_path / "cli.db"),
        correlation_config_path=str(tmp_path / "no-config.yaml"),
    )


class TestParser:
    def test_show_defaults(self) -> None:
        args = _build_parser().parse_args(["show", "r1"])
        assert args.command == "show"
        assert args.report_id == "r1"
        assert args.limit == 10
        assert args.database is None

    def test_database_option(self) -> None:
        args = _build_parser().parse_args(["--database", "/tmp/x.db", "run"])
        assert args.database == "/tmp/x.db"
        assert args.command == "run"

    def test_patterns_command(self) -> None:
        assert _build_parser().parse_args(["patterns"]).command == "patterns"


class TestMain:
    def test_no_command_exits_1(self, monkeypatch) -> None:
        monkeypatch.setattr("sys.argv", ["correlation_engine.cli"])
        with pytest.raises(SystemExit) as exc_info:
            main()
        assert exc_info.value.code == 1


class TestHandlers:
    def test_load_then_run(self, cli_settings, tmp_path) -> None:
        data = tmp_path / "reports.json"
        data.write_text(json.dumps(REPORTS))
        load_args = _build_parser().parse_args(["load", str(data)])

        assert asyncio.run(_handle_load(load_args, cli_settings)) == 0
        assert asyncio.run(_handle_run(cli_settings)) == 0

        store = SQLiteReportStore(cli_settings.database_path)
        loaded = asyncio.run(store.get_report("a"))
        connections = asyncio.run(store.get_connections("a", limit=10))
        assert loaded.tags == frozenset({"lights"})
        assert loaded.last_analyzed_at is not None
        assert [(c.source_id, c.target_id) for c in connections] == [("a", "b")]

    def test_load_missing_file(self, cli_settings, tmp_path) -> None:
        args = _build_parser().parse_args(["load", str(tmp_path / "absent.json")])
        assert asyncio.run(_handle_load(args, cli_settings)) == 1

    def test_load_rejects_invalid_reports(self, cli_settings, tmp_path) -> None:
        data = tmp_path / "bad.json"
        data.write_text(json.dumps([{"id": "", "category": "x"}]))
        args = _build_parser().parse_args(["load", str(data)])

        assert asyncio.run(_handle_load(args, cli_settings)) == 1

    def test_load_rejects_non_array(self, cli_settings, tmp_path) -> None:
        data = tmp_path / "obj.json"
        data.write_text(json.dumps({"id": "a"}))
        args = _build_parser().parse_args(["load", str(data)])

        assert asyncio.run(_handle_load(args, cli_settings)) == 1

    def test_show_unknown_report(self, cli_settings) -> None:
        args = _build_parser().parse_args(["show", "nope"])
        assert asyncio.run(_handle_show(args, cli_settings)) == 1

    def test_patterns_on_loaded_reports(self, cli_settings, tmp_path) -> None:
        data = tmp_path / "reports.json"
        data.write_text(json.dumps(REPORTS))
        asyncio.run(_handle_load(_build_parser().parse_args(["load", str(data)]), cli_settings))

        assert asyncio.run(_handle_patterns(cli_settings)) == 0

        store = SQLiteReportStore(cli_settings.database_path)
        assert asyncio.run(store.count_approved_reports()) == 2
        assert asyncio.run(store.get_trending_patterns(limit=5)) == []
