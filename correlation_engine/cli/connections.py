"""Command-line access to the connection discovery engine.

Usage::

    python -m correlation_engine.cli run                 # one batch, JSON stats
    python -m correlation_engine.cli load reports.json   # upsert reports
    python -m correlation_engine.cli show <report_id>    # print connections
    python -m correlation_engine.cli patterns            # one pattern analysis, JSON result

``run`` is what a cron job without HTTP access would call.  ``load``
accepts a JSON array of report objects in the same shape as the
``Report`` model, for seeding a local database.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

from pydantic import ValidationError

from correlation_engine.config.settings import Settings
from correlation_engine.models.report import Report
from correlation_engine.utils.errors import CorrelationEngineError
from correlation_engine.utils.logging import configure_logging


def _build(app_settings: Settings) -> dict:
    # Imported here so ``--help`` stays fast.
    from correlation_engine.main import build_components

    return build_components(app_settings)


async def _handle_run(app_settings: Settings) -> int:
    components = _build(app_settings)
    await components["store"].initialize()
    batch = await components["batch_runner"].run()
    print(
        json.dumps(
            {
                "selected": batch.selected,
                "skipped": batch.skipped,
                "duration_ms": batch.duration_ms,
                "stats": batch.stats.model_dump(),
            },
            indent=2,
        )
    )
    return 0 if batch.stats.errors == 0 else 2


async def _handle_load(args: argparse.Namespace, app_settings: Settings) -> int:
    path = Path(args.path)
    if not path.exists():
        print(f"File not found: {path}", file=sys.stderr)
        return 1

    raw = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(raw, list):
        print("Expected a JSON array of reports", file=sys.stderr)
        return 1

    try:
        reports = [Report.model_validate(item) for item in raw]
    except ValidationError as exc:
        print(f"Invalid report data:\n{exc}", file=sys.stderr)
        return 1

    components = _build(app_settings)
    await components["store"].initialize()
    count = await components["store"].upsert_reports(reports)
    print(f"Loaded {count} report(s) into {app_settings.database_path}")
    return 0


async def _handle_show(args: argparse.Namespace, app_settings: Settings) -> int:
    components = _build(app_settings)
    await components["store"].initialize()
    connections = await components["lookup_service"].connections_for(args.report_id, args.limit)
    if connections is None:
        print(f"Report not found: {args.report_id}", file=sys.stderr)
        return 1

    if not connections:
        print("No connections.")
        return 0

    for conn in connections:
        label = conn.connected_report_title or conn.connected_report_id
        print(f"{conn.connection_strength:.2f}  {conn.connection_type:<15} {label}")
        print(f"      {conn.explanation}")
    return 0


async def _handle_patterns(app_settings: Settings) -> int:
    components = _build(app_settings)
    await components["store"].initialize()
    result = await components["pattern_service"].run()
    print(json.dumps(result.model_dump(), indent=2))
    return 0 if result.failed_steps == 0 else 2


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the connections CLI."""
    parser = argparse.ArgumentParser(
        prog="correlation_engine.cli",
        description="Discover and inspect connections and patterns across phenomenon reports.",
    )
    parser.add_argument(
        "--database",
        help="SQLite database path (defaults to DATABASE_PATH / settings)",
    )
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Run one connection discovery batch")

    load_parser = subparsers.add_parser("load", help="Upsert reports from a JSON file")
    load_parser.add_argument("path", help="Path to a JSON array of reports")

    show_parser = subparsers.add_parser("show", help="Print a report's connections")
    show_parser.add_argument("report_id", help="Report id")
    show_parser.add_argument("--limit", type=int, default=10, help="Maximum rows (default 10)")

    subparsers.add_parser("patterns", help="Run one pattern analysis over all approved reports")

    return parser


def main() -> None:
    """CLI entry point for the connections tool."""
    parser = _build_parser()
    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    app_settings = Settings()
    if args.database:
        app_settings = app_settings.model_copy(update={"database_path": args.database})
    configure_logging(log_level=app_settings.log_level, stream=sys.stderr)

    try:
        if args.command == "run":
            exit_code = asyncio.run(_handle_run(app_settings))
        elif args.command == "load":
            exit_code = asyncio.run(_handle_load(args, app_settings))
        elif args.command == "patterns":
            exit_code = asyncio.run(_handle_patterns(app_settings))
        elif args.command == "show":
            exit_code = asyncio.run(_handle_show(args, app_settings))
        else:
            parser.print_help()
            exit_code = 1
    except CorrelationEngineError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
