"""Batch runner for scheduled connection discovery.

One invocation is one bounded batch:

    1. Select up to ``batch_size`` approved reports that were never
       analyzed or were last analyzed more than ``cooldown_days`` ago,
       newest first.  A failure here is fatal (:class:`BatchError`).
    2. Run each report through ``ConnectionService.analyze_report``,
       sequentially or with at most ``max_concurrency`` in flight.
    3. Isolate per-report failures: log, count, move on.
    4. Merge per-report :class:`BatchStats` into one total.

There is no retry state.  A failed report keeps its old
``last_analyzed_at`` and is picked up again by a later run.  When a
``time_budget_seconds`` is configured, reports not yet started once it is
spent are skipped and likewise stay eligible.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from functools import reduce

import structlog

from correlation_engine.config.settings import CorrelationSettings
from correlation_engine.interfaces.report_store import IReportStore
from correlation_engine.models.connection import BatchRun, BatchStats
from correlation_engine.models.report import Report
from correlation_engine.services.connection_service import ConnectionService
from correlation_engine.utils.concurrency import throttled_gather
from correlation_engine.utils.errors import BatchError
from correlation_engine.utils.logging import get_logger, run_context

_logger: structlog.BoundLogger = get_logger(__name__)


def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


class BatchRunner:
    """Drives one connection discovery batch over stale reports."""

    def __init__(
        self,
        store: IReportStore,
        connection_service: ConnectionService,
        settings: CorrelationSettings,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._store = store
        self._connection_service = connection_service
        self._settings = settings
        self._clock = clock

    async def select_reports(self) -> list[Report]:
        """Return the reports due for analysis in this run."""
        cutoff = self._clock() - timedelta(days=self._settings.cooldown_days)
        try:
            return await self._store.fetch_reports_due_for_analysis(
                analyzed_before=cutoff,
                limit=self._settings.batch_size,
            )
        except Exception as exc:
            raise BatchError(
                f"Failed to select reports for analysis: {exc}",
                provider_name=self._store.get_provider_name(),
            ) from exc

    async def run(self) -> BatchRun:
        """Execute one batch and return what it did."""
        with run_context("connection_batch", batch_size=self._settings.batch_size):
            return await self._run()

    async def _run(self) -> BatchRun:
        start = time.perf_counter()
        reports = await self.select_reports()
        if not reports:
            _logger.info("connection_batch_empty")
            return BatchRun(duration_ms=round((time.perf_counter() - start) * 1000, 2))

        deadline = None
        if self._settings.time_budget_seconds is not None:
            deadline = time.monotonic() + self._settings.time_budget_seconds

        _logger.info(
            "connection_batch_started",
            selected=len(reports),
            max_concurrency=self._settings.max_concurrency,
        )

        if self._settings.max_concurrency == 1:
            outcomes = [await self._process(report, deadline) for report in reports]
        else:
            semaphore = asyncio.Semaphore(self._settings.max_concurrency)
            outcomes = await throttled_gather(
                [self._process(report, deadline) for report in reports],
                semaphore=semaphore,
                return_exceptions=False,
            )

        finished = [outcome for outcome in outcomes if outcome is not None]
        stats = reduce(lambda total, item: total + item, finished, BatchStats())
        skipped = len(outcomes) - len(finished)
        duration_ms = round((time.perf_counter() - start) * 1000, 2)

        if skipped:
            _logger.warning("connection_batch_budget_exhausted", skipped=skipped)
        _logger.info(
            "connection_batch_complete",
            processed=stats.processed,
            connections_created=stats.connections_created,
            errors=stats.errors,
            duration_ms=duration_ms,
        )
        return BatchRun(
            selected=len(reports),
            skipped=skipped,
            stats=stats,
            duration_ms=duration_ms,
        )

    async def _process(self, report: Report, deadline: float | None) -> BatchStats | None:
        """Analyze one report; ``None`` means it was skipped for time."""
        if deadline is not None and time.monotonic() >= deadline:
            return None
        try:
            created = await self._connection_service.analyze_report(report)
        except Exception as exc:
            _logger.error(
                "report_connections_failed",
                report_id=report.id,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return BatchStats(errors=1)
        return BatchStats(processed=1, connections_created=created)
