"""Per-report connection discovery: generate, dedupe, score, select, persist.

``ConnectionService.analyze_report`` runs one report through

    candidates-generated -> deduplicated -> scored
        -> (persisted | skipped-empty) -> stamped

Selection keeps the strongest scored connections at or above the minimum
strength, capped per report.  A non-empty selection replaces every stored
connection touching the report in one store transaction, so the stored
set is always a derived view and re-running converges.  An empty
selection leaves stored rows alone.  Either way the report's
``last_analyzed_at`` is stamped last; any failure before that leaves the
report eligible for the next run.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone

import structlog

from correlation_engine.config.settings import CorrelationSettings
from correlation_engine.interfaces.report_store import IReportStore
from correlation_engine.models.connection import Connection, ScoredConnection
from correlation_engine.models.report import Report
from correlation_engine.services.candidate_generator import (
    CandidateGenerator,
    deduplicate_candidates,
)
from correlation_engine.services.connection_scorer import ConnectionScorer
from correlation_engine.utils.concurrency import KeyedLock

logger = structlog.get_logger(logger_name=__name__)


def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def select_connections(
    scored: list[ScoredConnection],
    min_strength: float,
    limit: int,
) -> list[ScoredConnection]:
    """Strongest first, at or above *min_strength*, at most *limit*.

    The sort is stable so equal strengths keep candidate order.
    """
    ranked = sorted(scored, key=lambda conn: conn.strength, reverse=True)
    return [conn for conn in ranked if conn.strength >= min_strength][:limit]


class ConnectionService:
    """Discovers and persists the connection set for one report at a time."""

    def __init__(
        self,
        store: IReportStore,
        generator: CandidateGenerator,
        scorer: ConnectionScorer,
        settings: CorrelationSettings,
        locks: KeyedLock | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._store = store
        self._generator = generator
        self._scorer = scorer
        self._settings = settings
        self._locks = locks if locks is not None else KeyedLock()
        self._clock = clock

    async def discover(self, report: Report) -> list[ScoredConnection]:
        """Return the selected connections for *report* without persisting."""
        lists = await self._generator.generate(report)
        candidates = deduplicate_candidates(report.id, lists)
        if not candidates:
            return []
        scored = self._scorer.score(report, candidates)
        return select_connections(
            scored,
            min_strength=self._settings.min_strength,
            limit=self._settings.max_connections_per_report,
        )

    async def analyze_report(self, report: Report) -> int:
        """Run the full discovery pass for *report*.

        Returns
        -------
        int
            Number of connections written (0 when the selection was empty).
        """
        selected = await self.discover(report)

        created = 0
        if selected:
            rows = [Connection.from_scored(report.id, conn) for conn in selected]
            async with self._locks.hold(report.id):
                created = await self._store.replace_connections(report.id, rows)

        await self._store.mark_analyzed(report.id, self._clock())

        logger.debug(
            "report_analyzed",
            report_id=report.id,
            connections=created,
            persisted=bool(selected),
        )
        return created
