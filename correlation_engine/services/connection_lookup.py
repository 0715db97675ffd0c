"""Read path for a report's stored connections.

Connections are stored directionally from the analyzed report, but a
report is shown every connection it takes part in, as source or target.
When nothing is stored yet the lookup falls back to recent approved
reports of the same category so the caller always has something related
to show.
"""

from __future__ import annotations

import structlog

from correlation_engine.interfaces.report_store import IReportStore
from correlation_engine.models.connection import ConnectedReport

logger = structlog.get_logger(logger_name=__name__)

_FALLBACK_TYPE = "Same Category"
_FALLBACK_STRENGTH = 0.7
_FALLBACK_NOTE = (
    "Reports in the same category often share underlying patterns that researchers find compelling."
)


class ConnectionLookupService:
    """Resolves stored connections into display rows for one report."""

    def __init__(self, store: IReportStore) -> None:
        self._store = store

    async def connections_for(self, report_id: str, limit: int) -> list[ConnectedReport] | None:
        """Return up to *limit* connections for a report, or ``None`` if it doesn't exist."""
        report = await self._store.get_report(report_id)
        if report is None:
            return None

        stored = await self._store.get_connections(report_id, limit)
        if not stored:
            related = await self._store.find_recent_in_category(
                category=report.category,
                exclude_id=report_id,
                limit=limit,
            )
            return [
                ConnectedReport(
                    id=f"fallback_{other.id}",
                    connected_report_id=other.id,
                    connected_report_title=other.title,
                    connected_report_slug=other.slug,
                    connected_report_category=other.category or "Unknown",
                    connection_type=_FALLBACK_TYPE,
                    connection_strength=_FALLBACK_STRENGTH,
                    explanation=f"Both reports involve {report.category} phenomena",
                    note=_FALLBACK_NOTE,
                )
                for other in related
            ]

        other_ids = [
            conn.target_id if conn.source_id == report_id else conn.source_id for conn in stored
        ]
        others = {other.id: other for other in await self._store.get_reports(other_ids)}

        rows: list[ConnectedReport] = []
        for conn, other_id in zip(stored, other_ids):
            other = others.get(other_id)
            if other is None:
                # Neighbour deleted since the last pass.
                continue
            rows.append(
                ConnectedReport(
                    id=str(conn.id),
                    connected_report_id=other.id,
                    connected_report_title=other.title,
                    connected_report_slug=other.slug,
                    connected_report_category=other.category or "Unknown",
                    connection_type=conn.kind.value,
                    connection_strength=conn.strength,
                    explanation=conn.explanation,
                    note=conn.note,
                )
            )
        return rows
