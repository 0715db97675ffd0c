"""Unit tests for ConnectionService and select_connections.

The store is an AsyncMock; generator and scorer are the real classes so
these tests exercise the whole per-report pass except persistence.
"""

from __future__ import annotations

import asyncio
from datetime import date
from unittest.mock import MagicMock

import pytest

from correlation_engine.config.settings import CorrelationSettings
from correlation_engine.models.connection import ConnectionKind, ScoredConnection
from correlation_engine.services.candidate_generator import CandidateGenerator
from correlation_engine.services.connection_scorer import ConnectionScorer
from correlation_engine.services.connection_service import ConnectionService, select_connections
from correlation_engine.utils.concurrency import KeyedLock
from correlation_engine.utils.errors import StoreError


def _scored(target_id: str, strength: float) -> ScoredConnection:
    return ScoredConnection(
        target_id=target_id,
        kind=ConnectionKind.TEMPORAL,
        strength=strength,
        explanation="x",
    )


def _service(store, settings, fixed_now, locks=None) -> ConnectionService:
    return ConnectionService(
        store=store,
        generator=CandidateGenerator(store, settings),
        scorer=ConnectionScorer(settings.location_boost),
        settings=settings,
        locks=locks,
        clock=lambda: fixed_now,
    )


# ======================================================================
# select_connections
# ======================================================================


class TestSelectConnections:
    def test_threshold_inclusive(self) -> None:
        scored = [_scored("a", 0.39), _scored("b", 0.40), _scored("c", 0.45)]
        selected = select_connections(scored, min_strength=0.40, limit=8)
        assert [s.target_id for s in selected] == ["c", "b"]

    def test_cap_keeps_strongest(self) -> None:
        scored = [_scored(f"r{i}", 0.50) for i in range(6)] + [_scored(f"s{i}", 0.85) for i in range(6)]
        selected = select_connections(scored, min_strength=0.40, limit=8)

        assert len(selected) == 8
        assert [s.target_id for s in selected[:6]] == [f"s{i}" for i in range(6)]
        # Stable sort: equal strengths keep input order.
        assert [s.target_id for s in selected[6:]] == ["r0", "r1"]

    def test_non_increasing(self) -> None:
        scored = [_scored("a", 0.5), _scored("b", 0.9), _scored("c", 0.7)]
        strengths = [s.strength for s in select_connections(scored, 0.4, 8)]
        assert strengths == sorted(strengths, reverse=True)

    def test_empty(self) -> None:
        assert select_connections([], 0.4, 8) == []


# ======================================================================
# ConnectionService.analyze_report
# ======================================================================


class TestAnalyzeReport:
    @pytest.mark.asyncio
    async def test_persists_selection_then_stamps(
        self, mock_store, correlation_settings, make_report, fixed_now
    ) -> None:
        source = make_report("src", event_date=date(2024, 5, 10))
        mock_store.find_reports_in_date_range.return_value = [
            make_report("near", event_date=date(2024, 5, 11)),
            make_report("far", event_date=date(2024, 6, 5)),
        ]
        calls = MagicMock()
        calls.attach_mock(mock_store.replace_connections, "replace")
        calls.attach_mock(mock_store.mark_analyzed, "mark")

        created = await _service(mock_store, correlation_settings, fixed_now).analyze_report(source)

        assert created == 2
        rows = mock_store.replace_connections.await_args.args[1]
        assert [(r.source_id, r.target_id, r.strength) for r in rows] == [
            ("src", "near", 0.85),
            ("src", "far", 0.50),
        ]
        assert all(r.kind is ConnectionKind.TEMPORAL for r in rows)
        assert [c[0] for c in calls.mock_calls] == ["replace", "mark"]
        mock_store.mark_analyzed.assert_awaited_once_with("src", fixed_now)

    @pytest.mark.asyncio
    async def test_empty_selection_skips_replace_but_stamps(
        self, mock_store, correlation_settings, make_report, fixed_now
    ) -> None:
        source = make_report("src", tags={"orb"})
        # One shared tag scores 0.45 but the threshold here is higher.
        mock_store.find_reports_sharing_tags.return_value = [make_report("b", "cryptids", tags={"orb"})]
        settings = CorrelationSettings(min_strength=0.5)

        created = await _service(mock_store, settings, fixed_now).analyze_report(source)

        assert created == 0
        mock_store.replace_connections.assert_not_awaited()
        mock_store.mark_analyzed.assert_awaited_once_with("src", fixed_now)

    @pytest.mark.asyncio
    async def test_no_candidates_still_stamps(
        self, mock_store, correlation_settings, make_report, fixed_now
    ) -> None:
        created = await _service(mock_store, correlation_settings, fixed_now).analyze_report(
            make_report("lonely")
        )

        assert created == 0
        mock_store.replace_connections.assert_not_awaited()
        mock_store.mark_analyzed.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_replace_failure_leaves_report_unstamped(
        self, mock_store, correlation_settings, make_report, fixed_now
    ) -> None:
        source = make_report("src", event_date=date(2024, 5, 10))
        mock_store.find_reports_in_date_range.return_value = [make_report("b", event_date=date(2024, 5, 10))]
        mock_store.replace_connections.side_effect = StoreError("write failed")

        with pytest.raises(StoreError):
            await _service(mock_store, correlation_settings, fixed_now).analyze_report(source)

        mock_store.mark_analyzed.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_candidate_failure_leaves_report_unstamped(
        self, mock_store, correlation_settings, make_report, fixed_now
    ) -> None:
        mock_store.find_reports_sharing_tags.side_effect = StoreError("read failed")

        with pytest.raises(StoreError):
            await _service(mock_store, correlation_settings, fixed_now).analyze_report(
                make_report("src", tags={"orb"})
            )

        mock_store.mark_analyzed.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cap_applied_before_persist(self, mock_store, make_report, fixed_now) -> None:
        source = make_report("src", event_date=date(2024, 5, 10))
        mock_store.find_reports_in_date_range.return_value = [
            make_report(f"n{i}", event_date=date(2024, 5, 10)) for i in range(12)
        ]
        settings = CorrelationSettings()

        created = await _service(mock_store, settings, fixed_now).analyze_report(source)

        assert created == 8
        assert len(mock_store.replace_connections.await_args.args[1]) == 8

    @pytest.mark.asyncio
    async def test_replace_runs_under_report_lock(
        self, mock_store, correlation_settings, make_report, fixed_now
    ) -> None:
        locks = KeyedLock()
        held: list[int] = []

        async def _replace(report_id, rows):
            held.append(len(locks))
            return len(rows)

        mock_store.replace_connections.side_effect = _replace
        mock_store.find_reports_in_date_range.return_value = [make_report("b", event_date=date(2024, 5, 10))]

        service = _service(mock_store, correlation_settings, fixed_now, locks=locks)
        await service.analyze_report(make_report("src", event_date=date(2024, 5, 10)))

        assert held == [1]
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_services_sharing_a_lock_serialize_replaces(
        self, mock_store, correlation_settings, make_report, fixed_now
    ) -> None:
        locks = KeyedLock()
        in_flight: list[int] = []
        peak: list[int] = []

        async def _replace(report_id, rows):
            in_flight.append(report_id)
            peak.append(len(in_flight))
            await asyncio.sleep(0.01)
            in_flight.remove(report_id)
            return len(rows)

        mock_store.replace_connections.side_effect = _replace
        mock_store.find_reports_in_date_range.return_value = [make_report("b", event_date=date(2024, 5, 10))]
        source = make_report("src", event_date=date(2024, 5, 10))

        first = _service(mock_store, correlation_settings, fixed_now, locks=locks)
        second = _service(mock_store, correlation_settings, fixed_now, locks=locks)
        await asyncio.gather(first.analyze_report(source), second.analyze_report(source))

        assert peak == [1, 1]
        assert len(locks) == 0


class TestDiscover:
    @pytest.mark.asyncio
    async def test_first_strategy_decides_kind(
        self, mock_store, correlation_settings, make_report, fixed_now
    ) -> None:
        neighbour = make_report("b", latitude=40.01, longitude=-75.0, event_date=date(2024, 5, 10))
        mock_store.find_reports_in_box.return_value = [neighbour]
        mock_store.find_reports_in_date_range.return_value = [neighbour]
        source = make_report("src", latitude=40.0, longitude=-75.0, event_date=date(2024, 5, 10))

        selected = await _service(mock_store, correlation_settings, fixed_now).discover(source)

        assert len(selected) == 1
        assert selected[0].kind is ConnectionKind.GEOGRAPHIC
        assert selected[0].strength == 0.90
        mock_store.mark_analyzed.assert_not_awaited()
