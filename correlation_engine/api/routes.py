"""FastAPI routes for the correlation service.

Services are resolved from ``app.state`` (populated in ``main._lifespan``)
via ``Annotated[..., Depends(...)]`` aliases.

# Endpoint                                   Method  Description
# ──────────────────────────────────────────────────────────────────────
# /api/v1/cron/generate-connections          POST    Run one discovery batch
# /api/v1/reports/{report_id}/connections    GET     A report's connections
# /api/v1/cron/analyze-patterns              POST    Run one pattern analysis
# /api/v1/patterns/trending                  GET     Most significant live patterns
# /api/v1/health                             GET     Health check
"""

from __future__ import annotations

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from correlation_engine import __version__
from correlation_engine.api.auth import require_cron_secret
from correlation_engine.api.schemas import (
    ConnectionsResponse,
    ErrorResponse,
    GenerateConnectionsResponse,
    HealthResponse,
    PatternAnalysisResponse,
    PatternsResponse,
)
from correlation_engine.interfaces.report_store import IReportStore
from correlation_engine.pipeline.batch_runner import BatchRunner
from correlation_engine.services.connection_lookup import ConnectionLookupService
from correlation_engine.services.pattern_detection import PatternDetectionService
from correlation_engine.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api/v1")

_DEFAULT_CONNECTIONS_LIMIT = 10
_MAX_CONNECTIONS_LIMIT = 20
_DEFAULT_PATTERNS_LIMIT = 5
_MAX_PATTERNS_LIMIT = 20


def _get_batch_runner(request: Request) -> BatchRunner:
    return request.app.state.batch_runner


def _get_lookup_service(request: Request) -> ConnectionLookupService:
    return request.app.state.lookup_service


def _get_pattern_service(request: Request) -> PatternDetectionService:
    return request.app.state.pattern_service


def _get_store(request: Request) -> IReportStore:
    return request.app.state.store


BatchRunnerDep = Annotated[BatchRunner, Depends(_get_batch_runner)]
LookupDep = Annotated[ConnectionLookupService, Depends(_get_lookup_service)]
PatternServiceDep = Annotated[PatternDetectionService, Depends(_get_pattern_service)]
StoreDep = Annotated[IReportStore, Depends(_get_store)]


@router.post(
    "/cron/generate-connections",
    response_model=GenerateConnectionsResponse,
    responses={401: {"description": "Unauthorized"}, 500: {"model": ErrorResponse}},
    dependencies=[Depends(require_cron_secret)],
)
async def generate_connections(runner: BatchRunnerDep) -> GenerateConnectionsResponse | JSONResponse:
    """Run one connection discovery batch over stale reports."""
    try:
        batch = await runner.run()
    except Exception as exc:
        _logger.error(
            "generate_connections_failed",
            error_type=type(exc).__name__,
            error=str(exc),
        )
        body = ErrorResponse(error="Internal server error")
        return JSONResponse(status_code=500, content=body.model_dump())

    if batch.selected == 0:
        message = "No reports to process"
    else:
        message = "Connection generation complete"
    return GenerateConnectionsResponse(message=message, stats=batch.stats)


@router.get(
    "/reports/{report_id}/connections",
    response_model=ConnectionsResponse,
    responses={404: {"description": "Report not found"}},
)
async def get_report_connections(
    report_id: str,
    lookup: LookupDep,
    limit: Annotated[int, Query()] = _DEFAULT_CONNECTIONS_LIMIT,
) -> ConnectionsResponse:
    """Return the connections a report takes part in, strongest first."""
    # Out-of-range limits are clamped rather than rejected.
    limit = min(max(limit, 1), _MAX_CONNECTIONS_LIMIT)
    connections = await lookup.connections_for(report_id, limit)
    if connections is None:
        raise HTTPException(status_code=404, detail="Report not found")
    return ConnectionsResponse(connections=connections, total=len(connections))


@router.post(
    "/cron/analyze-patterns",
    response_model=PatternAnalysisResponse,
    responses={401: {"description": "Unauthorized"}, 500: {"model": ErrorResponse}},
    dependencies=[Depends(require_cron_secret)],
)
async def analyze_patterns(patterns: PatternServiceDep) -> PatternAnalysisResponse | JSONResponse:
    """Run one pattern analysis over all approved reports."""
    try:
        result = await patterns.run()
    except Exception as exc:
        _logger.error(
            "analyze_patterns_failed",
            error_type=type(exc).__name__,
            error=str(exc),
        )
        body = ErrorResponse(error="Pattern analysis failed", detail=str(exc))
        return JSONResponse(status_code=500, content=body.model_dump())
    return PatternAnalysisResponse(success=True, result=result)


@router.get("/patterns/trending", response_model=PatternsResponse)
async def get_trending_patterns(
    patterns: PatternServiceDep,
    limit: Annotated[int, Query()] = _DEFAULT_PATTERNS_LIMIT,
) -> PatternsResponse:
    """Return the most significant ACTIVE and EMERGING patterns."""
    limit = min(max(limit, 1), _MAX_PATTERNS_LIMIT)
    trending = await patterns.trending_patterns(limit)
    return PatternsResponse(patterns=trending, total=len(trending))


@router.get("/health", response_model=HealthResponse)
async def health_check(store: StoreDep) -> HealthResponse:
    """Return application health and the active store."""
    return HealthResponse(
        status="healthy",
        version=__version__,
        store=store.get_provider_name(),
    )
