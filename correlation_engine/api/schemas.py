"""Request/response schemas for the correlation API."""

from __future__ import annotations

from pydantic import BaseModel

from correlation_engine.models.connection import BatchStats, ConnectedReport
from correlation_engine.models.pattern import DetectedPattern, PatternRunResult


class GenerateConnectionsResponse(BaseModel):
    """Summary returned by the batch trigger."""

    message: str
    stats: BatchStats


class ConnectionsResponse(BaseModel):
    """Connections of one report, strongest first."""

    connections: list[ConnectedReport]
    total: int


class PatternAnalysisResponse(BaseModel):
    """Summary returned by the pattern analysis trigger."""

    success: bool
    result: PatternRunResult


class PatternsResponse(BaseModel):
    """Trending patterns, most significant first."""

    patterns: list[DetectedPattern]
    total: int


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    store: str


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None
