"""Correlation API layer: routes, schemas, auth and middleware."""

from correlation_engine.api.middleware import ErrorHandlingMiddleware, RequestLoggingMiddleware
from correlation_engine.api.routes import router
from correlation_engine.api.schemas import (
    ConnectionsResponse,
    ErrorResponse,
    GenerateConnectionsResponse,
    HealthResponse,
)

__all__ = [
    "ConnectionsResponse",
    "ErrorHandlingMiddleware",
    "ErrorResponse",
    "GenerateConnectionsResponse",
    "HealthResponse",
    "RequestLoggingMiddleware",
    "router",
]
