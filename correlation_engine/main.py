"""Correlation service FastAPI application entry point.

Wires the report store, discovery services, batch runner and pattern
detection together, loads configuration from ``.env`` and
``config/config.yaml``, configures structured logging, and exposes the
API router.

``build_components`` is also used by the CLI to run a batch or a pattern
analysis without the web server.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import structlog
import uvicorn
from fastapi import FastAPI

from correlation_engine import __version__
from correlation_engine.api.middleware import ErrorHandlingMiddleware, RequestLoggingMiddleware
from correlation_engine.api.routes import router as api_router
from correlation_engine.config.loader import (
    load_config,
    load_correlation_settings,
    load_pattern_settings,
)
from correlation_engine.config.settings import Settings
from correlation_engine.pipeline.batch_runner import BatchRunner
from correlation_engine.providers.store.sqlite_report_store import SQLiteReportStore
from correlation_engine.services.candidate_generator import CandidateGenerator
from correlation_engine.services.connection_lookup import ConnectionLookupService
from correlation_engine.services.connection_scorer import ConnectionScorer
from correlation_engine.services.connection_service import ConnectionService
from correlation_engine.services.pattern_detection import PatternDetectionService
from correlation_engine.utils.concurrency import KeyedLock
from correlation_engine.utils.logging import configure_logging, get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Dependency assembly
# ---------------------------------------------------------------------------


def build_components(app_settings: Settings) -> dict[str, Any]:
    """Construct the store and every service for the given settings.

    Returns a flat dict of named components to be stored on ``app.state``.
    """
    config = load_config(app_settings.correlation_config_path, settings=app_settings)
    correlation = load_correlation_settings(config)
    patterns = load_pattern_settings(config)

    store = SQLiteReportStore(db_path=app_settings.database_path)
    generator = CandidateGenerator(store=store, settings=correlation)
    scorer = ConnectionScorer(location_boost=correlation.location_boost)
    connection_service = ConnectionService(
        store=store,
        generator=generator,
        scorer=scorer,
        settings=correlation,
        locks=KeyedLock(),
    )
    batch_runner = BatchRunner(
        store=store,
        connection_service=connection_service,
        settings=correlation,
    )

    return {
        "settings": app_settings,
        "correlation_settings": correlation,
        "store": store,
        "connection_service": connection_service,
        "batch_runner": batch_runner,
        "lookup_service": ConnectionLookupService(store=store),
        "pattern_settings": patterns,
        "pattern_service": PatternDetectionService(store=store, settings=patterns),
    }


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Build components and initialise the store on startup."""
    app_settings: Settings = application.state.settings
    components = build_components(app_settings)

    for key, value in components.items():
        setattr(application.state, key, value)

    await components["store"].initialize()

    correlation = components["correlation_settings"]
    _logger.info(
        "app_startup",
        version=__version__,
        environment=app_settings.app_env,
        store=components["store"].get_provider_name(),
        batch_size=correlation.batch_size,
        max_concurrency=correlation.max_concurrency,
        trigger_auth=app_settings.trigger_auth_required(),
    )

    yield

    _logger.info("app_shutdown")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app(app_settings: Settings | None = None) -> FastAPI:
    """Build and configure the FastAPI application."""
    app_settings = app_settings or Settings()
    configure_logging(
        log_level=app_settings.log_level,
        json_output=(app_settings.app_env == "production"),
    )

    application = FastAPI(
        title="Correlation Engine API",
        version=__version__,
        description=(
            "Scheduled discovery of geographic, temporal and cross-category "
            "connections between phenomenon reports."
        ),
        lifespan=_lifespan,
    )
    application.state.settings = app_settings

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)

    application.include_router(api_router)
    return application


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def run() -> None:
    """Serve the API with uvicorn."""
    app_settings = Settings()
    uvicorn.run(
        "correlation_engine.main:create_app",
        factory=True,
        host=app_settings.app_host,
        port=app_settings.app_port,
        reload=(app_settings.app_env == "development"),
    )


if __name__ == "__main__":
    run()
