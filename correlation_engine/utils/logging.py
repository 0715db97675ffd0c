"""Structured logging for batch runs, pattern analysis and the API.

Every event is a snake_case name plus key/value fields, e.g.
``connection_batch_complete processed=12 errors=0``.  Events logged while
a run is in progress carry that run's fields as well (see
:func:`run_context`), so the per-report lines of a batch can be grouped
without threading ids through every call.

The console renderer is used in development and JSON in production
(``APP_ENV=production`` or ``json_output=True``).  Standard-library
records from uvicorn and aiosqlite go through the same processors.
"""

import logging
import os
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, TextIO

import structlog

# aiosqlite logs each statement at DEBUG; one connection per store call makes that noise.
_QUIET_LIBRARIES = ("aiosqlite",)


def configure_logging(
    log_level: str = "INFO",
    json_output: bool = False,
    stream: TextIO | None = None,
) -> structlog.BoundLogger:
    """Configure structlog for the service or the CLI.

    Args:
        log_level: Logging level name (DEBUG, INFO, WARNING, ERROR).
        json_output: Force JSON rendering regardless of ``APP_ENV``.
        stream: Where log lines go; stdout when omitted.  The CLI passes
            stderr so the JSON it prints on stdout stays parseable.

    Returns:
        A configured structlog BoundLogger.
    """
    stream = stream or sys.stdout
    use_json = json_output or os.environ.get("APP_ENV", "development") == "production"

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    renderer: structlog.types.Processor
    if use_json:
        renderer = structlog.processors.JSONRenderer(sort_keys=True)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=stream.isatty())

    level = logging.getLevelName(log_level.upper())
    structlog.configure(
        processors=[*processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(stream)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                *processors,
                renderer,
            ],
        )
    )
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
    for name in _QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(max(level, logging.INFO))

    return structlog.get_logger()


def get_logger(name: str) -> structlog.BoundLogger:
    """Return a structlog logger bound with ``logger_name``.

    Configures logging with defaults on first use if nothing has yet.
    """
    if not structlog.is_configured():
        configure_logging()

    return structlog.get_logger(logger_name=name)


@contextmanager
def run_context(run_kind: str, **fields: Any) -> Iterator[str]:
    """Tag every event logged inside the block with one run's identity.

    Binds ``run_kind`` (``connection_batch``, ``pattern_analysis``), a
    fresh ``run_ref`` and any extra *fields* as context variables, and
    unbinds them on exit.  Yields the ``run_ref``.

    Context variables follow the asyncio task, so reports analyzed
    concurrently inside a batch still log under the batch's ``run_ref``.
    """
    run_ref = uuid.uuid4().hex[:12]
    with structlog.contextvars.bound_contextvars(run_kind=run_kind, run_ref=run_ref, **fields):
        yield run_ref
