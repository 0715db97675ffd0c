"""Report store providers."""

from correlation_engine.providers.store.sqlite_report_store import SQLiteReportStore

__all__ = ["SQLiteReportStore"]
