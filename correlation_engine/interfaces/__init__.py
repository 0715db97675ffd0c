"""Abstract provider interfaces."""

from correlation_engine.interfaces.report_store import IReportStore

__all__ = ["IReportStore"]
