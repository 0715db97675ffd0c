"""Batch orchestration for connection discovery."""

from correlation_engine.pipeline.batch_runner import BatchRunner

__all__ = ["BatchRunner"]
