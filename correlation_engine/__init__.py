"""Correlation discovery engine for phenomenon reports."""

__version__ = "0.1.0"
