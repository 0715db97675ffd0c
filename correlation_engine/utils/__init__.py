"""Shared utilities: logging, errors, geospatial math, concurrency."""
