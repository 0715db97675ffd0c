"""Command-line tools for the correlation engine."""
