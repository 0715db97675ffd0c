"""Configuration module: Settings, the tunables models and the YAML loader."""

from correlation_engine.config.loader import (
    load_config,
    load_correlation_settings,
    load_pattern_settings,
)
from correlation_engine.config.settings import CorrelationSettings, PatternSettings, Settings

__all__ = [
    "CorrelationSettings",
    "PatternSettings",
    "Settings",
    "load_config",
    "load_correlation_settings",
    "load_pattern_settings",
]
