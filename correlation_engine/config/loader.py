"""YAML configuration loader with environment overrides.

Configuration is layered, later layers winning:

    1. config/config.yaml  -- defaults checked into the repo
    2. .env file           -- local developer overrides
    3. environment vars    -- set at deploy time

``load_config`` reads the YAML file and deep-merges the env-derived values
from :class:`Settings` on top.  ``load_correlation_settings`` turns the
``correlation`` section into a validated :class:`CorrelationSettings` and
``load_pattern_settings`` does the same for the ``patterns`` section.
"""

from pathlib import Path

import yaml
from pydantic import ValidationError

from correlation_engine.config.settings import CorrelationSettings, PatternSettings, Settings
from correlation_engine.utils.errors import ConfigurationError


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Args:
        path: Path to the YAML configuration file.  A missing file yields
            an empty base layer.
        settings: Settings to merge; a fresh ``Settings()`` when omitted.

    Returns:
        Fully resolved configuration dictionary.
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path) as f:
            yaml_config = yaml.safe_load(f) or {}
    else:
        yaml_config = {}

    if not isinstance(yaml_config, dict):
        raise ConfigurationError(f"Top level of {path} must be a mapping")

    settings = settings or Settings()
    env_overrides = {
        "app": {
            "host": settings.app_host,
            "port": settings.app_port,
            "env": settings.app_env,
        },
        "store": {
            "database_path": settings.database_path,
        },
        "logging": {
            "level": settings.log_level,
        },
    }

    _deep_merge(yaml_config, env_overrides)
    return yaml_config


def load_correlation_settings(config: dict) -> CorrelationSettings:
    """Build the discovery-pass tunables from a resolved config dict."""
    section = config.get("correlation") or {}
    try:
        return CorrelationSettings(**section)
    except (TypeError, ValidationError) as exc:
        raise ConfigurationError(f"Invalid correlation settings: {exc}") from exc


def load_pattern_settings(config: dict) -> PatternSettings:
    """Build the pattern-analysis tunables from a resolved config dict."""
    section = config.get("patterns") or {}
    try:
        return PatternSettings(**section)
    except (TypeError, ValidationError) as exc:
        raise ConfigurationError(f"Invalid pattern settings: {exc}") from exc


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
