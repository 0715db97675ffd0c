"""Application settings and correlation tunables.

``Settings`` reads environment variables (highest priority) and the
project ``.env`` file through pydantic-settings.  Field ``cron_secret``
maps to env var ``CRON_SECRET``, ``database_path`` to ``DATABASE_PATH``,
and so on.

``CorrelationSettings`` holds the discovery-pass constants and
``PatternSettings`` the pattern-analysis ones.  Defaults are
the production values; ``config/config.yaml`` may override any of them
under its ``correlation:`` and ``patterns:`` keys (see ``loader.load_config``).
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven settings for the correlation service."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Trigger auth ===
    # Shared secret the scheduler sends as ``Authorization: Bearer <secret>``.
    # Empty = not configured; the trigger then only works in development.
    cron_secret: str = ""

    # === Store ===
    database_path: str = "data/reports.db"

    # === Correlation tunables file ===
    correlation_config_path: str = "config/config.yaml"

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"

    def trigger_auth_required(self) -> bool:
        """Whether the batch trigger must see a valid bearer token."""
        return bool(self.cron_secret) or self.app_env != "development"


class CorrelationSettings(BaseModel):
    """Constants governing one connection discovery pass."""

    model_config = ConfigDict(frozen=True)

    # === Batch selection ===
    batch_size: int = Field(default=50, ge=1)
    cooldown_days: int = Field(default=7, ge=0)

    # === Selection ===
    min_strength: float = Field(default=0.40, ge=0.0, le=1.0)
    max_connections_per_report: int = Field(default=8, ge=1)

    # === Candidate generation ===
    geographic_radius_km: float = Field(default=100.0, gt=0.0)
    geographic_limit: int = Field(default=20, ge=0)
    temporal_window_days: int = Field(default=30, ge=0)
    temporal_limit: int = Field(default=20, ge=0)
    cross_category_limit: int = Field(default=15, ge=0)

    # === Scoring ===
    location_boost: float = Field(default=0.15, ge=0.0, le=1.0)

    # === Execution ===
    # 1 keeps the batch strictly sequential.
    max_concurrency: int = Field(default=1, ge=1)
    # Wall-clock budget for one run; None = unbounded.
    time_budget_seconds: float | None = Field(default=None, gt=0.0)


class PatternSettings(BaseModel):
    """Constants governing one pattern analysis run."""

    model_config = ConfigDict(frozen=True)

    # === Temporal anomalies ===
    weeks_back: int = Field(default=52, ge=1)
    zscore_threshold: float = Field(default=2.5, gt=0.0)

    # === Seasonal patterns ===
    seasonal_high_index: float = Field(default=1.5, gt=1.0)
    seasonal_low_index: float = Field(default=0.5, ge=0.0, lt=1.0)

    # === Geographic clusters ===
    cluster_eps_km: float = Field(default=50.0, gt=0.0)
    cluster_min_points: int = Field(default=5, ge=2)
    cluster_days_back: int = Field(default=365, ge=1)

    # === Archive ===
    # ACTIVE patterns not updated for this long become HISTORICAL.
    stale_after_days: int = Field(default=30, ge=1)
