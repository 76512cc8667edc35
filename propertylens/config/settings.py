"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK (Junior Developer Guide) ───────────────────────
#
# pydantic-settings reads configuration from TWO sources (in priority
# order):
#
#   1. **Environment variables** - e.g., ENGINE_BASE_URL=http://engine:3004
#   2. **.env file** - key=value lines in the project root .env file
#
# Field ``engine_base_url`` maps to env var ``ENGINE_BASE_URL``.  Defaults
# below are used when neither source sets a value.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """PropertyLens coordinator settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Analysis Engine ===
    engine_base_url: str = "http://localhost:3004"
    engine_timeout_seconds: float = 10.0

    # === Session cache ===
    cache_sweep_interval_seconds: float = 30.0
    cache_max_age_seconds: float = 300.0  # hard ceiling, longer than any TTL
    cache_max_entries: int = 10_000

    # === Persistence ===
    feedback_db_path: str = "data/feedback.db"
    session_archive_db_path: str = "data/session_archive.db"

    # === Trigger policy ===
    trigger_negative_ratio: float = 0.6
    trigger_min_section_samples: int = 3
    trigger_rating_floor: float = 2.5
    trigger_min_rating_samples: int = 2
    trigger_require_distinct_users: bool = False
    trigger_cooldown_max_hours: float = 24.0
    feedback_window_hours: float = 336.0  # 14 days

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"
