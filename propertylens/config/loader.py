"""YAML configuration loader with environment variable overrides.

# ─── CONFIGURATION HIERARCHY (Junior Developer Guide) ──────────────────
#
# Configuration is loaded in layers (later layers override earlier):
#
#   1. config/config.yaml  - Static defaults checked into the repo
#                            (TTL table, poller schedule, thresholds)
#   2. .env file           - Local developer overrides (not committed)
#   3. Environment vars    - Set at deploy time
#
# _deep_merge does recursive dict merging, so an env override for
# ``trigger.negative_ratio`` leaves the rest of ``trigger`` untouched.
# ──────────────────────────────────────────────────────────────────────
"""

from pathlib import Path

import yaml

from propertylens.config.settings import Settings
from propertylens.utils.errors import ConfigurationError


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Environment variables (via Settings) override YAML values where keys overlap.

    Args:
        path: Path to the YAML configuration file.
        settings: Settings instance to merge; a fresh one is read when omitted.

    Returns:
        Fully resolved configuration dictionary.
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path) as f:
            try:
                yaml_config = yaml.safe_load(f) or {}
            except yaml.YAMLError as exc:
                raise ConfigurationError(message=f"Invalid YAML in {config_path}: {exc}") from exc
        if not isinstance(yaml_config, dict):
            raise ConfigurationError(message=f"{config_path} must contain a mapping")
    else:
        yaml_config = {}

    settings = settings or Settings()
    env_overrides = {
        "app": {
            "host": settings.app_host,
            "port": settings.app_port,
            "env": settings.app_env,
        },
        "engine": {
            "base_url": settings.engine_base_url,
            "timeout_seconds": settings.engine_timeout_seconds,
        },
        "cache": {
            "sweep_interval_seconds": settings.cache_sweep_interval_seconds,
            "max_age_seconds": settings.cache_max_age_seconds,
            "max_entries": settings.cache_max_entries,
        },
        "storage": {
            "feedback_db_path": settings.feedback_db_path,
            "session_archive_db_path": settings.session_archive_db_path,
        },
        "trigger": {
            "negative_ratio": settings.trigger_negative_ratio,
            "min_section_samples": settings.trigger_min_section_samples,
            "rating_floor": settings.trigger_rating_floor,
            "min_rating_samples": settings.trigger_min_rating_samples,
            "require_distinct_users": settings.trigger_require_distinct_users,
            "cooldown_max_hours": settings.trigger_cooldown_max_hours,
            "window_hours": settings.feedback_window_hours,
        },
        "logging": {
            "level": settings.log_level,
        },
    }

    _deep_merge(yaml_config, env_overrides)
    return yaml_config


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
