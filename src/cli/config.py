"""Configuration loading and management."""

import os
from pathlib import Path
from typing import Optional

import yaml

from .config_models import ThropConfig

# Environment variables that override file config: env name -> (section, key)
ENV_OVERRIDES = {
    "X_BEARER_TOKEN": ("x", "bearer_token"),
    "X_USER_ACCESS_TOKEN": ("x", "user_access_token"),
    "X_BOT_USER_ID": ("x", "bot_user_id"),
    "X_BOT_USERNAME": ("x", "bot_username"),
    "X_API_TIER": ("x", "tier"),
    "REDIS_URL": ("cache", "redis_url"),
    "TAVILY_API_KEY": ("search", "tavily_api_key"),
    "PERPLEXITY_API_KEY": ("search", "perplexity_api_key"),
    "DRY_RUN": ("bot", "dry_run"),
}

_TRUTHY = {"1", "true", "yes", "on"}


def find_config() -> Optional[Path]:
    """Find config file in standard locations."""
    locations = [
        Path.cwd() / "config.yaml",
        Path.home() / ".throp" / "config.yaml",
    ]
    for loc in locations:
        if loc.exists():
            return loc
    return None


def load_config_model(config_path: Optional[Path] = None, use_env: bool = True) -> ThropConfig:
    """Load configuration as Pydantic model with validation."""
    base_config = {}

    path = config_path or find_config()
    if path and path.exists():
        try:
            with open(path) as f:
                base_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in config file: {e}") from e

    if use_env:
        base_config = _deep_merge(base_config, _env_overrides())

    try:
        return ThropConfig.from_dict(base_config)
    except Exception as e:
        raise ValueError(f"Config validation failed: {e}") from e


def _env_overrides() -> dict:
    """Collect config overrides from environment variables."""
    overrides: dict = {}
    for env_var, (section, key) in ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value is None or value == "":
            continue
        if key == "dry_run":
            value = value.strip().lower() in _TRUTHY
        overrides.setdefault(section, {})[key] = value
    return overrides


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dictionaries."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result
