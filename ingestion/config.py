"""
Runtime settings for the pipeline.

Settings come from an optional YAML file, then environment variables override
individual values.
"""

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

import yaml

from ingestion.constants import (
    DB_NAME,
    DEFAULT_MATCH_RADIUS_MILES,
    DEFAULT_MAX_ITEMS_PER_FEED,
    FEEDS_CONFIG_PATH,
    GEOCODER_USER_AGENT,
)
from util.logging_util import setup_logger

logger = setup_logger(__name__)

SETTINGS_PATH_ENV = "INGESTION_SETTINGS"

ENV_OVERRIDES = {
    "DATABASE_URL": "database_url",
    "GOOGLE_API_KEY": "google_api_key",
    "NCBI_API_KEY": "ncbi_api_key",
}


@dataclass
class Settings:
    database_url: str = f"sqlite:///{DB_NAME}"
    feeds_config_path: Path = FEEDS_CONFIG_PATH
    max_items_per_feed: int = DEFAULT_MAX_ITEMS_PER_FEED
    summary_model: str = "gemini-2.5-flash"
    google_api_key: Optional[str] = None
    ncbi_api_key: Optional[str] = None
    ncbi_max_results: int = 1000
    openfda_limit: int = 100
    request_timeout: float = 30.0
    request_delay: float = 0.5
    match_radius_miles: float = DEFAULT_MATCH_RADIUS_MILES
    geocoder_user_agent: str = GEOCODER_USER_AGENT


def load_settings(config_path: Optional[Path] = None) -> Settings:
    """Load settings from YAML (if present) and apply environment overrides."""
    if config_path is None and os.environ.get(SETTINGS_PATH_ENV):
        config_path = Path(os.environ[SETTINGS_PATH_ENV])

    values = {}
    if config_path is not None:
        if config_path.exists():
            with open(config_path, "r") as f:
                values = yaml.safe_load(f) or {}
        else:
            logger.warning(f"Settings file not found at {config_path}, using defaults")

    known = {f.name for f in fields(Settings)}
    unknown = set(values) - known
    if unknown:
        logger.warning(f"Ignoring unknown settings: {sorted(unknown)}")
    settings = Settings(**{k: v for k, v in values.items() if k in known})

    for env_name, attribute in ENV_OVERRIDES.items():
        if os.environ.get(env_name):
            setattr(settings, attribute, os.environ[env_name])

    settings.feeds_config_path = Path(settings.feeds_config_path)
    return settings
