"""
Configuration loading for the plan catalog.
Settings come from a YAML file, overridden by environment variables.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict

import yaml
from loguru import logger


DEFAULT_DATABASE_URL = "sqlite:///planfinder.db"
DEFAULT_STORAGE_DIR = "storage"
DEFAULT_THUMBNAIL_WIDTH = 400


def load_config(config_path: str = "config.yaml") -> dict:
    """Load configuration from YAML file."""
    config_file = Path(config_path)
    if not config_file.exists():
        return {}

    with open(config_file, 'r', encoding='utf-8') as f:
        return yaml.safe_load(f) or {}


@dataclass
class Settings:
    database_url: str = DEFAULT_DATABASE_URL
    storage_dir: str = DEFAULT_STORAGE_DIR
    thumbnail_width: int = DEFAULT_THUMBNAIL_WIDTH

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "Settings":
        """Resolve settings from a loaded config dict and the environment."""
        database_url = (
            os.getenv('DATABASE_URL') or
            config.get('database', {}).get('url') or
            DEFAULT_DATABASE_URL
        )
        storage_dir = (
            os.getenv('PLANFINDER_STORAGE_DIR') or
            config.get('storage', {}).get('dir') or
            DEFAULT_STORAGE_DIR
        )
        thumbnail_width = int(config.get('thumbnails', {}).get('width', DEFAULT_THUMBNAIL_WIDTH))

        settings = cls(
            database_url=database_url,
            storage_dir=storage_dir,
            thumbnail_width=thumbnail_width,
        )
        logger.debug(f"Resolved settings: {settings}")
        return settings

    @classmethod
    def load(cls, config_path: str = "config.yaml") -> "Settings":
        return cls.from_config(load_config(config_path))
