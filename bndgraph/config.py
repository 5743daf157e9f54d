"""Persisted settings, stored as JSON in the settings directory."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from bndgraph.errors import ConfigError
from bndgraph.log import LogConfig

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_DIR = Path.home() / ".bndgraph"
SETTINGS_FILE = "settings.json"


class Settings(BaseModel):
    bnd_workspace: Optional[Path] = None
    settings_dir: Path = Field(default_factory=lambda: DEFAULT_SETTINGS_DIR)
    cache_file: str = "deps.cache"
    config_root: str = "cnf"
    build_image: str = "build.image"
    leaf_limit: Optional[int] = None
    logging: LogConfig = Field(default_factory=LogConfig)

    @field_validator("leaf_limit")
    @classmethod
    def _positive_limit(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value <= 0:
            raise ValueError("leaf_limit must be positive")
        return value

    @property
    def cache_path(self) -> Path:
        return self.settings_dir / self.cache_file

    @property
    def settings_path(self) -> Path:
        return self.settings_dir / SETTINGS_FILE


def load_settings(settings_dir: Path | None = None) -> Settings:
    """Load settings from *settings_dir*, falling back to defaults if absent."""
    settings_dir = Path(settings_dir) if settings_dir else DEFAULT_SETTINGS_DIR
    path = settings_dir / SETTINGS_FILE
    if not path.exists():
        logger.debug("no settings at %s, using defaults", path)
        return Settings(settings_dir=settings_dir)
    try:
        data = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Could not read settings from {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Settings in {path} must be a JSON object")
    data["settings_dir"] = str(settings_dir)
    try:
        return Settings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid settings in {path}: {e}") from e


def save_settings(settings: Settings) -> Path:
    """Write *settings* to its settings directory."""
    path = settings.settings_path
    try:
        settings.settings_dir.mkdir(parents=True, exist_ok=True)
        path.write_text(settings.model_dump_json(indent=2, exclude={"settings_dir"}))
    except OSError as e:
        raise ConfigError(f"Could not write settings to {path}: {e}") from e
    return path
