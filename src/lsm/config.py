# src/lsm/config.py: Pydantic models for configuration.
# This module defines the schema of the daemon's 'config.yaml' (database and
# log locations, polling interval, worker cap, command timeout, log format) and
# of the log-rotation settings stored in the service registry. It is
# responsible for loading and validating the YAML file.

from __future__ import annotations

import yaml
from pathlib import Path
from pydantic import BaseModel, Field, ValidationError
from typing import Optional

from .util.paths import DEFAULT_DB_PATH, DEFAULT_LOG_PATH, get_config_path, expand_path
from .util.errors import ConfigError

# --- Pydantic Models for Configuration Schema ---

class LoggingSettings(BaseModel):
    level: str = "INFO"
    json_format: bool = Field(False, alias="json")

    model_config = {"populate_by_name": True}

class LogConfig(BaseModel):
    """Log rotation settings, persisted in the registry."""
    max_size: int = Field(10, ge=1)  # MB
    max_backups: int = Field(3, ge=0)
    max_age: int = Field(28, ge=0)  # days, 0 keeps everything
    compress: bool = True

class DaemonConfig(BaseModel):
    db_path: Path = DEFAULT_DB_PATH
    log_path: Optional[Path] = DEFAULT_LOG_PATH
    interval_sec: float = Field(10.0, gt=0)
    max_workers: int = Field(8, ge=1)
    command_timeout: Optional[float] = Field(None, gt=0)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


# --- Configuration Loading ---

def load_config(path: Optional[Path] = None) -> DaemonConfig:
    """
    Loads, validates, and returns the daemon configuration.

    An explicit path must exist. The default path is optional: when it is
    missing, the built-in defaults are returned.
    """
    config_path = expand_path(path) if path else get_config_path()
    if not config_path.is_file():
        if path:
            raise ConfigError(f"Configuration file not found: '{config_path}'.")
        return DaemonConfig()

    try:
        with open(config_path, "r") as f:
            raw_config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Error parsing YAML configuration: {e}")
    except OSError as e:
        raise ConfigError(f"Failed to read configuration file '{config_path}': {e}")

    try:
        return DaemonConfig.model_validate(raw_config)
    except ValidationError as e:
        raise ConfigError(f"Configuration validation failed: {e}")
