# tests/unit/test_config.py: Unit tests for configuration loading and validation.

import pytest
from pathlib import Path

from lsm.config import load_config, DaemonConfig
from lsm.util.errors import ConfigError

@pytest.fixture
def mock_config_path(tmp_path: Path, monkeypatch) -> Path:
    """Points the default config location at a temporary file."""
    config_path = tmp_path / "config.yaml"
    monkeypatch.setenv("LSM_CONFIG", str(config_path))
    return config_path

def test_load_valid_config(mock_config_path: Path, tmp_path: Path):
    """Tests that a valid configuration file is loaded and parsed correctly."""
    config_content = f"""
db_path: "{tmp_path}/lsm.db"
log_path: null
interval_sec: 30
max_workers: 4
command_timeout: 120
logging:
  level: debug
  json: true
"""
    mock_config_path.write_text(config_content)

    config = load_config()

    assert config.db_path == tmp_path / "lsm.db"
    assert config.log_path is None
    assert config.interval_sec == 30
    assert config.max_workers == 4
    assert config.command_timeout == 120
    assert config.logging.level == "debug"
    assert config.logging.json_format is True

def test_missing_default_config_uses_defaults(mock_config_path: Path):
    """Tests that the daemon runs on defaults when no config file exists."""
    config = load_config()

    assert config == DaemonConfig()
    assert config.interval_sec == 10
    assert config.command_timeout is None
    assert str(config.db_path) == "/var/lib/lsm/lsm.db"

def test_missing_explicit_config_raises(tmp_path: Path):
    """Tests that a ConfigError is raised if an explicit config file doesn't exist."""
    with pytest.raises(ConfigError, match="Configuration file not found"):
        load_config(tmp_path / "nope.yaml")

def test_config_validation_error(mock_config_path: Path):
    """Tests that a ConfigError is raised on an invalid configuration."""
    mock_config_path.write_text("interval_sec: 0\nmax_workers: 0")

    with pytest.raises(ConfigError, match="Configuration validation failed"):
        load_config()

def test_config_yaml_error(mock_config_path: Path):
    """Tests that a ConfigError is raised on malformed YAML."""
    mock_config_path.write_text("interval_sec: [unclosed")

    with pytest.raises(ConfigError, match="Error parsing YAML"):
        load_config()

def test_empty_config_file_uses_defaults(mock_config_path: Path):
    mock_config_path.write_text("")

    assert load_config() == DaemonConfig()
