# src/lsm/util/paths.py: Default file locations.
# The daemon runs as root, so the database and log file default to the system
# locations under /var. The daemon config file and the single-instance lock
# live in the platform directories resolved by platformdirs, and every location
# can be overridden through an environment variable.

import os
from pathlib import Path
import platformdirs

APP_NAME = "lsm"

DEFAULT_DB_PATH = Path("/var/lib/lsm/lsm.db")
DEFAULT_LOG_PATH = Path("/var/log/lsm/lsm.log")

def get_config_path() -> Path:
    """Path of the daemon YAML config ($LSM_CONFIG overrides)."""
    override = os.environ.get("LSM_CONFIG")
    if override:
        return expand_path(override)
    return Path(platformdirs.site_config_dir(APP_NAME)) / "config.yaml"

def get_state_dir() -> Path:
    """Directory for runtime state such as the daemon lock ($LSM_STATE_DIR overrides)."""
    override = os.environ.get("LSM_STATE_DIR")
    if override:
        return expand_path(override)
    return Path(platformdirs.user_state_dir(APP_NAME))

def get_lock_path() -> Path:
    return get_state_dir() / "lsmd.lock"

def expand_path(path: str | Path) -> Path:
    """Expand environment variables and user home directory in a path."""
    return Path(os.path.expandvars(os.path.expanduser(str(path)))).resolve()
