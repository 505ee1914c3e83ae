# src/lsm/activity.py: Interactive user detection for Smart Pause.
# An interactive session is assumed whenever 'who' lists at least one login.
# A failing query is reported as "no user", so monitoring keeps running.

import subprocess

from .util.log import get_logger

logger = get_logger(__name__)

def is_user_active() -> bool:
    """Return True if any user is logged in according to 'who'."""
    try:
        result = subprocess.run(
            ["who"],
            capture_output=True,
            text=True,
            check=True,
        )
    except (OSError, subprocess.CalledProcessError) as e:
        logger.warning(f"Error checking active users: {e}")
        return False
    return bool(result.stdout.strip())
