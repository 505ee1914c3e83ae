# src/lsm/__init__.py: Linux Service Manager.
# Keeps services running through periodic health checks and cron-scheduled
# preventive restarts, driven by operator-supplied shell commands.

__version__ = "0.1.0"
