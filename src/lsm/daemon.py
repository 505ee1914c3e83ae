# src/lsm/daemon.py: The main daemon process (lsmd).
# This module wires the daemon together: it takes a cross-process lock so only
# one instance runs, opens the registry, configures logging from the stored
# rotation settings, then starts the restart scheduler and the health monitor
# and keeps them running until SIGINT or SIGTERM.

import signal
import sys
import threading
from pathlib import Path
from typing import Optional

from filelock import FileLock, Timeout

from .config import DaemonConfig, load_config
from .guard import ServiceGuard
from .monitor import HealthMonitor
from .registry import ServiceRegistry
from .scheduler import RestartScheduler
from .util.errors import LsmError, RegistryError
from .util.log import get_logger, setup_logging
from .util.paths import get_lock_path
from .util.shell import CommandExecutor

logger = get_logger(__name__)

class Daemon:
    """Owns the monitor and the scheduler for one daemon run."""

    def __init__(self, config: DaemonConfig, registry: ServiceRegistry):
        self.config = config
        self.registry = registry
        executor = CommandExecutor(timeout=config.command_timeout)
        guard = ServiceGuard()
        self.monitor = HealthMonitor(
            registry,
            executor=executor,
            guard=guard,
            interval=config.interval_sec,
            max_workers=config.max_workers,
        )
        self.scheduler = RestartScheduler(registry, executor=executor, guard=guard)
        self._shutdown = threading.Event()

    def start(self) -> None:
        self.scheduler.start()
        self.monitor.start(self.config.interval_sec)
        logger.info("LSM Daemon started.")

    def stop(self) -> None:
        logger.info("Shutting down...")
        self.monitor.stop()
        self.scheduler.stop()

    def request_shutdown(self, signum=None, frame=None) -> None:
        self._shutdown.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._shutdown.wait(timeout)

def _setup_logging(config: DaemonConfig, registry: ServiceRegistry) -> None:
    try:
        log_config = registry.get_log_config()
    except RegistryError as e:
        print(f"Failed to load log config: {e}. Using defaults.", file=sys.stderr)
        log_config = None
    try:
        setup_logging(config.log_path, log_config, config.logging.level, config.logging.json_format)
    except OSError as e:
        print(f"Failed to open log file '{config.log_path}': {e}. Logging to stderr.", file=sys.stderr)
        setup_logging(None, log_config, config.logging.level, config.logging.json_format)

def run_daemon(config: DaemonConfig, lock_path: Optional[Path] = None) -> int:
    """
    Run the daemon in the foreground until a termination signal arrives.

    Returns the process exit code.
    """
    lock_path = lock_path or get_lock_path()
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    lock = FileLock(lock_path)

    try:
        with lock.acquire(timeout=1):
            registry = ServiceRegistry(config.db_path)
            registry.initialize()
            _setup_logging(config, registry)

            daemon = Daemon(config, registry)
            signal.signal(signal.SIGINT, daemon.request_shutdown)
            signal.signal(signal.SIGTERM, daemon.request_shutdown)

            daemon.start()
            try:
                daemon.wait()
            finally:
                daemon.stop()
            return 0
    except Timeout:
        logger.error("Another instance of the daemon is already running. Exiting.")
        return 1
    except LsmError as e:
        logger.error(f"Daemon failed to start: {e}")
        return e.exit_code

def main() -> None:
    """Console entry point for 'lsmd'."""
    try:
        config = load_config()
    except LsmError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(e.exit_code)
    sys.exit(run_daemon(config))

if __name__ == "__main__":
    main()
