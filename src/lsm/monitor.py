# src/lsm/monitor.py: The health monitor loop.
# On every tick the monitor consults Smart Pause, lists the registered services
# and runs a check-and-restart unit for each enabled one. Units run on a
# bounded thread pool; a service whose unit from an earlier tick is still
# queued or running is skipped rather than queued twice. Stopping the monitor
# prevents new ticks and waits for launched units, never killing commands.

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime
from typing import Callable, List, Optional, Set

from .activity import is_user_active
from .guard import ServiceGuard
from .registry import Registry, Service
from .util.errors import RegistryError
from .util.log import get_logger, service_context
from .util.shell import CommandExecutor

logger = get_logger(__name__)

DEFAULT_INTERVAL = 10.0
DEFAULT_MAX_WORKERS = 8

class HealthMonitor:
    """
    Periodically checks every enabled service and restarts the unhealthy ones.
    """

    def __init__(
        self,
        registry: Registry,
        executor: Optional[CommandExecutor] = None,
        guard: Optional[ServiceGuard] = None,
        activity_detector: Callable[[], bool] = is_user_active,
        interval: float = DEFAULT_INTERVAL,
        max_workers: int = DEFAULT_MAX_WORKERS,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.registry = registry
        self.executor = executor or CommandExecutor()
        self.guard = guard or ServiceGuard()
        self.activity_detector = activity_detector
        self.interval = interval
        self.max_workers = max_workers
        self.clock = clock

        self._state_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None
        self._pool: Optional[ThreadPoolExecutor] = None
        self._pending: Set[str] = set()
        self._pending_lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, interval: Optional[float] = None) -> None:
        """Start ticking in a background thread. Calling start on a running monitor is a no-op."""
        with self._state_lock:
            if self.running:
                logger.warning("Monitoring loop is already running.")
                return
            if interval is not None:
                self.interval = interval
            self._stop_event = threading.Event()
            self._pool = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="lsm-check")
            self._thread = threading.Thread(
                target=self._run,
                args=(self._stop_event, self._pool),
                name="lsm-monitor",
                daemon=True,
            )
            self._thread.start()
        logger.info(f"Starting monitoring loop with interval {self.interval}s")

    def stop(self, wait: bool = True) -> None:
        """Stop ticking. With wait=True, returns once launched units have finished."""
        with self._state_lock:
            thread, stop_event, pool = self._thread, self._stop_event, self._pool
            if thread is None:
                return
            stop_event.set()
            if wait:
                # The loop thread shuts the pool down on exit; this waits for its units.
                thread.join()
                pool.shutdown(wait=True)
            self._thread = self._stop_event = self._pool = None
        logger.info("Stopping monitoring loop")

    def _run(self, stop_event: threading.Event, pool: ThreadPoolExecutor) -> None:
        next_tick = time.monotonic() + self.interval
        try:
            while not stop_event.wait(max(0.0, next_tick - time.monotonic())):
                try:
                    self.tick(pool)
                except Exception as e:
                    logger.error(f"Monitoring tick failed: {e}", exc_info=True)
                next_tick += self.interval
                now = time.monotonic()
                if next_tick < now:
                    # Ticks missed while the previous one ran are dropped.
                    next_tick = now + self.interval
        finally:
            pool.shutdown(wait=False)

    def tick(self, pool: Optional[ThreadPoolExecutor] = None) -> List[Future]:
        """
        Run one monitoring pass.

        When the monitor is not started and no pool is given, a temporary pool
        is used and the call returns after every unit has completed.
        """
        logger.debug("Monitoring tick")
        if self._paused():
            logger.info("[Smart Pause] Active user session detected. Skipping checks...")
            return []

        try:
            services = self.registry.list_services()
        except RegistryError as e:
            logger.error(f"Error listing services: {e}")
            return []

        pool = pool or self._pool
        if pool is None:
            with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="lsm-check") as transient:
                return self._submit_all(transient, services)
        return self._submit_all(pool, services)

    def _paused(self) -> bool:
        try:
            pause = self.registry.get_pause_config()
        except RegistryError as e:
            logger.error(f"Error reading pause config: {e}")
            return False
        return pause and self.activity_detector()

    def _submit_all(self, pool: ThreadPoolExecutor, services: List[Service]) -> List[Future]:
        futures = []
        for service in services:
            if not service.enabled:
                continue
            with self._pending_lock:
                if service.name in self._pending:
                    logger.warning(
                        f"[Monitor] Previous check of {service.name} has not finished. Skipping this tick."
                    )
                    continue
                self._pending.add(service.name)
            futures.append(pool.submit(self._run_unit, service))
        return futures

    def _run_unit(self, service: Service) -> None:
        try:
            self.check_and_restart(service)
        finally:
            with self._pending_lock:
                self._pending.discard(service.name)

    def check_and_restart(self, service: Service) -> None:
        """Check one service and restart it if the check fails."""
        token = service_context.set(service.name)
        try:
            with self.guard.hold(service.name) as acquired:
                if not acquired:
                    logger.info(f"[Monitor] Skipping {service.name}: a scheduled restart is in progress.")
                    return
                self._check_and_restart(service)
        except Exception as e:
            logger.error(f"[Monitor] Unexpected error while handling {service.name}: {e}", exc_info=True)
        finally:
            service_context.reset(token)

    def _check_and_restart(self, service: Service) -> None:
        # The check command's exit status is the whole health signal. Operators
        # negate "is-failed" style queries ('! systemctl is-failed x') so that
        # zero means healthy.
        check = self.executor.run(service.check_command)
        self._record_checked(service)

        if check.ok:
            logger.debug(f"[Monitor] Service {service.name} is healthy.")
            return

        logger.warning(
            f"[Monitor] Service {service.name} check failed ({check.describe()}, "
            f"cmd: {service.check_command}). Restarting..."
        )
        restart = self.executor.run(service.restart_command)
        if not restart.ok:
            logger.error(f"[Monitor] Failed to restart service {service.name}: {restart.describe()}")
            return

        logger.info(f"[Monitor] Successfully restarted service {service.name}")
        self._record_restarted(service)

    def _record_checked(self, service: Service) -> None:
        try:
            self.registry.record_checked(service.id, self.clock())
        except RegistryError as e:
            logger.error(f"[Monitor] Failed to record check time for {service.name}: {e}")

    def _record_restarted(self, service: Service) -> None:
        try:
            self.registry.record_restarted(service.id, self.clock())
        except RegistryError as e:
            logger.error(f"[Monitor] Failed to record restart time for {service.name}: {e}")
