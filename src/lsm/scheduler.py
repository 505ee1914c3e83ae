# src/lsm/scheduler.py: Cron-driven preventive restarts.
# At start the scheduler loads the service list once and gives every enabled
# service with a cron schedule its own trigger thread. When a trigger fires,
# the service is restarted only if its status command reports it running;
# services without a status command are restarted blindly. The job table is a
# snapshot: registry edits take effect on the next start.

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Optional

from .cron import Schedule, parse_schedule
from .guard import ServiceGuard
from .registry import Registry, Service
from .util.errors import CronError, RegistryError, ServiceNotFoundError
from .util.log import get_logger, service_context
from .util.shell import CommandExecutor

logger = get_logger(__name__)

def seconds_until(now: datetime, fire_at: datetime) -> float:
    """
    Real time between two local wall-clock times.

    Naive times are resolved in the local time zone so a DST change in
    between shortens or lengthens the wait.
    """
    return max(0.0, (fire_at.astimezone() - now.astimezone()).total_seconds())

@dataclass
class ScheduledJob:
    service: Service
    schedule: Schedule
    thread: Optional[threading.Thread] = field(default=None, repr=False)

class RestartScheduler:
    """Runs the safe-restart procedure for each scheduled service at its cron times."""

    def __init__(
        self,
        registry: Registry,
        executor: Optional[CommandExecutor] = None,
        guard: Optional[ServiceGuard] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.registry = registry
        self.executor = executor or CommandExecutor()
        self.guard = guard or ServiceGuard()
        self.clock = clock

        self._state_lock = threading.Lock()
        self._stop_event: Optional[threading.Event] = None
        self._jobs: Dict[str, ScheduledJob] = {}

    @property
    def running(self) -> bool:
        return self._stop_event is not None

    @property
    def jobs(self) -> Dict[str, ScheduledJob]:
        return dict(self._jobs)

    def start(self) -> None:
        with self._state_lock:
            if self.running:
                logger.warning("[Scheduler] Already running.")
                return
            stop_event = threading.Event()
            self._stop_event = stop_event
            self._jobs = self._load_jobs()
            for job in self._jobs.values():
                job.thread = threading.Thread(
                    target=self._run_job,
                    args=(job, stop_event),
                    name=f"lsm-cron-{job.service.name}",
                    daemon=True,
                )
                job.thread.start()
        logger.info(f"[Scheduler] Started cron scheduler with {len(self._jobs)} job(s)")

    def stop(self, wait: bool = True) -> None:
        """Cancel future firings. With wait=True, firings in progress are allowed to finish first."""
        with self._state_lock:
            stop_event, jobs = self._stop_event, self._jobs
            self._stop_event = None
            self._jobs = {}
        if stop_event is None:
            return
        stop_event.set()
        if wait:
            for job in jobs.values():
                if job.thread is not None:
                    job.thread.join()
        logger.info("[Scheduler] Stopped cron scheduler")

    def _load_jobs(self) -> Dict[str, ScheduledJob]:
        try:
            services = self.registry.list_services()
        except RegistryError as e:
            logger.error(f"[Scheduler] Failed to load jobs: {e}")
            return {}

        jobs = {}
        for service in services:
            # Unscheduled services are left to the health monitor.
            if not service.enabled or not service.cron_schedule:
                continue
            try:
                schedule = parse_schedule(service.cron_schedule)
            except CronError as e:
                logger.warning(
                    f"[Scheduler] Failed to schedule service {service.name} "
                    f"with schedule '{service.cron_schedule}': {e}"
                )
                continue
            jobs[service.name] = ScheduledJob(service, schedule)
            logger.info(f"[Scheduler] Scheduled restart for {service.name} at '{service.cron_schedule}'")
        return jobs

    def _run_job(self, job: ScheduledJob, stop_event: threading.Event) -> None:
        last_fire: Optional[datetime] = None
        while not stop_event.is_set():
            now = self.clock()
            if last_fire is not None and now < last_fire:
                now = last_fire
            try:
                fire_at = job.schedule.next(now)
            except CronError as e:
                logger.error(f"[Scheduler] Giving up on {job.service.name}: {e}")
                return
            if stop_event.wait(seconds_until(now, fire_at)):
                return
            last_fire = fire_at
            self.safe_restart(job.service)

    def fire(self, name: str) -> bool:
        """Run the safe-restart procedure for a scheduled service right away."""
        job = self._jobs.get(name)
        if job is None:
            raise ServiceNotFoundError(f"No scheduled job for service '{name}'.")
        return self.safe_restart(job.service)

    def safe_restart(self, service: Service) -> bool:
        """
        Restart a service if it is running.

        Returns True when the restart command ran and succeeded.
        """
        token = service_context.set(service.name)
        try:
            with self.guard.hold(service.name) as acquired:
                if not acquired:
                    logger.warning(
                        f"[Scheduler] Skipping scheduled restart for {service.name}: "
                        f"a health check or restart is already in progress."
                    )
                    return False
                return self._safe_restart(service)
        except Exception as e:
            logger.error(f"[Scheduler] Unexpected error while restarting {service.name}: {e}", exc_info=True)
            return False
        finally:
            service_context.reset(token)

    def _safe_restart(self, service: Service) -> bool:
        logger.info(f"[Scheduler] Triggered scheduled restart for {service.name}")

        if service.status_command:
            status = self.executor.run(service.status_command)
            if not status.ok:
                logger.info(f"[Scheduler] Skipping restart for {service.name}: Status check failed (not running?)")
                return False
        else:
            logger.warning(f"[Scheduler] Warning: No status_command for {service.name}. Restarting blindly.")

        restart = self.executor.run(service.restart_command)
        if not restart.ok:
            logger.error(f"[Scheduler] Failed to restart {service.name}: {restart.describe()}")
            return False

        logger.info(f"[Scheduler] Successfully restarted {service.name}")
        try:
            self.registry.record_restarted(service.id, self.clock())
        except RegistryError as e:
            logger.error(f"[Scheduler] Failed to record restart time for {service.name}: {e}")
        return True
