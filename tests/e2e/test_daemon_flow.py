# tests/e2e/test_daemon_flow.py: E2E tests running real shell commands against a real registry.

import time
from pathlib import Path

import pytest

from lsm.config import DaemonConfig
from lsm.daemon import Daemon
from lsm.monitor import HealthMonitor
from lsm.registry import Service, ServiceRegistry
from lsm.scheduler import RestartScheduler

@pytest.fixture
def registry(tmp_path: Path) -> ServiceRegistry:
    registry = ServiceRegistry(tmp_path / "lsm.db")
    registry.initialize()
    return registry

def wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.05)
    return predicate()

def test_failed_check_triggers_restart(tmp_path: Path, registry: ServiceRegistry):
    """
    Tests one monitor tick end to end: a failing check runs the restart command
    and both timestamps land in the database.
    """
    marker = tmp_path / "restarted"
    registry.add_service(Service(name="broken", restart_command=f"touch {marker}", check_command="exit 3"))
    registry.add_service(Service(name="healthy", restart_command="exit 1", check_command="true"))

    monitor = HealthMonitor(registry, activity_detector=lambda: False)
    monitor.tick()

    assert marker.exists()
    broken = registry.get_service("broken")
    healthy = registry.get_service("healthy")
    assert broken.last_checked is not None
    assert broken.last_restarted is not None
    assert healthy.last_checked is not None
    assert healthy.last_restarted is None

def test_smart_pause_skips_tick(tmp_path: Path, registry: ServiceRegistry):
    marker = tmp_path / "restarted"
    registry.add_service(Service(name="broken", restart_command=f"touch {marker}", check_command="false"))
    registry.set_pause_config(True)

    monitor = HealthMonitor(registry, activity_detector=lambda: True)
    monitor.tick()

    assert not marker.exists()
    assert registry.get_service("broken").last_checked is None

def test_scheduled_restart_respects_status(tmp_path: Path, registry: ServiceRegistry):
    """Tests that a stopped service is left alone and a running one is restarted."""
    stopped_marker = tmp_path / "stopped-restarted"
    running_marker = tmp_path / "running-restarted"
    registry.add_service(Service(
        name="stopped", restart_command=f"touch {stopped_marker}", check_command="true",
        status_command="exit 3", cron_schedule="@daily",
    ))
    registry.add_service(Service(
        name="running", restart_command=f"touch {running_marker}", check_command="true",
        status_command="true", cron_schedule="@daily",
    ))

    scheduler = RestartScheduler(registry)
    scheduler.start()
    try:
        assert set(scheduler.jobs) == {"stopped", "running"}
        assert scheduler.fire("stopped") is False
        assert scheduler.fire("running") is True
    finally:
        scheduler.stop()

    assert not stopped_marker.exists()
    assert running_marker.exists()
    assert registry.get_service("running").last_restarted is not None
    assert registry.get_service("stopped").last_restarted is None

def test_daemon_checks_services_until_stopped(tmp_path: Path, registry: ServiceRegistry):
    """Tests that a started daemon keeps checking services and stops cleanly."""
    counter = tmp_path / "checks"
    registry.add_service(Service(
        name="counted", restart_command="true", check_command=f"echo x >> {counter}",
    ))
    config = DaemonConfig(db_path=tmp_path / "lsm.db", log_path=None, interval_sec=0.1)

    daemon = Daemon(config, registry)
    daemon.monitor.activity_detector = lambda: False
    daemon.start()
    try:
        assert wait_for(lambda: counter.exists() and len(counter.read_text().splitlines()) >= 2)
    finally:
        daemon.request_shutdown()
        assert daemon.wait(0)
        daemon.stop()

    assert not daemon.monitor.running
    assert not daemon.scheduler.running
    assert registry.get_service("counted").last_checked is not None
