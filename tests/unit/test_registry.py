# tests/unit/test_registry.py: Unit tests for the SQLite service registry.

from datetime import datetime
from pathlib import Path

import pytest

from lsm.config import LogConfig
from lsm.registry import Service, ServiceRegistry
from lsm.util.errors import DuplicateServiceError, RegistryError, ServiceNotFoundError

@pytest.fixture
def registry(tmp_path: Path) -> ServiceRegistry:
    """Creates an initialized registry in a nested directory that does not exist yet."""
    registry = ServiceRegistry(tmp_path / "var" / "lib" / "lsm" / "lsm.db")
    registry.initialize()
    return registry

def web() -> Service:
    return Service(
        name="web",
        restart_command="systemctl restart nginx",
        check_command="! systemctl is-failed nginx",
        status_command="systemctl is-active nginx",
        cron_schedule="@daily",
    )

def test_add_and_get_service(registry: ServiceRegistry):
    """Tests that an added service is stored with a new id and default timestamps."""
    added = registry.add_service(web())

    stored = registry.get_service("web")
    assert stored.id == added.id > 0
    assert stored.check_command == "! systemctl is-failed nginx"
    assert stored.enabled is True
    assert stored.last_checked is None
    assert stored.last_restarted is None

def test_duplicate_name_is_rejected(registry: ServiceRegistry):
    """Tests that service names are unique."""
    registry.add_service(web())
    with pytest.raises(DuplicateServiceError):
        registry.add_service(web())

def test_optional_fields_default_to_empty(registry: ServiceRegistry):
    """Tests that a service without status or schedule reads back empty strings."""
    registry.add_service(Service(name="db", restart_command="r", check_command="c"))

    db = registry.get_service("db")
    assert db.status_command == ""
    assert db.cron_schedule == ""

def test_list_services_in_insertion_order(registry: ServiceRegistry):
    registry.add_service(web())
    registry.add_service(Service(name="db", restart_command="r", check_command="c"))

    assert [s.name for s in registry.list_services()] == ["web", "db"]

def test_update_and_toggle(registry: ServiceRegistry):
    """Tests that update changes commands and toggle flips enabled."""
    registry.add_service(web())
    existing = registry.get_service("web")

    registry.update_service(existing.model_copy(update={"cron_schedule": "", "restart_command": "exit 0"}))
    registry.toggle_service("web", False)

    updated = registry.get_service("web")
    assert updated.cron_schedule == ""
    assert updated.restart_command == "exit 0"
    assert updated.enabled is False

def test_missing_service_operations_raise(registry: ServiceRegistry):
    """Tests that operations on unknown names raise ServiceNotFoundError."""
    with pytest.raises(ServiceNotFoundError):
        registry.get_service("ghost")
    with pytest.raises(ServiceNotFoundError):
        registry.remove_service("ghost")
    with pytest.raises(ServiceNotFoundError):
        registry.toggle_service("ghost", True)
    with pytest.raises(ServiceNotFoundError):
        registry.update_service(Service(name="ghost", restart_command="r", check_command="c"))

def test_remove_service(registry: ServiceRegistry):
    registry.add_service(web())
    registry.remove_service("web")
    assert registry.list_services() == []

def test_record_timestamps(registry: ServiceRegistry):
    """Tests that check and restart times are persisted independently."""
    added = registry.add_service(web())
    checked_at = datetime(2024, 5, 1, 12, 0, 0)
    restarted_at = datetime(2024, 5, 1, 12, 0, 5)

    registry.record_checked(added.id, checked_at)
    registry.record_restarted(added.id, restarted_at)

    stored = registry.get_service("web")
    assert stored.last_checked == checked_at
    assert stored.last_restarted == restarted_at

def test_pause_config_defaults_to_false(registry: ServiceRegistry):
    assert registry.get_pause_config() is False
    registry.set_pause_config(True)
    assert registry.get_pause_config() is True
    registry.set_pause_config(False)
    assert registry.get_pause_config() is False

def test_log_config_defaults_and_round_trip(registry: ServiceRegistry):
    """Tests that log settings default sensibly and persist when set."""
    assert registry.get_log_config() == LogConfig(max_size=10, max_backups=3, max_age=28, compress=True)

    registry.set_log_config(LogConfig(max_size=50, max_backups=5, max_age=7, compress=False))

    assert registry.get_log_config() == LogConfig(max_size=50, max_backups=5, max_age=7, compress=False)

def test_uninitialized_database_raises_registry_error(tmp_path: Path):
    """Tests that SQL errors surface as RegistryError."""
    registry = ServiceRegistry(tmp_path / "empty.db")
    with pytest.raises(RegistryError):
        registry.list_services()
