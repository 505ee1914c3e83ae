# tests/unit/fakes.py: In-memory fakes for the registry and the command executor.

import re
import threading
from datetime import datetime
from typing import Dict, List


from lsm.registry import Service
from lsm.util.errors import RegistryError
from lsm.util.shell import CommandResult

TICK_TIME = datetime(2024, 5, 1, 12, 0, 0)

_EXIT = re.compile(r"^\s*exit\s+(\d+)\s*$")

class FakeRegistry:
    """In-memory stand-in for the service registry."""

    def __init__(self, services=None, pause=False):
        self.services: List[Service] = list(services or [])
        self.pause = pause
        self.checked: Dict[int, List[datetime]] = {}
        self.restarted: Dict[int, List[datetime]] = {}
        self.fail_list = False
        self.fail_writes = False
        self.pause_reads = 0
        self._lock = threading.Lock()

    def list_services(self):
        if self.fail_list:
            raise RegistryError("database is locked")
        return list(self.services)

    def get_pause_config(self):
        self.pause_reads += 1
        return self.pause

    def record_checked(self, service_id, timestamp):
        if self.fail_writes:
            raise RegistryError("disk I/O error")
        with self._lock:
            self.checked.setdefault(service_id, []).append(timestamp)

    def record_restarted(self, service_id, timestamp):
        if self.fail_writes:
            raise RegistryError("disk I/O error")
        with self._lock:
            self.restarted.setdefault(service_id, []).append(timestamp)

class FakeExecutor:
    """Records commands; 'exit N' returns N, anything else succeeds."""

    def __init__(self):
        self.calls: List[str] = []
        self.ran = threading.Event()
        self._lock = threading.Lock()

    def run(self, command):
        with self._lock:
            self.calls.append(command)
        self.ran.set()
        match = _EXIT.match(command)
        return CommandResult(command, int(match.group(1)) if match else 0)

def make_service(service_id, name, **kwargs) -> Service:
    fields = {
        "check_command": f"check-{name}",
        "restart_command": f"restart-{name}",
    }
    fields.update(kwargs)
    return Service(id=service_id, name=name, **fields)

