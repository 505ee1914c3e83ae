# src/lsm/registry.py: SQLite-backed service registry.
# This module stores the supervised services and the process-wide settings
# (Smart Pause flag, log rotation) in a SQLite database. The monitor and the
# scheduler depend only on the small Registry protocol: a batch list of
# services, the pause flag, and the two timestamp writes. The CLI uses the full
# CRUD surface of ServiceRegistry.

from __future__ import annotations

import sqlite3
from contextlib import closing, contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Optional, Protocol

from pydantic import BaseModel, ConfigDict

from .config import LogConfig
from .util.errors import RegistryError, ServiceNotFoundError, DuplicateServiceError

SERVICE_COLUMNS = (
    "id, name, restart_command, check_command, status_command, cron_schedule, "
    "enabled, last_checked, last_restarted"
)

SCHEMA = """
CREATE TABLE IF NOT EXISTS services (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    restart_command TEXT NOT NULL,
    check_command TEXT NOT NULL,
    status_command TEXT,
    cron_schedule TEXT,
    enabled BOOLEAN DEFAULT 1,
    last_checked DATETIME,
    last_restarted DATETIME
);
CREATE TABLE IF NOT EXISTS app_config (
    key TEXT PRIMARY KEY,
    value TEXT
);
"""

PAUSE_KEY = "pause_on_active_user"


class Service(BaseModel):
    """Snapshot of one supervised service."""
    model_config = ConfigDict(frozen=True)

    id: int = 0
    name: str
    restart_command: str
    check_command: str
    status_command: str = ""
    cron_schedule: str = ""
    enabled: bool = True
    last_checked: Optional[datetime] = None
    last_restarted: Optional[datetime] = None


class Registry(Protocol):
    """What the monitor and the scheduler need from the storage layer."""

    def list_services(self) -> List[Service]: ...

    def get_pause_config(self) -> bool: ...

    def record_checked(self, service_id: int, timestamp: datetime) -> None: ...

    def record_restarted(self, service_id: int, timestamp: datetime) -> None: ...


class ServiceRegistry:
    def __init__(self, db_path: Path, timeout: float = 5.0):
        self.db_path = Path(db_path)
        self.timeout = timeout

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            with closing(sqlite3.connect(self.db_path, timeout=self.timeout)) as conn:
                with conn:
                    yield conn
        except sqlite3.IntegrityError as e:
            raise DuplicateServiceError(f"Service name already exists: {e}")
        except sqlite3.Error as e:
            raise RegistryError(f"Registry operation failed on '{self.db_path}': {e}")

    def initialize(self) -> None:
        """Create the database file, its directory and the tables if missing."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise RegistryError(f"Cannot create registry directory '{self.db_path.parent}': {e}")
        with self._connect() as conn:
            conn.executescript(SCHEMA)

    # --- Services ---

    def add_service(self, service: Service) -> Service:
        with self._connect() as conn:
            cursor = conn.execute(
                "INSERT INTO services(name, restart_command, check_command, status_command, "
                "cron_schedule, enabled) VALUES(?, ?, ?, ?, ?, ?)",
                (
                    service.name,
                    service.restart_command,
                    service.check_command,
                    service.status_command,
                    service.cron_schedule,
                    service.enabled,
                ),
            )
            service_id = cursor.lastrowid
        return service.model_copy(update={"id": service_id})

    def list_services(self) -> List[Service]:
        with self._connect() as conn:
            rows = conn.execute(f"SELECT {SERVICE_COLUMNS} FROM services ORDER BY id").fetchall()
        return [_row_to_service(row) for row in rows]

    def get_service(self, name: str) -> Service:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {SERVICE_COLUMNS} FROM services WHERE name = ?", (name,)
            ).fetchone()
        if row is None:
            raise ServiceNotFoundError(f"Service '{name}' not found.")
        return _row_to_service(row)

    def update_service(self, service: Service) -> None:
        """Update the mutable fields of a service, identified by name."""
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE services SET restart_command = ?, check_command = ?, status_command = ?, "
                "cron_schedule = ?, enabled = ? WHERE name = ?",
                (
                    service.restart_command,
                    service.check_command,
                    service.status_command,
                    service.cron_schedule,
                    service.enabled,
                    service.name,
                ),
            )
            updated = cursor.rowcount
        if updated == 0:
            raise ServiceNotFoundError(f"Service '{service.name}' not found.")

    def toggle_service(self, name: str, enabled: bool) -> None:
        with self._connect() as conn:
            cursor = conn.execute("UPDATE services SET enabled = ? WHERE name = ?", (enabled, name))
            updated = cursor.rowcount
        if updated == 0:
            raise ServiceNotFoundError(f"Service '{name}' not found.")

    def remove_service(self, name: str) -> None:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM services WHERE name = ?", (name,))
            updated = cursor.rowcount
        if updated == 0:
            raise ServiceNotFoundError(f"Service '{name}' not found.")

    def record_checked(self, service_id: int, timestamp: datetime) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE services SET last_checked = ? WHERE id = ?",
                (timestamp.isoformat(), service_id),
            )

    def record_restarted(self, service_id: int, timestamp: datetime) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE services SET last_restarted = ? WHERE id = ?",
                (timestamp.isoformat(), service_id),
            )

    # --- Settings ---

    def _get_setting(self, key: str) -> Optional[str]:
        with self._connect() as conn:
            row = conn.execute("SELECT value FROM app_config WHERE key = ?", (key,)).fetchone()
        return row[0] if row else None

    def _set_settings(self, values: dict) -> None:
        with self._connect() as conn:
            conn.executemany(
                "INSERT OR REPLACE INTO app_config(key, value) VALUES(?, ?)",
                list(values.items()),
            )

    def get_pause_config(self) -> bool:
        """Smart Pause flag; defaults to False when never set."""
        return self._get_setting(PAUSE_KEY) == "true"

    def set_pause_config(self, enabled: bool) -> None:
        self._set_settings({PAUSE_KEY: "true" if enabled else "false"})

    def get_log_config(self) -> LogConfig:
        with self._connect() as conn:
            rows = conn.execute("SELECT key, value FROM app_config WHERE key LIKE 'log_%'").fetchall()
        stored = {key[len("log_"):]: value for key, value in rows}
        values = {}
        for field in ("max_size", "max_backups", "max_age"):
            if field in stored:
                try:
                    values[field] = int(stored[field])
                except ValueError:
                    # Unparseable values fall back to the default.
                    continue
        if "compress" in stored:
            values["compress"] = stored["compress"] == "true"
        return LogConfig(**values)

    def set_log_config(self, config: LogConfig) -> None:
        self._set_settings({
            "log_max_size": str(config.max_size),
            "log_max_backups": str(config.max_backups),
            "log_max_age": str(config.max_age),
            "log_compress": "true" if config.compress else "false",
        })


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)


def _row_to_service(row) -> Service:
    return Service(
        id=row[0],
        name=row[1],
        restart_command=row[2],
        check_command=row[3],
        status_command=row[4] or "",
        cron_schedule=row[5] or "",
        enabled=bool(row[6]),
        last_checked=_parse_timestamp(row[7]),
        last_restarted=_parse_timestamp(row[8]),
    )
