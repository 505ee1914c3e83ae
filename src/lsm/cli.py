# src/lsm/cli.py: Command-Line Interface (CLI) entry point.
# Implemented using Typer, this module provides the 'lsm' command. It manages
# the service registry (add, update, remove, toggle, list), the Smart Pause and
# log rotation settings, and runs the daemon in the foreground. Every command
# that changes state or runs the daemon requires root.

import os
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .config import DaemonConfig, load_config
from .cron import parse_schedule
from .daemon import run_daemon
from .registry import Service, ServiceRegistry
from .util.errors import LsmError, PrivilegeError

app = typer.Typer(
    help="Linux Service Manager: keeps services healthy with check commands and scheduled restarts.",
    add_completion=False,
)
console = Console()

ROOT_COMMANDS = {"daemon", "add", "remove", "update", "toggle", "config-log", "config-pause"}

def is_root() -> bool:
    return os.geteuid() == 0

def fail(error: LsmError) -> None:
    console.print(f"[bold red]Error:[/bold red] {escape(str(error))}")
    raise typer.Exit(error.exit_code)

def get_registry(ctx: typer.Context) -> ServiceRegistry:
    """Opens the registry configured for this invocation and handles errors."""
    config: DaemonConfig = ctx.obj
    registry = ServiceRegistry(config.db_path)
    try:
        registry.initialize()
    except LsmError as e:
        fail(e)
    return registry

def validate_schedule(schedule: str) -> None:
    if schedule:
        parse_schedule(schedule)

def version_callback(value: bool):
    if value:
        print(f"lsm version: {__version__}")
        raise typer.Exit()

@app.callback()
def main(
    ctx: typer.Context,
    config_path: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Path to the daemon config.yaml."
    ),
    version: Optional[bool] = typer.Option(
        None, "--version", callback=version_callback, is_eager=True
    ),
):
    """Linux Service Manager CLI."""
    if ctx.invoked_subcommand in ROOT_COMMANDS and not is_root():
        fail(PrivilegeError("This command requires root privileges. Please run with sudo."))
    try:
        ctx.obj = load_config(config_path)
    except LsmError as e:
        fail(e)

@app.command()
def daemon(ctx: typer.Context):
    """Start the monitoring and scheduling daemon."""
    raise typer.Exit(run_daemon(ctx.obj))

@app.command()
def add(
    ctx: typer.Context,
    name: str = typer.Option(..., "--name", help="Service name (unique)."),
    restart: str = typer.Option(..., "--restart", help="Command to restart the service."),
    check: str = typer.Option(..., "--check", help="Command to check health (exit != 0 means failed)."),
    status: str = typer.Option(
        "", "--status", help="Command to check status (exit 0 means running). Used for safe scheduling."
    ),
    schedule: str = typer.Option(
        "", "--schedule", help="Cron schedule (e.g. '@daily', '0 0 * * *'). Leave empty for none."
    ),
):
    """Add a new service."""
    if not (name.strip() and restart.strip() and check.strip()):
        console.print("[bold red]Error:[/bold red] name, restart, and check must not be empty.")
        raise typer.Exit(1)
    registry = get_registry(ctx)
    try:
        validate_schedule(schedule)
        registry.add_service(Service(
            name=name,
            restart_command=restart,
            check_command=check,
            status_command=status,
            cron_schedule=schedule,
            enabled=True,
        ))
    except LsmError as e:
        fail(e)
    console.print(f"Service '{name}' added successfully.")

@app.command()
def remove(
    ctx: typer.Context,
    name: str = typer.Option(..., "--name", help="Service name."),
):
    """Remove a service."""
    registry = get_registry(ctx)
    try:
        registry.remove_service(name)
    except LsmError as e:
        fail(e)
    console.print(f"Service '{name}' removed. (Restart daemon to fully apply changes if running)")

@app.command()
def update(
    ctx: typer.Context,
    name: str = typer.Option(..., "--name", help="Service name."),
    restart: Optional[str] = typer.Option(None, "--restart", help="Command to restart the service."),
    check: Optional[str] = typer.Option(None, "--check", help="Command to check health."),
    status: Optional[str] = typer.Option(None, "--status", help="Status command; pass '' to clear."),
    schedule: Optional[str] = typer.Option(None, "--schedule", help="Cron schedule; pass '' to clear."),
):
    """Update an existing service. Only the options given are changed."""
    registry = get_registry(ctx)
    try:
        existing = registry.get_service(name)
        changes = {}
        if restart:
            changes["restart_command"] = restart
        if check:
            changes["check_command"] = check
        if status is not None:
            changes["status_command"] = status
        if schedule is not None:
            validate_schedule(schedule)
            changes["cron_schedule"] = schedule
        registry.update_service(existing.model_copy(update=changes))
    except LsmError as e:
        fail(e)
    console.print(f"Service '{name}' updated. (Restart daemon to apply changes)")

@app.command(name="list")
def list_services(ctx: typer.Context):
    """List all services."""
    registry = get_registry(ctx)
    try:
        services = registry.list_services()
    except LsmError as e:
        fail(e)

    table = Table("ID", "Name", "Schedule", "Enabled", "Last Checked", "Last Restarted")
    for service in services:
        table.add_row(
            str(service.id),
            service.name,
            service.cron_schedule or "-",
            str(service.enabled).lower(),
            service.last_checked.isoformat(timespec="seconds") if service.last_checked else "-",
            service.last_restarted.isoformat(timespec="seconds") if service.last_restarted else "-",
        )
    console.print(table)

@app.command()
def toggle(
    ctx: typer.Context,
    name: str = typer.Option(..., "--name", help="Service name."),
):
    """Toggle service monitoring (enable/disable)."""
    registry = get_registry(ctx)
    try:
        service = registry.get_service(name)
        registry.toggle_service(name, not service.enabled)
    except LsmError as e:
        fail(e)
    console.print(f"Service '{name}' enabled set to {str(not service.enabled).lower()}.")

@app.command("config-log")
def config_log(
    ctx: typer.Context,
    max_size: Optional[int] = typer.Option(None, "--max-size", min=1, help="Max size in MB."),
    max_backups: Optional[int] = typer.Option(None, "--max-backups", min=0, help="Max number of old log files."),
    max_age: Optional[int] = typer.Option(None, "--max-age", min=0, help="Max age in days."),
    compress: Optional[bool] = typer.Option(None, "--compress/--no-compress", help="Compress old log files."),
):
    """Configure log rotation settings."""
    registry = get_registry(ctx)
    try:
        existing = registry.get_log_config()
        changes = {
            key: value
            for key, value in {
                "max_size": max_size,
                "max_backups": max_backups,
                "max_age": max_age,
                "compress": compress,
            }.items()
            if value is not None
        }
        registry.set_log_config(existing.model_copy(update=changes))
    except LsmError as e:
        fail(e)
    console.print("Log configuration updated. Restart daemon to apply.")

@app.command("config-pause")
def config_pause(
    ctx: typer.Context,
    enable: bool = typer.Option(..., "--enable/--disable", help="Enable/Disable Smart Pause."),
):
    """Configure Smart Pause (skip checks while a user is logged in)."""
    registry = get_registry(ctx)
    try:
        registry.set_pause_config(enable)
    except LsmError as e:
        fail(e)
    console.print(f"Smart Pause configuration updated (Enabled: {str(enable).lower()}).")

def run_cli():
    """Main entry point for the CLI application."""
    app()

if __name__ == "__main__":
    run_cli()
