# src/lsm/util/errors.py: Typed exceptions and exit codes.
# This module defines the exception hierarchy shared by the registry, the
# configuration loader, the cron parser and the CLI. Each exception carries the
# process exit code the CLI uses when the error reaches the top level.

class LsmError(Exception):
    """Base exception for the application."""
    exit_code = 1

class ConfigError(LsmError):
    """Configuration-related errors."""
    exit_code = 2

class RegistryError(LsmError):
    """Service registry storage errors."""
    exit_code = 3

class ServiceNotFoundError(RegistryError):
    """No service with the requested name exists."""
    exit_code = 4

class DuplicateServiceError(RegistryError):
    """A service with the same name is already registered."""
    exit_code = 5

class CronError(LsmError):
    """Malformed or unsatisfiable cron schedule."""
    exit_code = 6

class PrivilegeError(LsmError):
    """The command needs root privileges."""
    exit_code = 7
