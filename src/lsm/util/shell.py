# src/lsm/util/shell.py: Shell command execution.
# This module runs operator-supplied command strings through /bin/sh so that
# pipes, redirection and '!' negation are available. The exit status is the
# only signal consumed: output is discarded and never parsed.

import subprocess
from dataclasses import dataclass
from typing import Optional

SHELL = "/bin/sh"

@dataclass(frozen=True)
class CommandResult:
    """Outcome of a single shell command."""
    command: str
    returncode: Optional[int]
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def describe(self) -> str:
        if self.error:
            return self.error
        return f"exit status {self.returncode}"

def run_shell(command: str, timeout: Optional[float] = None) -> CommandResult:
    """
    Run a command string with the system shell.

    Args:
        command: The command line, passed verbatim to 'sh -c'.
        timeout: Seconds to wait before killing the command. None waits forever.

    Returns:
        A CommandResult. Launch errors and timeouts are reported as failures,
        never raised.
    """
    try:
        process = subprocess.run(
            [SHELL, "-c", command],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired:
        return CommandResult(command, None, f"timed out after {timeout} seconds")
    except OSError as e:
        return CommandResult(command, None, f"failed to launch: {e}")
    return CommandResult(command, process.returncode)

class CommandExecutor:
    """Runs commands with a fixed timeout policy; shared by the monitor and the scheduler."""

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout

    def run(self, command: str) -> CommandResult:
        return run_shell(command, timeout=self.timeout)
