from __future__ import annotations

"""
External Process Service.

Base class for controlling an externally-managed process through shell
commands: querying its status, starting and stopping it, and running ad hoc
commands. Service-specific subclasses (see nginx.py) add configuration
management on top.
"""

import logging
import re
import subprocess
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Mapping, Optional, Union

import psutil

from potluck.domain.exceptions import ServiceError

module_logger = logging.getLogger(__name__)

DEFAULT_WAIT_TIMEOUT = 30

# -----------------------------------------------------------------------------
# SERVICE STATE DEFINITIONS
# -----------------------------------------------------------------------------

class ServiceStatus(Enum):
    """Observed state of a managed process."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    ERROR = "error"


@dataclass(frozen=True)
class ManageCommands:
    """
    Shell commands used to supervise a process.

    Attributes:
        start: Command that starts the process.
        stop: Command that stops the process.
        status: Command that exits 0 while the process runs. When None, the
            process table is searched for the service's ``process_pattern``.
        status_error_pattern: Regex; status output matching it means the
            process is in an error state.
    """
    start: str
    stop: str
    status: Optional[str] = None
    status_error_pattern: Optional[str] = None


ManageOption = Union[bool, ManageCommands, Mapping[str, Optional[str]]]

# -----------------------------------------------------------------------------
# SERVICE
# -----------------------------------------------------------------------------

class Service:
    """
    Lifecycle wrapper for an external process.

    A service is managed only when supervisor commands are available; every
    lifecycle method is a no-op otherwise.
    """

    process_pattern: Optional[str] = None

    def __init__(self, logger: Optional[logging.Logger] = None, manage: ManageOption = False) -> None:
        """
        Args:
            logger: Logger for info and error messages; the module logger is
                used when None.
            manage: False for an unmanaged service, True for the class's
                default commands, or explicit ManageCommands (or a mapping
                with the same keys).

        Raises:
            ServiceError: If ``manage`` is True and the class has no default
                commands.
        """
        self._logger = logger or module_logger
        self._commands: Optional[ManageCommands] = None

        if isinstance(manage, ManageCommands):
            self._commands = manage
        elif isinstance(manage, Mapping):
            self._commands = ManageCommands(**manage)
        elif manage:
            self._commands = self.default_manage_commands()
            if self._commands is None:
                raise ServiceError(
                    f"Cannot manage {self.pretty_name()}: no supervisor commands configured"
                )

    @classmethod
    def pretty_name(cls) -> str:
        """Human-friendly name of the service."""
        return cls.__name__

    @classmethod
    def service_name(cls) -> str:
        """Computer-friendly name of the service."""
        return cls.pretty_name().lower()

    @classmethod
    def default_manage_commands(cls) -> Optional[ManageCommands]:
        """Commands used when the service is created with ``manage=True``."""
        return None

    def is_managed(self) -> bool:
        return self._commands is not None

    # -------------------------------------------------------------------------
    # LIFECYCLE
    # -------------------------------------------------------------------------

    def status(self) -> ServiceStatus:
        """
        Get the status of the service.

        Returns:
            ServiceStatus: ACTIVE if managed and running, ERROR if managed and
            in an error state, INACTIVE otherwise.
        """
        if self._commands is None:
            return ServiceStatus.INACTIVE

        if self._commands.status is None:
            return ServiceStatus.ACTIVE if self._process_running() else ServiceStatus.INACTIVE

        proc = subprocess.run(
            self._commands.status,
            shell=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
        )

        if proc.returncode != 0:
            return ServiceStatus.INACTIVE

        pattern = self._commands.status_error_pattern
        if pattern and re.search(pattern, proc.stdout or "", re.MULTILINE):
            return ServiceStatus.ERROR

        return ServiceStatus.ACTIVE

    def start(self) -> None:
        """
        Start the service if it is managed and not already active.

        Raises:
            ServiceError: If the start command fails or the service does not
                become active.
        """
        if self._commands is None:
            return

        current = self.status()
        if current == ServiceStatus.ERROR:
            self._stop_process()
        elif current == ServiceStatus.ACTIVE:
            return

        self.run(self._commands.start)
        self.wait(lambda: self.status() == ServiceStatus.INACTIVE)

        if self.status() != ServiceStatus.ACTIVE:
            raise ServiceError(f"Could not start {self.pretty_name()}")

        self.log(f"{self.pretty_name()} started")

    def stop(self) -> None:
        """
        Stop the service if it is managed and active or in an error state.

        Raises:
            ServiceError: If the stop command fails or the service keeps running.
        """
        if self._commands is None:
            return

        self._stop_process()

    def restart(self) -> None:
        if self._commands is None:
            return

        self.stop()
        self.start()

    def _stop_process(self) -> None:
        if self.status() == ServiceStatus.INACTIVE:
            return

        self.run(self._commands.stop)
        self.wait(lambda: self.status() != ServiceStatus.INACTIVE)

        if self.status() != ServiceStatus.INACTIVE:
            raise ServiceError(f"Could not stop {self.pretty_name()}")

        self.log(f"{self.pretty_name()} stopped")

    # -------------------------------------------------------------------------
    # COMMANDS & DIAGNOSTICS
    # -------------------------------------------------------------------------

    def run(self, command: str, redirect_stderr: bool = True, check: bool = True) -> str:
        """
        Run a command with the default shell.

        Args:
            command: Command line to run.
            redirect_stderr: Capture stderr along with stdout; otherwise
                stderr is inherited and not logged.
            check: Raise on a non-zero exit status; when False the output
                is returned regardless.

        Returns:
            str: Command output.

        Raises:
            ServiceError: If the command exits with a non-zero status. Each
                output line is logged as an error first.
        """
        proc = subprocess.run(
            command,
            shell=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT if redirect_stderr else None,
            text=True,
        )
        output = proc.stdout or ""

        if check and proc.returncode != 0:
            for line in output.splitlines():
                self.log(line, error=True)
            raise ServiceError(
                f"Command exited with status {proc.returncode}: {command}",
                context={"command": command, "status": proc.returncode},
            )

        return output

    def log(self, message: str, error: bool = False) -> None:
        if error:
            self._logger.error(message)
        else:
            self._logger.info(message)

    def wait(self, predicate: Callable[[], bool], timeout: float = DEFAULT_WAIT_TIMEOUT) -> None:
        """
        Call ``predicate`` repeatedly until it returns False or time runs out.

        Polls every 0.1s at first, backing off to one-second intervals.
        """
        while predicate() and timeout > 0:
            interval = min(max((DEFAULT_WAIT_TIMEOUT - int(timeout)) / 5.0, 0.1), 1.0)
            timeout -= interval
            time.sleep(interval)

    # -------------------------------------------------------------------------
    # PRIVATE HELPERS
    # -------------------------------------------------------------------------

    def _process_running(self) -> bool:
        """Search the process table for ``process_pattern``."""
        if not self.process_pattern:
            raise ServiceError(f"Cannot check {self.pretty_name()} status: no status command or process pattern")

        regex = re.compile(self.process_pattern)
        for proc in psutil.process_iter(["cmdline"]):
            cmdline = proc.info.get("cmdline") or []
            if regex.search(" ".join(cmdline)):
                return True
        return False
