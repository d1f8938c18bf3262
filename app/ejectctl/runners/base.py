"""Abstract base class for process runners.

This module defines the ProcessRunner interface: the OS-level queries and
commands the volume manager depends on. Runners expose primitives only;
parsing policy and failure handling live in the volume manager.
"""

import logging
import signal as signals
import subprocess
from abc import ABC, abstractmethod

from ejectctl.models.volume import MountInfo
from ejectctl.utils.shell import CommandResult, command_exists, run_command

logger = logging.getLogger(__name__)


class RunnerError(Exception):
    """Raised when a system command cannot be invoked or fails to run."""


class ProcessRunner(ABC):
    """Abstract base class for all process runners.

    Runners wrap the platform's command line tools. Every method raises
    RunnerError when the underlying command cannot be run at all; a
    command that runs and reports failure is returned as data.

    Example:
        >>> runner = get_runner()
        >>> for mount in runner.mounted_volumes():
        ...     print(mount.path, runner.bus_protocol(mount.path))
    """

    # Command line tools every method of this runner may invoke
    required_commands: tuple[str, ...] = ("lsof", "kill")

    def __init__(self, *, timeout: float = 30.0) -> None:
        """Initialize the runner.

        Args:
            timeout: Maximum time in seconds for each command.
        """
        self._timeout = timeout

    def missing_commands(self) -> list[str]:
        """List required command line tools that are not on PATH.

        Returns:
            Names of missing tools, empty when the runner is usable.
        """
        return [name for name in self.required_commands if not command_exists(name)]

    @abstractmethod
    def mounted_volumes(self) -> list[MountInfo]:
        """List all currently mounted filesystems.

        Returns:
            MountInfo for every visible mount, in OS enumeration order.

        Raises:
            RunnerError: If the mount table cannot be queried.
        """

    @abstractmethod
    def eject(self, path: str) -> int:
        """Unmount and eject the device mounted at path.

        Args:
            path: Mount path of the volume.

        Returns:
            Exit status of the eject command (0 on success).

        Raises:
            RunnerError: If the eject command cannot be run.
        """

    @abstractmethod
    def bus_protocol(self, path: str) -> str | None:
        """Query the transport the device mounted at path is attached via.

        Args:
            path: Mount path of the volume.

        Returns:
            Protocol name as reported by the OS (e.g. "USB"), None if unknown.

        Raises:
            RunnerError: If the query command cannot be run.
        """

    def list_open_files(self, path: str) -> str:
        """List open files under path.

        lsof exits with status 1 when nothing is open; that is reported as
        empty output rather than an error.

        Args:
            path: Mount path of the volume.

        Returns:
            Raw lsof output: a header line followed by one row per open file.

        Raises:
            RunnerError: If lsof cannot be run.
        """
        result = self._run(["lsof", path])
        if not result.success and result.stderr.strip():
            logger.debug("lsof %s exited %d: %s", path, result.returncode, result.stderr.strip())
        return result.stdout

    def signal(self, pid: int, sig: signals.Signals = signals.SIGKILL) -> None:
        """Send a signal to a process.

        Args:
            pid: Target process identifier.
            sig: Signal to send. Defaults to SIGKILL.

        Raises:
            RunnerError: If kill cannot be run or reports failure.
        """
        result = self._run(["kill", f"-{int(sig)}", str(pid)])
        if not result.success:
            msg = f"kill -{int(sig)} {pid} failed: {result.stderr.strip() or result.returncode}"
            raise RunnerError(msg)

    def _run(self, args: list[str]) -> CommandResult:
        """Run a command, converting invocation failures into RunnerError.

        Args:
            args: Command and arguments to execute.

        Returns:
            CommandResult of the finished command.

        Raises:
            RunnerError: If the command is missing, times out or cannot start.
        """
        try:
            return run_command(args, timeout=self._timeout)
        except subprocess.TimeoutExpired as e:
            msg = f"{args[0]} timed out after {self._timeout}s"
            raise RunnerError(msg) from e
        except FileNotFoundError as e:
            msg = f"{args[0]} not found"
            raise RunnerError(msg) from e
        except OSError as e:
            msg = f"Cannot run {args[0]}: {e}"
            raise RunnerError(msg) from e
