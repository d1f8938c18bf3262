"""Process runners: the OS boundary of ejectctl.

This module exports the runner interface and platform selection.
"""

import platform

from ejectctl.runners.base import ProcessRunner, RunnerError
from ejectctl.runners.darwin import DarwinProcessRunner
from ejectctl.runners.linux import LinuxProcessRunner


def get_runner(timeout: float = 30.0) -> ProcessRunner:
    """Get the process runner for the current platform.

    Args:
        timeout: Maximum time in seconds for each command.

    Returns:
        A ProcessRunner instance.

    Raises:
        RunnerError: If the platform is not supported.
    """
    system = platform.system()
    if system == "Darwin":
        return DarwinProcessRunner(timeout=timeout)
    if system == "Linux":
        return LinuxProcessRunner(timeout=timeout)
    msg = f"Unsupported platform: {system}"
    raise RunnerError(msg)


__all__ = [
    "DarwinProcessRunner",
    "LinuxProcessRunner",
    "ProcessRunner",
    "RunnerError",
    "get_runner",
]
