"""Utility modules for ejectctl.

This module exports commonly used utility functions.
"""

from ejectctl.utils.formatting import (
    console,
    err_console,
    format_safety,
    print_error,
    print_info,
    print_success,
    print_warning,
)
from ejectctl.utils.shell import CommandResult, command_exists, run_command

__all__ = [
    "CommandResult",
    "command_exists",
    "console",
    "err_console",
    "format_safety",
    "print_error",
    "print_info",
    "print_success",
    "print_warning",
    "run_command",
]
