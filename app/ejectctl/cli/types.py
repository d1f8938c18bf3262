"""Shared types and utilities for CLI commands.

This module provides common enums and service factories used across
multiple CLI command modules to avoid code duplication.
"""

from enum import Enum

import typer

from ejectctl.core.config import ConfigError, EjectorConfig, load_config
from ejectctl.core.rules import ProcessRuleStore
from ejectctl.core.volumes import VolumeManager
from ejectctl.models.volume import Volume
from ejectctl.runners import RunnerError, get_runner
from ejectctl.utils.formatting import print_error, print_warning


class OutputFormat(str, Enum):
    """Output format options."""

    TABLE = "table"
    JSON = "json"


def get_config() -> EjectorConfig:
    """Load the user configuration, exiting with an error if it is invalid."""
    try:
        return load_config()
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e


def get_volume_manager(config: EjectorConfig | None = None) -> VolumeManager:
    """Build a VolumeManager for the current platform.

    Args:
        config: Configuration to use. If None, loads the user configuration.

    Returns:
        VolumeManager bound to the platform's process runner.
    """
    config = config if config is not None else get_config()
    try:
        runner = get_runner(timeout=config.command_timeout)
    except RunnerError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e

    missing = runner.missing_commands()
    if missing:
        print_warning(f"Missing system tools: {', '.join(missing)}. Results may be incomplete.")
    return VolumeManager(runner, config)


def get_rule_store() -> ProcessRuleStore:
    """Get the rule store backed by the user's settings file."""
    return ProcessRuleStore()


def match_volumes(volumes: list[Volume], names: list[str]) -> list[Volume]:
    """Resolve volume names or mount paths given on the command line.

    Matching is case-insensitive on the name and exact on the path.

    Args:
        volumes: Eligible volumes.
        names: Names or paths requested by the user.

    Returns:
        Matching volumes in the order of ``volumes``.

    Raises:
        typer.Exit: If any requested name matches no volume.
    """
    wanted = {name.casefold() for name in names}
    matched = [v for v in volumes if v.name.casefold() in wanted or v.path.casefold() in wanted]
    found = {v.name.casefold() for v in matched} | {v.path.casefold() for v in matched}
    missing = [name for name in names if name.casefold() not in found]
    if missing:
        print_error(f"No eligible volume named: {', '.join(missing)}")
        raise typer.Exit(code=1)
    return matched
