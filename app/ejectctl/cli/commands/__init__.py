"""CLI commands for ejectctl.

This package contains all subcommand implementations.
"""

from ejectctl.cli.commands import blockers, classify, config, eject, rules, volumes

__all__ = ["blockers", "classify", "config", "eject", "rules", "volumes"]
