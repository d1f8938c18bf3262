"""CLI package for ejectctl.

This package contains the Typer application and all subcommands.
"""

from ejectctl.cli.main import app

__all__ = ["app"]
