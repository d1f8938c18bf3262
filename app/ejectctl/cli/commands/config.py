"""Configuration commands.

Shows and initializes ~/.config/ejectctl/config.toml.
"""

from typing import Annotated

import tomli_w
import typer

from ejectctl.cli.types import get_config
from ejectctl.core.config import ConfigError, EjectorConfig, save_config
from ejectctl.core.paths import ensure_config_dir, get_config_path
from ejectctl.utils.formatting import console, print_error, print_info, print_success

app = typer.Typer(
    help="Show or initialize the configuration.",
    no_args_is_help=True,
)


@app.command()
def show() -> None:
    """Show the effective configuration."""
    config = get_config()
    path = get_config_path()
    source = str(path) if path.exists() else "built-in defaults"
    console.print(f"[muted]# {source}[/muted]")
    console.print(tomli_w.dumps(config.model_dump(mode="json")), markup=False, highlight=False)


@app.command()
def init(
    force: Annotated[
        bool,
        typer.Option("--force", help="Overwrite an existing config file."),
    ] = False,
) -> None:
    """Write the default configuration to the config file."""
    path = get_config_path()
    if path.exists() and not force:
        print_info(f"Config already exists: {path} (use --force to overwrite)")
        return

    try:
        ensure_config_dir()
    except RuntimeError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e

    try:
        saved = save_config(EjectorConfig(), path)
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e
    print_success(f"Wrote default configuration to {saved}")
