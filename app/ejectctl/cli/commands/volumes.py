"""Volumes command implementation.

Lists mounted volumes that are eligible for ejection.
"""

import json
from typing import Annotated

import typer

from ejectctl.cli.display import create_volumes_table
from ejectctl.cli.types import OutputFormat, get_volume_manager
from ejectctl.utils.formatting import console, print_info

app = typer.Typer(
    help="List external volumes that can be ejected.",
    invoke_without_command=True,
)


@app.callback(invoke_without_command=True)
def list_volumes(
    output_format: Annotated[
        OutputFormat,
        typer.Option(
            "--format",
            "-f",
            help="Output format.",
            case_sensitive=False,
        ),
    ] = OutputFormat.TABLE,
) -> None:
    """List external volumes that can be ejected."""
    manager = get_volume_manager()
    volumes = sorted(manager.enumerate_external_volumes(), key=lambda v: v.name.casefold())

    if output_format == OutputFormat.JSON:
        console.print_json(json.dumps([{"name": v.name, "path": v.path} for v in volumes]))
        return

    if not volumes:
        print_info("No external drives are mounted.")
        return

    console.print(create_volumes_table(volumes))
