"""Blockers command implementation.

Shows which processes hold external volumes open, without ejecting.
"""

import json
from typing import Annotated

import typer

from ejectctl.cli.display import create_blockers_table
from ejectctl.cli.types import OutputFormat, get_rule_store, get_volume_manager, match_volumes
from ejectctl.core.safety import ProcessClassifier
from ejectctl.models.safety import VolumeProcessInfo
from ejectctl.utils.formatting import console, print_info, print_success

app = typer.Typer(
    help="Show processes that keep volumes from being ejected.",
    invoke_without_command=True,
    # Volume names and options may be given in any order
    context_settings={"allow_interspersed_args": True},
)


@app.callback(invoke_without_command=True)
def show_blockers(
    names: Annotated[
        list[str] | None,
        typer.Argument(help="Volume names or mount points (default: all)."),
    ] = None,
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
    """Show processes holding external volumes open."""
    manager = get_volume_manager()
    volumes = sorted(manager.enumerate_external_volumes(), key=lambda v: v.name.casefold())
    if names:
        volumes = match_volumes(volumes, names)

    if not volumes:
        print_info("No external drives are mounted.")
        return

    classifier = ProcessClassifier()
    rows: list[VolumeProcessInfo] = []
    for volume, processes in manager.find_blocking(volumes).items():
        for process in sorted(processes, key=lambda p: (p.name.casefold(), p.pid)):
            rows.append(classifier.describe(volume, process))

    if output_format == OutputFormat.JSON:
        data = [
            {
                "volume": row.volume.name,
                "path": row.volume.path,
                "process": row.process.name,
                "pid": row.process.pid,
                "safety": row.safety.value,
                "category": row.descriptor.category if row.descriptor else None,
            }
            for row in rows
        ]
        console.print_json(json.dumps(data))
        return

    if not rows:
        print_success("Nothing is holding the volumes open.")
        return

    identifiers = {rule.identifier for rule in get_rule_store().all_rules()}
    console.print(create_blockers_table(rows, identifiers))
