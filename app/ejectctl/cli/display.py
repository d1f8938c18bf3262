"""Shared Rich display functions for volumes, blockers and rules.

Provides reusable table builders used across CLI commands.
"""

from collections.abc import Sequence

from rich.table import Table

from ejectctl.models.rule import ProcessRule
from ejectctl.models.safety import ProcessDescriptor, ProcessSafety, VolumeProcessInfo
from ejectctl.models.volume import Volume
from ejectctl.utils.formatting import format_safety


def create_volumes_table(volumes: Sequence[Volume], title: str = "External Volumes") -> Table:
    """Create a Rich table listing volumes.

    Args:
        volumes: Volumes to display.
        title: Table title.

    Returns:
        Rich Table configured for volume display.
    """
    table = Table(
        title=title,
        show_header=True,
        header_style="bold_header",
        border_style="border",
    )
    table.add_column("#", width=3, justify="right", style="muted")
    table.add_column("Volume", no_wrap=True)
    table.add_column("Mount Point", style="muted")

    for index, volume in enumerate(volumes, start=1):
        table.add_row(str(index), f"[volume]{volume.name}[/volume]", volume.path)

    return table


def create_blockers_table(
    blockers: Sequence[VolumeProcessInfo],
    rule_identifiers: set[str] | None = None,
) -> Table:
    """Create a Rich table of processes blocking ejection.

    Builds a table with Volume, Process, PID, Safety and Notes columns.
    Processes covered by a saved automation rule are marked.

    Args:
        blockers: Classified blocker rows.
        rule_identifiers: Identifiers of saved rules, used for the marker.

    Returns:
        Rich Table configured for blocker display.
    """
    rules = rule_identifiers or set()
    table = Table(
        title="Processes Preventing Ejection",
        show_header=True,
        header_style="bold_header",
        border_style="border",
    )
    table.add_column("#", width=3, justify="right", style="muted")
    table.add_column("Volume", no_wrap=True)
    table.add_column("Process", no_wrap=True)
    table.add_column("PID", justify="right")
    table.add_column("Safety", justify="center", no_wrap=True)
    table.add_column("Notes", style="muted")

    for index, row in enumerate(blockers, start=1):
        name = row.process.name
        if name.strip().lower() in rules:
            name = f"{name} [info](rule)[/info]"
        table.add_row(
            str(index),
            f"[volume]{row.volume.name}[/volume]",
            name,
            str(row.process.pid),
            format_safety(row.safety),
            _describe(row.descriptor),
        )

    return table


def create_rules_table(rules: Sequence[ProcessRule]) -> Table:
    """Create a Rich table of saved automation rules."""
    table = Table(
        title="Automation Rules",
        show_header=True,
        header_style="bold_header",
        border_style="border",
    )
    table.add_column("Process", no_wrap=True)
    table.add_column("Identifier", style="muted")

    for rule in rules:
        table.add_row(rule.display_name, rule.identifier)

    return table


def create_classification_table(
    results: Sequence[tuple[str, ProcessSafety, ProcessDescriptor | None]],
) -> Table:
    """Create a Rich table of process name classifications."""
    table = Table(
        title="Process Safety",
        show_header=True,
        header_style="bold_header",
        border_style="border",
    )
    table.add_column("Process", no_wrap=True)
    table.add_column("Safety", justify="center", no_wrap=True)
    table.add_column("Category", no_wrap=True)
    table.add_column("Notes", style="muted")

    for name, safety, descriptor in results:
        table.add_row(
            name,
            format_safety(safety),
            descriptor.category if descriptor else "-",
            descriptor.notes if descriptor else "Not in the built-in process list.",
        )

    return table


def _describe(descriptor: ProcessDescriptor | None) -> str:
    if descriptor is None:
        return "-"
    return f"{descriptor.category}: {descriptor.notes}"
