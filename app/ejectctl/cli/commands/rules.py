"""Automation rule management commands.

Rules name processes that are terminated without asking whenever they
block an ejection.
"""

import json
from typing import Annotated

import typer

from ejectctl.cli.display import create_rules_table
from ejectctl.cli.types import get_rule_store
from ejectctl.core.rules import RuleStoreError
from ejectctl.models.rule import normalize_identifier
from ejectctl.models.volume import ProcessInfo
from ejectctl.utils.formatting import console, print_error, print_info, print_success

app = typer.Typer(
    help="Manage processes that are ended automatically.",
    no_args_is_help=True,
)


@app.command("list")
def list_rules(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON."),
    ] = False,
) -> None:
    """List saved automation rules."""
    rules = get_rule_store().all_rules()

    if json_output:
        data = [{"identifier": r.identifier, "display_name": r.display_name} for r in rules]
        console.print_json(json.dumps(data))
        return

    if not rules:
        print_info("No automation rules saved.")
        return

    console.print(create_rules_table(rules))


@app.command()
def add(
    names: Annotated[
        list[str],
        typer.Argument(help="Process names to end automatically."),
    ],
) -> None:
    """Save processes as automation rules."""
    store = get_rule_store()
    # pid is irrelevant for rules; it only keeps the names distinct
    processes = [ProcessInfo(name=name, pid=index) for index, name in enumerate(names)]
    try:
        added = store.add_rules(processes)
    except RuleStoreError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e

    if not added:
        print_info("No new rules added.")
        return
    for rule in added:
        print_success(f"Added rule: {rule.display_name}")


@app.command()
def remove(
    names: Annotated[
        list[str],
        typer.Argument(help="Process names or rule identifiers to remove."),
    ],
) -> None:
    """Remove automation rules."""
    store = get_rule_store()
    try:
        removed = store.remove_rules(normalize_identifier(name) for name in names)
    except RuleStoreError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e

    if removed == 0:
        print_error(f"No matching rule: {', '.join(names)}")
        raise typer.Exit(code=1)
    print_success(f"Removed {removed} rule(s).")


@app.command()
def clear(
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Remove every automation rule."""
    store = get_rule_store()
    rules = store.all_rules()
    if not rules:
        print_info("No automation rules saved.")
        return

    if not yes:
        confirmed = typer.confirm(f"Remove all {len(rules)} rule(s)?", default=False)
        if not confirmed:
            print_info("Aborted.")
            raise typer.Exit(code=0)

    try:
        removed = store.clear()
    except RuleStoreError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e
    print_success(f"Removed {removed} rule(s).")
