"""Eject command implementation.

Drives the ejection workflow from the terminal: pick volumes, eject them,
and resolve the processes that keep them busy. Saved automation rules are
applied before the user is asked.
"""

from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Annotated

import typer

from ejectctl.cli.display import create_blockers_table, create_volumes_table
from ejectctl.cli.types import get_rule_store, get_volume_manager, match_volumes
from ejectctl.core.rules import ProcessRuleStore, RuleStoreError
from ejectctl.core.workflow import (
    Completion,
    EjectionWorkflow,
    MainQueue,
    NoVolumes,
    ProcessResolution,
    VolumeSelection,
    WorkflowState,
)
from ejectctl.models.safety import ProcessSafety
from ejectctl.utils.formatting import (
    console,
    print_error,
    print_info,
    print_success,
    print_warning,
)

# Rounds of "end processes and retry" before giving up on respawning blockers
MAX_RESOLUTION_ROUNDS = 5

app = typer.Typer(
    help="Eject external volumes, ending processes that block them.",
    invoke_without_command=True,
    # Volume names and options may be given in any order
    context_settings={"allow_interspersed_args": True},
)


@app.callback(invoke_without_command=True)
def eject(
    names: Annotated[
        list[str] | None,
        typer.Argument(help="Volume names or mount points (default: all)."),
    ] = None,
    eject_all: Annotated[
        bool,
        typer.Option("--all", "-a", help="Eject every external volume without selecting."),
    ] = False,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompts."),
    ] = False,
    save_rules: Annotated[
        bool,
        typer.Option("--save-rules", help="End the chosen processes automatically next time."),
    ] = False,
    no_kill: Annotated[
        bool,
        typer.Option("--no-kill", help="Never end processes; report blockers and stop."),
    ] = False,
    safe_only: Annotated[
        bool,
        typer.Option("--safe-only", help="Only offer to end processes marked SAFE."),
    ] = False,
    force: Annotated[
        bool,
        typer.Option("--force", help="With --yes, also end processes marked UNSAFE."),
    ] = False,
) -> None:
    """Eject external volumes.

    Examples:
        ejectctl eject                  # Select all volumes, confirm, eject
        ejectctl eject "USB STICK"      # Eject one volume
        ejectctl eject --all --yes      # Eject everything, end non-UNSAFE blockers
        ejectctl eject --yes --force    # Also end UNSAFE blockers without asking
    """
    if eject_all and names:
        print_error("--all cannot be combined with volume names.")
        raise typer.Exit(code=1)

    manager = get_volume_manager()
    store = get_rule_store()
    main_queue = MainQueue()
    status = console.status("Working...")

    with ThreadPoolExecutor(max_workers=1, thread_name_prefix="ejectctl") as executor:
        workflow = EjectionWorkflow(
            manager,
            store,
            executor=executor,
            post=main_queue.post,
            on_progress=lambda message: status.update(f"[info]{message}[/info]"),
        )

        def wait() -> None:
            status.start()
            try:
                main_queue.run_until(lambda: not workflow.busy)
            finally:
                status.stop()

        if eject_all:
            workflow.eject_all()
            wait()
        else:
            workflow.start_scan()
            wait()
            _select_and_eject(workflow, wait, names or [], yes=yes)

        final = _resolve_blockers(
            workflow,
            wait,
            store,
            yes=yes,
            save_rules=save_rules,
            no_kill=no_kill,
            safe_only=safe_only,
            force=force,
        )

    _report(final)


def _select_and_eject(
    workflow: EjectionWorkflow,
    wait: Callable[[], None],
    names: list[str],
    *,
    yes: bool,
) -> None:
    """Pick the volumes to eject and start ejecting them."""
    state = workflow.state
    if not isinstance(state, VolumeSelection):
        return

    selected = match_volumes(list(state.volumes), names) if names else list(state.volumes)
    console.print(create_volumes_table(selected, title="Volumes to Eject"))

    if not yes:
        confirmed = typer.confirm(f"\nEject {len(selected)} volume(s)?", default=True)
        if not confirmed:
            print_info("Aborted.")
            raise typer.Exit(code=0)

    workflow.select(selected)
    workflow.eject_selected()
    wait()


def _resolve_blockers(
    workflow: EjectionWorkflow,
    wait: Callable[[], None],
    store: ProcessRuleStore,
    *,
    yes: bool,
    save_rules: bool,
    no_kill: bool,
    safe_only: bool,
    force: bool,
) -> WorkflowState:
    """Ask the user to end blocking processes until the workflow completes.

    Without a prompt (``yes``) UNSAFE processes are only ended when ``force``
    is set.
    """
    rounds = 0
    while isinstance(workflow.state, ProcessResolution):
        state = workflow.state
        identifiers = {rule.identifier for rule in store.all_rules()}
        console.print(create_blockers_table(state.blockers, identifiers))

        if no_kill:
            names = ", ".join(sorted(v.name for v in state.pending))
            print_warning(f"Left mounted: {names}")
            raise typer.Exit(code=1)

        rounds += 1
        if rounds > MAX_RESOLUTION_ROUNDS:
            print_error("Processes keep blocking ejection. Giving up.")
            raise typer.Exit(code=1)

        selection = [
            row for row in state.blockers if not safe_only or row.safety is ProcessSafety.SAFE
        ]
        if yes and not force:
            skipped = {row.process.pid for row in selection if row.safety is ProcessSafety.UNSAFE}
            if skipped:
                print_warning(
                    f"Skipping {len(skipped)} UNSAFE process(es). Use --force to end them."
                )
                selection = [row for row in selection if row.safety is not ProcessSafety.UNSAFE]
        if not selection:
            if safe_only:
                print_warning("No SAFE processes to end. Close the other applications and retry.")
            else:
                print_warning("No processes left to end. Close the other applications and retry.")
            raise typer.Exit(code=1)

        count = len({row.process.pid for row in selection})
        if not yes:
            unsafe = {row.process.pid for row in selection if row.safety is ProcessSafety.UNSAFE}
            if unsafe:
                print_warning(f"{len(unsafe)} process(es) are UNSAFE to end.")
            confirmed = typer.confirm(f"\nEnd {count} process(es) and retry?", default=False)
            if not confirmed:
                print_info("Aborted.")
                raise typer.Exit(code=1)

        try:
            workflow.end_processes(selection, save_as_rules=save_rules)
        except RuleStoreError as e:
            print_error(str(e))
            raise typer.Exit(code=1) from e
        wait()

    return workflow.state


def _report(state: WorkflowState) -> None:
    """Print the final outcome and exit non-zero if volumes remain."""
    if isinstance(state, NoVolumes):
        print_info(state.message)
        return

    if isinstance(state, Completion):
        if state.ejected:
            names = ", ".join(sorted(v.name for v in state.ejected))
            console.print(f"[muted]Ejected: {names}[/muted]")
        if state.warning:
            print_warning(state.message)
            raise typer.Exit(code=1)
        print_success(state.message)
        return

    print_error(f"Ejection did not finish ({type(state).__name__}).")
    raise typer.Exit(code=1)
