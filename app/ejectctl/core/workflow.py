"""Ejection workflow state machine.

Drives scan -> select -> resolve blockers -> complete. All queries,
ejections and terminations run on a background executor; their results
are handed back to the foreground through ``post`` and only then applied
to the state. The presentation layer observes the workflow through two
callbacks: ``on_outcome(state)`` after every transition and
``on_progress(message)`` whenever background work starts.

States::

    Scanning -> NoVolumes | VolumeSelection
    VolumeSelection -> ProcessResolution | Completion
    ProcessResolution -> ProcessResolution | Completion

NoVolumes and Completion are terminal until start_scan() is called again.

Every background batch is tagged with the scan generation it was started
in. A new scan bumps the generation, and results from an older one are
dropped when they arrive.
"""

import logging
import queue
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import Executor, Future
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeVar

from ejectctl.core.rules import ProcessRuleStore
from ejectctl.core.safety import ProcessClassifier
from ejectctl.core.volumes import VolumeManager
from ejectctl.models.rule import normalize_identifier
from ejectctl.models.safety import VolumeProcessInfo
from ejectctl.models.volume import ProcessInfo, Volume, VolumeEjectResult

logger = logging.getLogger(__name__)

T = TypeVar("T")

NO_VOLUMES_MESSAGE = "No external drives are mounted. Nothing to eject"
ALL_EJECTED_MESSAGE = "All selected drives were ejected."


# =============================================================================
# States
# =============================================================================


@dataclass(frozen=True, slots=True)
class Scanning:
    """Looking for external volumes."""


@dataclass(frozen=True, slots=True)
class NoVolumes:
    """No eligible volume is mounted."""

    message: str = NO_VOLUMES_MESSAGE


@dataclass(frozen=True, slots=True)
class VolumeSelection:
    """Waiting for the user to pick volumes.

    Attributes:
        volumes: Eligible volumes, sorted by name.
        selected: Volumes currently selected for ejection.
    """

    volumes: tuple[Volume, ...]
    selected: frozenset[Volume]


@dataclass(frozen=True, slots=True)
class ProcessResolution:
    """Ejection is blocked; waiting for the user to choose processes to end.

    Attributes:
        pending: Volumes still waiting to be ejected.
        blockers: Classified blocker rows, sorted by volume then process.
    """

    pending: frozenset[Volume]
    blockers: tuple[VolumeProcessInfo, ...]


@dataclass(frozen=True, slots=True)
class Completion:
    """The ejection cycle is over.

    Attributes:
        message: Summary for the user.
        ejected: Volumes ejected during this session.
        failed: Volumes that failed with no blocking process found.
        warning: Whether the outcome needs the user's attention.
    """

    message: str
    ejected: frozenset[Volume] = frozenset()
    failed: frozenset[Volume] = frozenset()
    warning: bool = False


WorkflowState = Scanning | NoVolumes | VolumeSelection | ProcessResolution | Completion


class ResolutionMode(str, Enum):
    """How the next blocked eject result is resolved.

    Attributes:
        MANUAL: Apply saved automation rules first, then ask the user.
        AUTO_RETRY_ONCE: The result follows a rule-triggered retry; show it
            to the user without applying rules again.
    """

    MANUAL = "manual"
    AUTO_RETRY_ONCE = "auto_retry_once"


class WorkflowStateError(Exception):
    """Raised when an operation is not valid in the current state."""


# =============================================================================
# Scheduling helpers
# =============================================================================


class InlineExecutor(Executor):
    """Executor that runs each task immediately in the calling thread."""

    def submit(self, fn: Callable[..., T], /, *args: Any, **kwargs: Any) -> "Future[T]":
        future: Future[T] = Future()
        try:
            result = fn(*args, **kwargs)
        except BaseException as e:
            future.set_exception(e)
        else:
            future.set_result(result)
        return future


class MainQueue:
    """Foreground task queue.

    Background threads ``post`` callables; the foreground thread runs them
    in order with ``run_once`` or ``run_until``.
    """

    def __init__(self) -> None:
        self._queue: queue.SimpleQueue[Callable[[], None]] = queue.SimpleQueue()

    def post(self, task: Callable[[], None]) -> None:
        """Schedule a task on the foreground thread."""
        self._queue.put(task)

    def run_once(self, timeout: float | None = None) -> bool:
        """Run the next queued task.

        Args:
            timeout: Seconds to wait for a task. None waits forever.

        Returns:
            True if a task ran, False if the wait timed out.
        """
        try:
            task = self._queue.get(timeout=timeout)
        except queue.Empty:
            return False
        task()
        return True

    def run_until(self, predicate: Callable[[], bool], poll_interval: float = 0.1) -> None:
        """Run queued tasks until predicate() holds."""
        while not predicate():
            self.run_once(timeout=poll_interval)


def _call_now(task: Callable[[], None]) -> None:
    task()


# =============================================================================
# Workflow
# =============================================================================


class EjectionWorkflow:
    """Orchestrates discovery, ejection and blocker resolution.

    Args:
        manager: Volume manager used for all OS work.
        rule_store: Saved automation rules.
        classifier: Safety classifier for blocker rows.
        executor: Runs background work. Defaults to running inline.
        post: Hands a callable back to the foreground. Defaults to calling it.
        on_outcome: Called with the new state after every transition.
        on_progress: Called with a message whenever background work starts.
    """

    def __init__(
        self,
        manager: VolumeManager,
        rule_store: ProcessRuleStore,
        classifier: ProcessClassifier | None = None,
        *,
        executor: Executor | None = None,
        post: Callable[[Callable[[], None]], None] | None = None,
        on_outcome: Callable[[WorkflowState], None] | None = None,
        on_progress: Callable[[str], None] | None = None,
    ) -> None:
        self._manager = manager
        self._rule_store = rule_store
        self._classifier = classifier if classifier is not None else ProcessClassifier()
        self._executor = executor if executor is not None else InlineExecutor()
        self._post = post if post is not None else _call_now
        self._on_outcome = on_outcome
        self._on_progress = on_progress

        self._state: WorkflowState = Scanning()
        self._generation = 0
        self._in_flight = 0

        # Per-session state, discarded by start_scan()
        self._volumes: list[Volume] = []
        self._pending: frozenset[Volume] = frozenset()
        self._ejected: set[Volume] = set()
        self._failed: set[Volume] = set()

    @property
    def state(self) -> WorkflowState:
        """The current state."""
        return self._state

    @property
    def busy(self) -> bool:
        """Whether background work is in flight."""
        return self._in_flight > 0

    @property
    def generation(self) -> int:
        """Counter bumped by every new scan."""
        return self._generation

    # =========================================================================
    # Operations
    # =========================================================================

    def start_scan(self) -> None:
        """Discard the session and scan for volumes."""
        self._reset_session()
        self._set_state(Scanning())
        self._progress("Scanning external volumes...")
        self._submit(self._manager.enumerate_external_volumes, self._handle_scan_result)

    def select(self, volumes: Iterable[Volume]) -> None:
        """Replace the volume selection.

        Raises:
            WorkflowStateError: If not in VolumeSelection.
            ValueError: If a volume is not one of the listed volumes.
        """
        state = self._require(VolumeSelection)
        selected = frozenset(volumes)
        unknown = selected - set(state.volumes)
        if unknown:
            names = ", ".join(sorted(v.name for v in unknown))
            msg = f"Not an eligible volume: {names}"
            raise ValueError(msg)
        self._set_state(VolumeSelection(volumes=state.volumes, selected=selected))

    def eject_selected(self) -> None:
        """Eject the selected volumes.

        Raises:
            WorkflowStateError: If not in VolumeSelection or nothing is selected.
        """
        state = self._require(VolumeSelection)
        volumes = [v for v in state.volumes if v in state.selected]
        if not volumes:
            msg = "No volumes selected"
            raise WorkflowStateError(msg)
        self._failed.clear()
        self._attempt_eject(volumes, ResolutionMode.MANUAL)

    def eject_all(self) -> None:
        """Start a new session that ejects every eligible volume at once."""
        self._reset_session()
        self._set_state(Scanning())
        self._progress("Ejecting all external drives...")

        def work() -> tuple[list[Volume], VolumeEjectResult | None]:
            volumes = self._manager.enumerate_external_volumes()
            if not volumes:
                return volumes, None
            return volumes, self._manager.attempt_eject(volumes)

        def handle(outcome: tuple[list[Volume], VolumeEjectResult | None]) -> None:
            volumes, result = outcome
            if result is None:
                self._set_state(NoVolumes())
                return
            self.present_outcome(volumes, result)

        self._submit(work, handle)

    def present_outcome(self, attempted: Sequence[Volume], result: VolumeEjectResult) -> None:
        """Adopt the result of an ejection batch run outside the workflow.

        Args:
            attempted: Volumes the batch was run on.
            result: The batch result.
        """
        self._volumes = _sorted_volumes(attempted)
        self._pending = frozenset(attempted)
        self._failed.clear()
        self._handle_eject_result(result, ResolutionMode.MANUAL)

    def end_processes(
        self,
        selection: Iterable[VolumeProcessInfo | ProcessInfo],
        *,
        save_as_rules: bool = False,
    ) -> None:
        """Terminate user-approved blockers and retry the pending volumes.

        Args:
            selection: Blocker rows or processes chosen by the user.
            save_as_rules: Also save the processes as automation rules,
                before terminating them.

        Raises:
            WorkflowStateError: If not in ProcessResolution or nothing is selected.
            RuleStoreError: If saving the rules fails; nothing is terminated.
        """
        self._require(ProcessResolution)
        processes = _unique_by_pid(
            item.process if isinstance(item, VolumeProcessInfo) else item for item in selection
        )
        if not processes:
            msg = "No processes selected"
            raise WorkflowStateError(msg)

        if save_as_rules:
            self._rule_store.add_rules(processes)

        pending = self._ordered(self._pending)
        self._progress("Ending selected processes...")

        def work() -> dict[Volume, list[ProcessInfo]]:
            self._manager.terminate(processes)
            return self._manager.find_blocking(pending)

        def handle(blocking: dict[Volume, list[ProcessInfo]]) -> None:
            if blocking:
                self._show_blockers(blocking)
            elif pending:
                self._attempt_eject(pending, ResolutionMode.MANUAL)
            else:
                self._complete()

        self._submit(work, handle)

    # =========================================================================
    # Transitions
    # =========================================================================

    def _handle_scan_result(self, volumes: list[Volume]) -> None:
        self._volumes = _sorted_volumes(volumes)
        if not self._volumes:
            self._set_state(NoVolumes())
            return
        self._set_state(
            VolumeSelection(volumes=tuple(self._volumes), selected=frozenset(self._volumes))
        )

    def _attempt_eject(self, volumes: Sequence[Volume], mode: ResolutionMode) -> None:
        self._pending = frozenset(volumes)
        self._progress("Ejecting selected drives...")
        batch = list(volumes)
        self._submit(
            lambda: self._manager.attempt_eject(batch),
            lambda result: self._handle_eject_result(result, mode),
        )

    def _handle_eject_result(self, result: VolumeEjectResult, mode: ResolutionMode) -> None:
        self._ejected.update(result.successful)
        self._failed.update(result.failed_without_processes)
        self._volumes = [v for v in self._volumes if v not in result.successful]

        if not result.blocking:
            self._pending = frozenset()
            self._complete()
            return

        self._pending = frozenset(result.blocking)

        if mode is ResolutionMode.AUTO_RETRY_ONCE:
            self._show_blockers(result.blocking)
            return

        if self._apply_saved_rules(result.blocking):
            return

        self._show_blockers(result.blocking)

    def _apply_saved_rules(self, blocking: dict[Volume, list[ProcessInfo]]) -> bool:
        """Terminate blockers covered by saved rules and retry once.

        Returns:
            True if rule-matched processes were found and a retry started.
        """
        identifiers = {rule.identifier for rule in self._rule_store.all_rules()}
        if not identifiers:
            return False

        matched = _unique_by_pid(
            process
            for processes in blocking.values()
            for process in processes
            if normalize_identifier(process.name) in identifiers
        )
        if not matched:
            return False

        logger.info(
            "Ending %d process(es) covered by saved rules: %s",
            len(matched),
            ", ".join(f"{p.name} ({p.pid})" for p in matched),
        )
        pending = self._ordered(self._pending)
        self._progress("Ending saved processes...")

        def handle(_: object) -> None:
            if pending:
                self._attempt_eject(pending, ResolutionMode.AUTO_RETRY_ONCE)
            else:
                self._complete()

        self._submit(lambda: self._manager.terminate(matched), handle)
        return True

    def _show_blockers(self, blocking: dict[Volume, list[ProcessInfo]]) -> None:
        rows: list[VolumeProcessInfo] = []
        for volume in _sorted_volumes(blocking):
            processes = sorted(blocking[volume], key=lambda p: (p.name.casefold(), p.pid))
            rows.extend(self._classifier.describe(volume, process) for process in processes)
        self._set_state(ProcessResolution(pending=self._pending, blockers=tuple(rows)))

    def _complete(self) -> None:
        failed = frozenset(self._failed)
        if failed:
            names = sorted(v.name for v in failed)
            if len(names) == 1:
                message = f"Unable to eject {names[0]}. Close any apps using it and try again."
            else:
                joined = ", ".join(names)
                message = f"Unable to eject: {joined}. Close any apps using them and try again."
        else:
            message = ALL_EJECTED_MESSAGE
        self._set_state(
            Completion(
                message=message,
                ejected=frozenset(self._ejected),
                failed=failed,
                warning=bool(failed),
            )
        )

    # =========================================================================
    # Plumbing
    # =========================================================================

    def _submit(self, work: Callable[[], T], handler: Callable[[T], None]) -> None:
        """Run work in the background and apply handler in the foreground."""
        generation = self._generation
        self._in_flight += 1
        future = self._executor.submit(work)
        future.add_done_callback(
            lambda done: self._post(lambda: self._finish(generation, done, handler))
        )

    def _finish(self, generation: int, future: "Future[T]", handler: Callable[[T], None]) -> None:
        self._in_flight -= 1
        if generation != self._generation:
            logger.debug("Dropping result from superseded scan %d", generation)
            return
        try:
            result = future.result()
        except Exception as e:
            logger.exception("Background task failed")
            self._set_state(Completion(message=f"Unexpected error: {e}", warning=True))
            return
        handler(result)

    def _reset_session(self) -> None:
        self._generation += 1
        self._volumes = []
        self._pending = frozenset()
        self._ejected = set()
        self._failed = set()

    def _require(self, state_type: type[T]) -> T:
        if self.busy:
            msg = "Background work is in progress"
            raise WorkflowStateError(msg)
        if not isinstance(self._state, state_type):
            msg = f"Expected {state_type.__name__} state, got {type(self._state).__name__}"
            raise WorkflowStateError(msg)
        return self._state

    def _ordered(self, volumes: frozenset[Volume]) -> list[Volume]:
        """Order a volume set by the session's display order."""
        ordered = [v for v in self._volumes if v in volumes]
        ordered.extend(_sorted_volumes(volumes - set(ordered)))
        return ordered

    def _set_state(self, state: WorkflowState) -> None:
        logger.debug("Workflow state: %s", type(state).__name__)
        self._state = state
        if self._on_outcome is not None:
            self._on_outcome(state)

    def _progress(self, message: str) -> None:
        if self._on_progress is not None:
            self._on_progress(message)


def _sorted_volumes(volumes: Iterable[Volume]) -> list[Volume]:
    return sorted(volumes, key=lambda v: (v.name.casefold(), v.path))


def _unique_by_pid(processes: Iterable[ProcessInfo]) -> list[ProcessInfo]:
    """Drop repeated pids, keeping the first occurrence."""
    unique: dict[int, ProcessInfo] = {}
    for process in processes:
        unique.setdefault(process.pid, process)
    return list(unique.values())
