"""Volume discovery and ejection engine.

The VolumeManager is a stateless service over a ProcessRunner. It never
lets runner failures escape: queries degrade to "nothing found", eject
failures become False, and termination is best-effort.
"""

import logging
import time
from collections.abc import Callable, Iterable
from pathlib import PurePosixPath

from ejectctl.core.config import EjectorConfig
from ejectctl.models.volume import (
    EjectOutcome,
    MountInfo,
    ProcessInfo,
    Volume,
    VolumeEjectResult,
)
from ejectctl.runners.base import ProcessRunner, RunnerError

logger = logging.getLogger(__name__)


def parse_lsof_output(output: str) -> list[ProcessInfo]:
    """Parse lsof output into unique processes.

    The first line is the column header and is skipped. Each following
    line contributes its first two whitespace-separated tokens as
    (command, pid); lines without a numeric pid are ignored. The first
    occurrence of a pid wins.

    Args:
        output: Raw lsof output.

    Returns:
        Processes in order of first appearance.
    """
    processes: list[ProcessInfo] = []
    seen: set[int] = set()

    for line in output.splitlines()[1:]:
        tokens = line.split()
        if len(tokens) < 2:
            continue
        try:
            pid = int(tokens[1])
        except ValueError:
            continue
        if pid in seen:
            continue
        seen.add(pid)
        processes.append(ProcessInfo(name=tokens[0], pid=pid))

    return processes


class VolumeManager:
    """Finds, checks and ejects external volumes.

    Args:
        runner: OS boundary used for every query and command.
        config: Enumeration and retry policy. Defaults to EjectorConfig().
        sleep: Function used to wait between eject attempts.
    """

    def __init__(
        self,
        runner: ProcessRunner,
        config: EjectorConfig | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._runner = runner
        self._config = config if config is not None else EjectorConfig()
        self._sleep = sleep

    @property
    def config(self) -> EjectorConfig:
        """The active enumeration and retry policy."""
        return self._config

    # =========================================================================
    # Discovery
    # =========================================================================

    def enumerate_external_volumes(self) -> list[Volume]:
        """List mounted volumes that are eligible for ejection.

        Returns:
            Eligible volumes in OS enumeration order. Empty if the mount
            table cannot be queried.
        """
        try:
            mounts = self._runner.mounted_volumes()
        except RunnerError as e:
            logger.warning("Cannot list mounted volumes: %s", e)
            return []

        volumes: list[Volume] = []
        for mount in mounts:
            if not self._is_candidate(mount):
                continue
            name = mount.name or PurePosixPath(mount.path).name or mount.path
            volumes.append(Volume(name=name, path=mount.path))

        logger.debug("Found %d external volume(s) among %d mount(s)", len(volumes), len(mounts))
        return volumes

    def _is_candidate(self, mount: MountInfo) -> bool:
        """Apply the exclusion policy to one mount, in order."""
        path = mount.path

        if mount.is_root or path == "/":
            return False

        if any(path.startswith(prefix) for prefix in self._config.reserved_prefixes):
            return False

        if not any(
            path.startswith(root) and path.rstrip("/") != root.rstrip("/")
            for root in self._config.mount_roots
        ):
            return False

        if not (not mount.is_internal or mount.is_removable or mount.is_ejectable):
            return False

        if self._config.require_external_bus and not self._has_external_bus(path):
            logger.debug("Skipping %s: not attached via an external bus", path)
            return False

        return True

    def _has_external_bus(self, path: str) -> bool:
        """Check the mount's bus protocol against the configured patterns."""
        try:
            protocol = self._runner.bus_protocol(path)
        except RunnerError as e:
            logger.debug("Cannot query bus protocol for %s: %s", path, e)
            return False
        if not protocol:
            return False
        protocol = protocol.lower()
        return any(pattern.lower() in protocol for pattern in self._config.external_bus_patterns)

    # =========================================================================
    # Blocking detection
    # =========================================================================

    def find_processes_using_volume(self, volume: Volume) -> list[ProcessInfo]:
        """List processes holding the volume open.

        Blocking detection is advisory: a failed query reports no blockers.

        Args:
            volume: Volume to check.

        Returns:
            Unique processes, first occurrence of each pid kept.
        """
        try:
            output = self._runner.list_open_files(volume.path)
        except RunnerError as e:
            logger.debug("Cannot list open files on %s: %s", volume.path, e)
            return []
        return parse_lsof_output(output)

    def find_blocking(self, volumes: Iterable[Volume]) -> dict[Volume, list[ProcessInfo]]:
        """Check several volumes for blocking processes.

        Returns:
            Mapping of each blocked volume to its blockers; unblocked
            volumes are omitted.
        """
        blocking: dict[Volume, list[ProcessInfo]] = {}
        for volume in volumes:
            processes = self.find_processes_using_volume(volume)
            if processes:
                blocking[volume] = processes
        return blocking

    # =========================================================================
    # Ejection
    # =========================================================================

    def eject(self, volume: Volume) -> bool:
        """Run a single eject command.

        Returns:
            True if the command exited with status 0.
        """
        try:
            return self._runner.eject(volume.path) == 0
        except RunnerError as e:
            logger.warning("Cannot eject %s: %s", volume.path, e)
            return False

    def eject_with_retry(self, volume: Volume) -> tuple[EjectOutcome, list[ProcessInfo]]:
        """Eject with bounded retries, re-checking for blockers between tries.

        After each failed attempt the volume is checked again; a process
        that opened it in the meantime ends the retries with BLOCKED. The
        delay before retry ``i`` is ``min(initial * multiplier**(i-1), max)``.

        Args:
            volume: Volume to eject.

        Returns:
            Tuple of (outcome, blocking processes). Blockers are only
            non-empty for BLOCKED.
        """
        delays = self._config.retry_delays()

        for attempt in range(1, self._config.max_attempts + 1):
            if self.eject(volume):
                if attempt > 1:
                    logger.info("Ejected %s on attempt %d", volume.path, attempt)
                return EjectOutcome.EJECTED, []

            processes = self.find_processes_using_volume(volume)
            if processes:
                logger.info(
                    "%s became blocked by %d process(es) after attempt %d",
                    volume.path,
                    len(processes),
                    attempt,
                )
                return EjectOutcome.BLOCKED, processes

            if attempt < self._config.max_attempts:
                delay = delays[attempt - 1]
                logger.debug(
                    "Eject attempt %d for %s failed, retrying in %.2fs",
                    attempt,
                    volume.path,
                    delay,
                )
                self._sleep(delay)

        logger.warning(
            "Giving up on %s after %d attempts with no blocking process",
            volume.path,
            self._config.max_attempts,
        )
        return EjectOutcome.FAILED, []

    def attempt_eject(self, volumes: Iterable[Volume]) -> VolumeEjectResult:
        """Eject a batch of volumes, each independently.

        A volume that is already held open is reported as blocking without
        any eject attempt.

        Args:
            volumes: Volumes to eject. Duplicates are handled once.

        Returns:
            VolumeEjectResult partitioning the input volumes.
        """
        successful: set[Volume] = set()
        blocking: dict[Volume, list[ProcessInfo]] = {}
        failed: set[Volume] = set()

        for volume in dict.fromkeys(volumes):
            processes = self.find_processes_using_volume(volume)
            if processes:
                blocking[volume] = processes
                continue

            outcome, processes = self.eject_with_retry(volume)
            if outcome is EjectOutcome.EJECTED:
                successful.add(volume)
            elif outcome is EjectOutcome.BLOCKED:
                blocking[volume] = processes
            else:
                failed.add(volume)

        return VolumeEjectResult(
            successful=frozenset(successful),
            blocking=blocking,
            failed_without_processes=frozenset(failed),
        )

    # =========================================================================
    # Termination
    # =========================================================================

    def terminate(self, processes: Iterable[ProcessInfo]) -> list[ProcessInfo]:
        """Force-terminate processes, best-effort.

        Failures (process already gone, permission denied) are logged and
        skipped.

        Args:
            processes: Processes to kill.

        Returns:
            The processes the kill signal was delivered to.
        """
        terminated: list[ProcessInfo] = []
        for process in processes:
            try:
                self._runner.signal(process.pid)
            except RunnerError as e:
                logger.debug("Could not terminate %s (%d): %s", process.name, process.pid, e)
                continue
            logger.info("Terminated %s (%d)", process.name, process.pid)
            terminated.append(process)
        return terminated
