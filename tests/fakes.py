"""In-memory test doubles shared by the test suite."""

import signal as signals
from collections import deque
from collections.abc import Callable
from typing import Any

from ejectctl.models.volume import MountInfo
from ejectctl.runners.base import ProcessRunner, RunnerError

LSOF_HEADER = "COMMAND     PID  USER   FD   TYPE DEVICE SIZE/OFF NODE NAME"


def lsof_output(*rows: tuple[str, int]) -> str:
    """Build lsof output for (command, pid) rows."""
    lines = [LSOF_HEADER]
    for command, pid in rows:
        lines.append(f"{command:<10} {pid:>5} alice  cwd    DIR   1,18      160    2 /Volumes/X")
    return "\n".join(lines) + "\n"


class FakeRunner(ProcessRunner):
    """In-memory ProcessRunner.

    Per-path responses are queues: each call pops the next item, and the
    last item repeats once the queue is down to one.

    Attributes:
        mounts: What mounted_volumes() returns.
        open_files: Path -> queue of lsof outputs.
        eject_codes: Path -> queue of eject exit codes.
        protocols: Path -> bus protocol.
        signalled: Pids that received a signal, in order.
        eject_calls: Paths passed to eject(), in order.
        dead_pids: Pids for which signal() raises RunnerError.
        mount_error: If set, mounted_volumes() raises it.
    """

    def __init__(self) -> None:
        super().__init__(timeout=1.0)
        self.mounts: list[MountInfo] = []
        self.open_files: dict[str, deque[str]] = {}
        self.eject_codes: dict[str, deque[int]] = {}
        self.protocols: dict[str, str | None] = {}
        self.signalled: list[int] = []
        self.eject_calls: list[str] = []
        self.lsof_calls: list[str] = []
        self.dead_pids: set[int] = set()
        self.mount_error: RunnerError | None = None
        self.on_signal: Callable[[int], None] | None = None

    def set_open_files(self, path: str, *outputs: str) -> None:
        self.open_files[path] = deque(outputs)

    def set_eject_codes(self, path: str, *codes: int) -> None:
        self.eject_codes[path] = deque(codes)

    def mounted_volumes(self) -> list[MountInfo]:
        if self.mount_error is not None:
            raise self.mount_error
        return list(self.mounts)

    def eject(self, path: str) -> int:
        self.eject_calls.append(path)
        return _next(self.eject_codes.get(path), 0)

    def bus_protocol(self, path: str) -> str | None:
        return self.protocols.get(path)

    def list_open_files(self, path: str) -> str:
        self.lsof_calls.append(path)
        return _next(self.open_files.get(path), "")

    def signal(self, pid: int, sig: signals.Signals = signals.SIGKILL) -> None:
        if pid in self.dead_pids:
            msg = f"kill -{int(sig)} {pid} failed: No such process"
            raise RunnerError(msg)
        self.signalled.append(pid)
        if self.on_signal is not None:
            self.on_signal(pid)


def _next(items: deque[Any] | None, default: Any) -> Any:
    if not items:
        return default
    if len(items) > 1:
        return items.popleft()
    return items[0]


