"""Volume and process domain models.

This module defines the immutable data structures shared between the
process runner, the volume manager and the ejection workflow.
"""

from dataclasses import dataclass, field
from enum import Enum


@dataclass(frozen=True, slots=True)
class Volume:
    """A mounted, ejectable filesystem.

    Identity and equality are by ``(name, path)``.

    Attributes:
        name: Display name (localized volume name or last path component).
        path: Absolute mount path.
    """

    name: str
    path: str

    def __post_init__(self) -> None:
        """Validate volume data after initialization."""
        if not self.path:
            msg = "Volume path cannot be empty"
            raise ValueError(msg)


@dataclass(frozen=True, slots=True)
class MountInfo:
    """A mounted filesystem as reported by the operating system.

    Flags default to the values the OS implies when it reports nothing:
    internal, not removable, not ejectable, not the root filesystem.

    Attributes:
        path: Absolute mount path.
        name: Localized volume name, None if the OS did not report one.
        is_internal: Whether the backing device is internal.
        is_removable: Whether the media is removable.
        is_ejectable: Whether the device can be ejected.
        is_root: Whether this is the root filesystem.
    """

    path: str
    name: str | None = None
    is_internal: bool = True
    is_removable: bool = False
    is_ejectable: bool = False
    is_root: bool = False


@dataclass(frozen=True, slots=True)
class ProcessInfo:
    """A process observed holding a volume open.

    Identity is by ``pid``: two observations of the same pid compare equal
    even when the reported name differs (e.g. truncated by the OS).

    Attributes:
        name: Process name as reported by lsof.
        pid: Process identifier.
    """

    name: str = field(compare=False)
    pid: int


class EjectOutcome(str, Enum):
    """Result of ejecting a single volume.

    Attributes:
        EJECTED: The volume was unmounted and ejected.
        BLOCKED: One or more processes hold the volume open.
        FAILED: Ejection failed and no blocking process was found.
    """

    EJECTED = "ejected"
    BLOCKED = "blocked"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class VolumeEjectResult:
    """Outcome of one ejection batch.

    Every volume passed to the batch appears in exactly one of
    ``successful``, ``blocking`` or ``failed_without_processes``.

    Attributes:
        successful: Volumes that were ejected.
        blocking: Volumes that are held open, with the blocking processes.
        failed_without_processes: Volumes that failed with no known cause.
    """

    successful: frozenset[Volume] = frozenset()
    blocking: dict[Volume, list[ProcessInfo]] = field(default_factory=dict)
    failed_without_processes: frozenset[Volume] = frozenset()

    def __post_init__(self) -> None:
        """Validate that no volume has more than one outcome."""
        blocked = frozenset(self.blocking)
        overlap = (
            (self.successful & blocked)
            | (self.successful & self.failed_without_processes)
            | (blocked & self.failed_without_processes)
        )
        if overlap:
            names = ", ".join(sorted(v.name for v in overlap))
            msg = f"Volume has more than one outcome: {names}"
            raise ValueError(msg)

    @property
    def is_success(self) -> bool:
        """Check if every volume in the batch was ejected."""
        return not self.blocking and not self.failed_without_processes

    @property
    def volumes(self) -> frozenset[Volume]:
        """All volumes covered by this result."""
        return self.successful | frozenset(self.blocking) | self.failed_without_processes
