"""Process safety classification models."""

from dataclasses import dataclass
from enum import Enum

from ejectctl.models.volume import ProcessInfo, Volume


class ProcessSafety(str, Enum):
    """Expected consequence of force-terminating a process.

    Attributes:
        SAFE: Background work that resumes on its own; no data loss.
        UNSAFE: Termination risks data loss or disrupts the session.
        UNKNOWN: The process is not in the built-in knowledge base.
    """

    SAFE = "safe"
    UNSAFE = "unsafe"
    UNKNOWN = "unknown"

    @property
    def label(self) -> str:
        """Badge text for display."""
        return self.value.upper()


@dataclass(frozen=True, slots=True)
class ProcessDescriptor:
    """Built-in knowledge about a family of processes.

    Attributes:
        names: Lowercase aliases the process may appear under.
        category: Short human-readable category.
        safety: Safety tier for the whole family.
        notes: What happens when the process is terminated.
    """

    names: frozenset[str]
    category: str
    safety: ProcessSafety
    notes: str

    def __post_init__(self) -> None:
        """Validate descriptor data after initialization."""
        if not self.names:
            msg = "Descriptor must have at least one alias"
            raise ValueError(msg)
        if any(name != name.lower() for name in self.names):
            msg = f"Descriptor aliases must be lowercase: {sorted(self.names)}"
            raise ValueError(msg)


@dataclass(frozen=True, slots=True)
class VolumeProcessInfo:
    """One row of the user-facing blocker list.

    Attributes:
        volume: The volume being held open.
        process: The blocking process.
        safety: Safety tier of the process.
        descriptor: Matching knowledge base entry, None when unknown.
    """

    volume: Volume
    process: ProcessInfo
    safety: ProcessSafety
    descriptor: ProcessDescriptor | None = None
