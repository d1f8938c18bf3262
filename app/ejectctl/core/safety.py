"""Process safety classification.

This module holds the built-in knowledge base of processes that commonly
hold removable volumes open, and classifies observed process names
against it. Lookup is pure: the tables are built once and never mutated.

Matching, case-insensitive:
1. Exact alias match wins.
2. Otherwise the first descriptor, in table order, with an alias that is
   a prefix of the name or that the name is a prefix of. This covers
   process names truncated by the OS. When aliases of two descriptors
   are prefixes of each other the earlier descriptor wins; the tie-break
   is defined by table order, not by any notion of a better match.
3. Otherwise UNKNOWN with no descriptor.
"""

from collections.abc import Sequence

from ejectctl.models.safety import ProcessDescriptor, ProcessSafety, VolumeProcessInfo
from ejectctl.models.volume import ProcessInfo, Volume


def _descriptor(
    names: Sequence[str], category: str, safety: ProcessSafety, notes: str
) -> ProcessDescriptor:
    return ProcessDescriptor(
        names=frozenset(name.lower() for name in names),
        category=category,
        safety=safety,
        notes=notes,
    )


_SAFE = ProcessSafety.SAFE
_UNSAFE = ProcessSafety.UNSAFE

# Ordered: the fallback prefix scan returns the first match.
PROCESS_DESCRIPTORS: tuple[ProcessDescriptor, ...] = (
    # Media libraries and analysis
    _descriptor(
        ["photos", "photos.app"],
        "Apple Photos app",
        _SAFE,
        "Ends photo library access. No data loss.",
    ),
    _descriptor(
        ["photoanalysisd", "photoanal", "photoanalysis"],
        "Photos analysis daemon",
        _SAFE,
        "Handles face/object analysis. Non-destructive to stop.",
    ),
    _descriptor(
        ["mediaanalysisd", "mediaanal"],
        "Media analysis daemon",
        _SAFE,
        "Indexes media metadata. Safe to stop; work will resume later.",
    ),
    _descriptor(
        ["photolibr", "photolibraryd"],
        "Photo library service",
        _SAFE,
        "Manages local library sync. Safe to quit.",
    ),
    _descriptor(
        ["cloudphotosd", "cloudphot"],
        "iCloud Photos sync",
        _SAFE,
        "Stops iCloud Photos syncing until it restarts.",
    ),
    _descriptor(
        ["cleanmymac", "cleanmymacx", "cleanmymac x", "cleanmyma"],
        "CleanMyMac helper",
        _SAFE,
        "Cancels the current cleanup task without lasting effects.",
    ),
    # Indexing
    _descriptor(
        ["spotlight", "mds", "mds_stores", "mdworker", "mdworker_shared"],
        "Spotlight indexing",
        _SAFE,
        "Pauses indexing temporarily; macOS will restart it automatically.",
    ),
    _descriptor(
        ["tracker-miner-fs", "tracker-miner-fs-3", "tracker-extract", "tracker-extract-3"],
        "GNOME search indexing",
        _SAFE,
        "Pauses file indexing; the miner restarts on its own.",
    ),
    _descriptor(
        ["baloo_file", "baloo_file_extractor", "baloo_file_extr"],
        "KDE search indexing",
        _SAFE,
        "Pauses file indexing; Baloo resumes later.",
    ),
    # Previews and thumbnails
    _descriptor(
        ["preview"],
        "Preview",
        _SAFE,
        "Closes open documents. No data loss beyond unsaved changes.",
    ),
    _descriptor(
        ["quicklookuiservice", "quicklookui"],
        "Quick Look service",
        _SAFE,
        "Stops thumbnail generation. macOS will relaunch it if needed.",
    ),
    _descriptor(
        ["gvfsd-metadata", "gvfs-udisks2-volume-monitor", "gvfs-udisks2-vo"],
        "GVfs desktop helper",
        _SAFE,
        "Stops metadata and volume monitoring; the session restarts it on demand.",
    ),
    # Cloud sync
    _descriptor(
        ["dropbox"],
        "Cloud sync client",
        _SAFE,
        "Pauses Dropbox syncing until relaunched.",
    ),
    _descriptor(
        ["googledrive", "google drive"],
        "Cloud sync client",
        _SAFE,
        "Pauses Google Drive syncing until relaunched.",
    ),
    _descriptor(
        ["onedrive"],
        "Cloud sync client",
        _SAFE,
        "Pauses OneDrive syncing until relaunched.",
    ),
    _descriptor(
        ["bird"],
        "iCloud Drive daemon",
        _SAFE,
        "Stops iCloud Drive syncing temporarily.",
    ),
    _descriptor(
        ["soagent"],
        "CloudKit service",
        _SAFE,
        "Pauses CloudKit sync until the agent restarts.",
    ),
    _descriptor(
        ["messages", "imagent"],
        "Messages",
        _SAFE,
        "Closes the Messages app or helper. Safe to reopen later.",
    ),
    # Session and file managers
    _descriptor(
        ["finder"],
        "Finder",
        _UNSAFE,
        "macOS restarts Finder automatically, but quitting may disrupt user workflow.",
    ),
    _descriptor(
        ["nautilus", "dolphin", "thunar", "nemo"],
        "File manager",
        _UNSAFE,
        "Closes every file manager window; in-progress copies are aborted.",
    ),
    # Backups, disk maintenance and transfers
    _descriptor(
        ["backupd", "com.apple.timemachine"],
        "Time Machine backup",
        _UNSAFE,
        "Interrupts Time Machine backups; risk of incomplete backup.",
    ),
    _descriptor(
        ["fsck", "e2fsck"],
        "Filesystem check",
        _UNSAFE,
        "May interrupt disk repairs and risk corruption.",
    ),
    _descriptor(
        ["diskutil", "udisksd"],
        "Disk utility task",
        _UNSAFE,
        "Stopping may leave disk operations incomplete.",
    ),
    _descriptor(
        ["cp", "mv", "rsync", "dd"],
        "File transfer",
        _UNSAFE,
        "Stopping may interrupt file copy or sync operations.",
    ),
    # Creative applications
    _descriptor(
        ["finalcutpro"],
        "Final Cut Pro",
        _UNSAFE,
        "Avoid quitting during editing or exports to prevent data loss.",
    ),
    _descriptor(
        ["logicpro"],
        "Logic Pro",
        _UNSAFE,
        "Avoid quitting during editing or renders to prevent data loss.",
    ),
    _descriptor(
        ["premiere", "adobepremierepro"],
        "Premiere Pro",
        _UNSAFE,
        "Avoid quitting during exports to prevent corruption.",
    ),
    # Core system
    _descriptor(
        ["kernel_task", "systemd"],
        "Core system process",
        _UNSAFE,
        "Critical system process. Never terminate.",
    ),
    _descriptor(
        ["windowserver", "gnome-shell", "xorg", "xwayland", "kwin_wayland", "kwin_x11"],
        "Window manager",
        _UNSAFE,
        "Quitting will log you out immediately.",
    ),
)


class ProcessClassifier:
    """Classifies process names against the descriptor table.

    The exact-match table and the ordered fallback list are kept apart so
    that an exact hit always beats a prefix hit from an earlier entry.

    Args:
        descriptors: Ordered knowledge base. Defaults to PROCESS_DESCRIPTORS.
    """

    def __init__(self, descriptors: Sequence[ProcessDescriptor] = PROCESS_DESCRIPTORS) -> None:
        self._descriptors: tuple[ProcessDescriptor, ...] = tuple(descriptors)
        exact: dict[str, ProcessDescriptor] = {}
        for descriptor in self._descriptors:
            for name in descriptor.names:
                exact.setdefault(name, descriptor)
        self._exact = exact

    @property
    def descriptors(self) -> tuple[ProcessDescriptor, ...]:
        """The ordered knowledge base."""
        return self._descriptors

    def lookup(self, process_name: str) -> ProcessDescriptor | None:
        """Find the descriptor for a process name.

        Args:
            process_name: Observed process name, any case.

        Returns:
            Matching descriptor, or None when the process is unknown.
        """
        name = process_name.strip().lower()
        if not name:
            return None

        descriptor = self._exact.get(name)
        if descriptor is not None:
            return descriptor

        for candidate in self._descriptors:
            for alias in candidate.names:
                if name.startswith(alias) or alias.startswith(name):
                    return candidate

        return None

    def classify(self, process_name: str) -> tuple[ProcessSafety, ProcessDescriptor | None]:
        """Classify a process name into a safety tier.

        Args:
            process_name: Observed process name, any case.

        Returns:
            Tuple of (safety tier, descriptor or None).
        """
        descriptor = self.lookup(process_name)
        if descriptor is None:
            return ProcessSafety.UNKNOWN, None
        return descriptor.safety, descriptor

    def describe(self, volume: Volume, process: ProcessInfo) -> VolumeProcessInfo:
        """Build a blocker row for a process holding a volume open."""
        safety, descriptor = self.classify(process.name)
        return VolumeProcessInfo(
            volume=volume,
            process=process,
            safety=safety,
            descriptor=descriptor,
        )
