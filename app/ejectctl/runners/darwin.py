"""macOS process runner.

Uses ``mount`` to list mounts, ``diskutil info -plist`` for per-volume
flags and bus protocol, and ``diskutil eject`` to eject.
"""

import logging
import plistlib
import re
from typing import Any
from xml.parsers.expat import ExpatError

from ejectctl.models.volume import MountInfo
from ejectctl.runners.base import ProcessRunner, RunnerError

logger = logging.getLogger(__name__)

# "/dev/disk4s1 on /Volumes/USB STICK (msdos, local, nodev, nosuid, noowners)"
_MOUNT_LINE = re.compile(r"^(?P<source>.+?) on (?P<path>/.*?) \((?P<options>[^()]*)\)$")


class DarwinProcessRunner(ProcessRunner):
    """Process runner backed by macOS command line tools."""

    required_commands = ("mount", "diskutil", "lsof", "kill")

    def mounted_volumes(self) -> list[MountInfo]:
        """List visible mounts with flags reported by diskutil.

        Mounts flagged ``nobrowse`` are hidden volumes and are skipped. A
        mount diskutil cannot describe is returned with default flags.

        Returns:
            MountInfo for every visible mount.

        Raises:
            RunnerError: If ``mount`` cannot be run or fails.
        """
        result = self._run(["mount"])
        if not result.success:
            msg = f"mount failed: {result.stderr.strip()}"
            raise RunnerError(msg)

        mounts: list[MountInfo] = []
        for line in result.stdout.splitlines():
            match = _MOUNT_LINE.match(line.strip())
            if match is None:
                continue
            options = {opt.strip() for opt in match.group("options").split(",")}
            if "nobrowse" in options:
                continue
            path = match.group("path")
            mounts.append(self._describe(path))
        return mounts

    def eject(self, path: str) -> int:
        """Eject the volume with ``diskutil eject``."""
        result = self._run(["diskutil", "eject", path])
        if not result.success:
            logger.debug("diskutil eject %s: %s", path, result.stderr.strip())
        return result.returncode

    def bus_protocol(self, path: str) -> str | None:
        """Read ``BusProtocol`` from ``diskutil info``."""
        info = self._disk_info(path)
        protocol = info.get("BusProtocol")
        return protocol if isinstance(protocol, str) and protocol else None

    def _describe(self, path: str) -> MountInfo:
        """Build MountInfo for a mount path from diskutil info."""
        try:
            info = self._disk_info(path)
        except RunnerError as e:
            logger.debug("diskutil info unavailable for %s: %s", path, e)
            info = {}

        name = info.get("VolumeName")
        removable = info.get("RemovableMedia", info.get("Removable", False))
        return MountInfo(
            path=path,
            name=name if isinstance(name, str) and name else None,
            is_internal=bool(info.get("Internal", True)),
            is_removable=bool(removable),
            is_ejectable=bool(info.get("Ejectable", False)),
            is_root=info.get("MountPoint") == "/" or path == "/",
        )

    def _disk_info(self, path: str) -> dict[str, Any]:
        """Run ``diskutil info -plist`` and parse the property list.

        Returns:
            Parsed plist dictionary, empty if diskutil reported failure.

        Raises:
            RunnerError: If diskutil cannot be run.
        """
        result = self._run(["diskutil", "info", "-plist", path])
        if not result.success:
            return {}
        try:
            data = plistlib.loads(result.stdout.encode())
        except (plistlib.InvalidFileException, ExpatError, ValueError) as e:
            logger.warning("Unparseable diskutil output for %s: %s", path, e)
            return {}
        return data if isinstance(data, dict) else {}
