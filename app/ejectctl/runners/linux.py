"""Linux process runner.

Uses ``lsblk`` for the block device tree and mount points, ``findmnt`` to
resolve a mount path to its device, and util-linux ``eject``.
"""

import json
import logging
from collections.abc import Iterator
from typing import Any

from ejectctl.models.volume import MountInfo
from ejectctl.runners.base import ProcessRunner, RunnerError

logger = logging.getLogger(__name__)

_LSBLK_COLUMNS = "NAME,LABEL,MOUNTPOINT,RM,HOTPLUG,TRAN,TYPE"


def _flag(value: object) -> bool:
    """Interpret an lsblk boolean column.

    Older lsblk releases emit "0"/"1" strings, newer ones JSON booleans.
    """
    if isinstance(value, str):
        return value.strip() not in ("", "0", "false")
    return bool(value)


class LinuxProcessRunner(ProcessRunner):
    """Process runner backed by util-linux command line tools."""

    required_commands = ("lsblk", "findmnt", "eject", "lsof", "kill")

    def mounted_volumes(self) -> list[MountInfo]:
        """List mounted block devices with removable/hotplug flags.

        Partitions inherit the removable, hotplug and transport columns of
        their parent disk. A device is internal when it is not hotpluggable.

        Returns:
            MountInfo for every mounted block device.

        Raises:
            RunnerError: If lsblk cannot be run, fails, or emits invalid JSON.
        """
        result = self._run(["lsblk", "-J", "-o", _LSBLK_COLUMNS])
        if not result.success:
            msg = f"lsblk failed: {result.stderr.strip()}"
            raise RunnerError(msg)
        try:
            data = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            msg = f"Invalid lsblk output: {e}"
            raise RunnerError(msg) from e

        mounts: list[MountInfo] = []
        for device, inherited in self._walk(data.get("blockdevices", []), {}):
            mountpoint = device.get("mountpoint")
            if not mountpoint or mountpoint == "[SWAP]":
                continue
            hotplug = _flag(device.get("hotplug")) or _flag(inherited.get("hotplug"))
            removable = _flag(device.get("rm")) or _flag(inherited.get("rm"))
            label = device.get("label")
            mounts.append(
                MountInfo(
                    path=mountpoint,
                    name=label if isinstance(label, str) and label else None,
                    is_internal=not hotplug,
                    is_removable=removable,
                    is_ejectable=hotplug,
                    is_root=mountpoint == "/",
                )
            )
        return mounts

    def eject(self, path: str) -> int:
        """Unmount and eject with util-linux ``eject``."""
        result = self._run(["eject", path])
        if not result.success:
            logger.debug("eject %s: %s", path, result.stderr.strip())
        return result.returncode

    def bus_protocol(self, path: str) -> str | None:
        """Resolve the mount to its device and read the disk's TRAN column.

        ``lsblk -s`` lists the device followed by its ancestors, so the
        first non-empty transport belongs to the nearest disk.
        """
        source = self._run(["findmnt", "-n", "-o", "SOURCE", "--target", path])
        device = source.stdout.strip()
        if not source.success or not device.startswith("/dev/"):
            return None

        result = self._run(["lsblk", "-n", "-s", "-o", "TRAN", device])
        if not result.success:
            return None
        for line in result.stdout.splitlines():
            if line.strip():
                return line.strip()
        return None

    def _walk(
        self,
        devices: list[dict[str, Any]],
        inherited: dict[str, Any],
    ) -> Iterator[tuple[dict[str, Any], dict[str, Any]]]:
        """Flatten the lsblk device tree.

        Yields:
            Tuples of (device, columns inherited from the enclosing disk).
        """
        for device in devices:
            yield device, inherited
            children = device.get("children") or []
            if children:
                parent = {
                    "rm": device.get("rm") or inherited.get("rm"),
                    "hotplug": device.get("hotplug") or inherited.get("hotplug"),
                    "tran": device.get("tran") or inherited.get("tran"),
                }
                yield from self._walk(children, parent)
