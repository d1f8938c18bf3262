"""Unit tests for DarwinProcessRunner.

Tests for mount parsing, diskutil plist handling and eject.
"""

import plistlib
from unittest.mock import MagicMock, patch

import pytest
from ejectctl.runners.base import RunnerError
from ejectctl.runners.darwin import DarwinProcessRunner
from ejectctl.utils.shell import CommandResult

MOUNT_OUTPUT = """\
/dev/disk3s1s1 on / (apfs, sealed, local, read-only, journaled)
devfs on /dev (devfs, local, nobrowse)
/dev/disk3s5 on /System/Volumes/Data (apfs, local, journaled, nobrowse)
/dev/disk4s1 on /Volumes/USB STICK (msdos, local, nodev, nosuid, noowners)
"""


def plist(**info: object) -> CommandResult:
    return CommandResult(stdout=plistlib.dumps(info).decode(), stderr="", returncode=0)


@pytest.fixture
def runner() -> DarwinProcessRunner:
    """Create DarwinProcessRunner instance."""
    return DarwinProcessRunner()


class TestMountedVolumes:
    """Tests for DarwinProcessRunner.mounted_volumes."""

    @patch("ejectctl.runners.base.run_command")
    def test_skips_hidden_mounts(self, mock_run: MagicMock, runner: DarwinProcessRunner) -> None:
        """nobrowse mounts are not listed; others are described by diskutil."""
        mock_run.side_effect = [
            CommandResult(stdout=MOUNT_OUTPUT, stderr="", returncode=0),
            plist(VolumeName="Macintosh HD", Internal=True, MountPoint="/"),
            plist(
                VolumeName="USB STICK",
                Internal=False,
                RemovableMedia=True,
                Ejectable=True,
                MountPoint="/Volumes/USB STICK",
            ),
        ]

        root, usb = runner.mounted_volumes()

        assert root.is_root is True
        assert root.is_internal is True
        assert usb.path == "/Volumes/USB STICK"
        assert usb.name == "USB STICK"
        assert usb.is_internal is False
        assert usb.is_removable is True
        assert usb.is_ejectable is True

    @patch("ejectctl.runners.base.run_command")
    def test_undescribed_mount_gets_defaults(
        self, mock_run: MagicMock, runner: DarwinProcessRunner
    ) -> None:
        """A mount diskutil cannot describe is treated as internal."""
        mock_run.side_effect = [
            CommandResult(stdout="map auto_home on /System/Volumes/Data/home (autofs)\n",
                          stderr="", returncode=0),
            CommandResult(stdout="", stderr="Could not find disk", returncode=1),
        ]

        (mount,) = runner.mounted_volumes()

        assert mount.is_internal is True
        assert mount.name is None

    @patch("ejectctl.runners.base.run_command")
    def test_mount_failure(self, mock_run: MagicMock, runner: DarwinProcessRunner) -> None:
        """A failing mount command raises RunnerError."""
        mock_run.return_value = CommandResult(stdout="", stderr="boom", returncode=1)

        with pytest.raises(RunnerError, match="mount failed"):
            runner.mounted_volumes()


class TestBusProtocol:
    """Tests for DarwinProcessRunner.bus_protocol."""

    @patch("ejectctl.runners.base.run_command")
    def test_reads_bus_protocol(self, mock_run: MagicMock, runner: DarwinProcessRunner) -> None:
        """BusProtocol is read from diskutil info."""
        mock_run.return_value = plist(BusProtocol="USB")

        assert runner.bus_protocol("/Volumes/USB STICK") == "USB"

    @patch("ejectctl.runners.base.run_command")
    def test_garbage_plist(self, mock_run: MagicMock, runner: DarwinProcessRunner) -> None:
        """Unparseable diskutil output means unknown."""
        mock_run.return_value = CommandResult(stdout="not a plist", stderr="", returncode=0)

        assert runner.bus_protocol("/Volumes/USB STICK") is None


class TestEject:
    """Tests for DarwinProcessRunner.eject."""

    @patch("ejectctl.runners.base.run_command")
    def test_uses_diskutil(self, mock_run: MagicMock, runner: DarwinProcessRunner) -> None:
        """eject runs diskutil eject on the mount path."""
        mock_run.return_value = CommandResult(stdout="", stderr="", returncode=0)

        assert runner.eject("/Volumes/USB STICK") == 0
        assert mock_run.call_args[0][0] == ["diskutil", "eject", "/Volumes/USB STICK"]
