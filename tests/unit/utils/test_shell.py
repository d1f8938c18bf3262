"""Unit tests for shell execution utilities."""

import subprocess
from unittest.mock import MagicMock, patch

import pytest
from ejectctl.utils.shell import CommandResult, command_exists, run_command


class TestCommandResult:
    """Tests for CommandResult."""

    def test_success(self) -> None:
        """Exit status 0 is success."""
        assert CommandResult(stdout="", stderr="", returncode=0).success
        assert not CommandResult(stdout="", stderr="", returncode=1).success


class TestRunCommand:
    """Tests for run_command function."""

    @patch("ejectctl.utils.shell.subprocess.run")
    def test_captures_output(self, mock_run: MagicMock) -> None:
        """run_command returns stdout, stderr and exit code."""
        mock_run.return_value = MagicMock(stdout="out", stderr="err", returncode=2)

        result = run_command(["lsof", "/Volumes/USB"])

        assert result == CommandResult(stdout="out", stderr="err", returncode=2)
        assert mock_run.call_args.kwargs["capture_output"] is True
        assert mock_run.call_args.kwargs["text"] is True

    @patch("ejectctl.utils.shell.subprocess.run")
    def test_passes_timeout(self, mock_run: MagicMock) -> None:
        """run_command forwards the timeout."""
        mock_run.return_value = MagicMock(stdout="", stderr="", returncode=0)

        run_command(["mount"], timeout=5.0)

        assert mock_run.call_args.kwargs["timeout"] == 5.0

    @patch("ejectctl.utils.shell.subprocess.run")
    def test_timeout_propagates(self, mock_run: MagicMock) -> None:
        """Timeouts are raised to the caller."""
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="lsof", timeout=1.0)

        with pytest.raises(subprocess.TimeoutExpired):
            run_command(["lsof", "/Volumes/USB"], timeout=1.0)

    def test_raises_file_not_found(self) -> None:
        """run_command raises FileNotFoundError for missing commands."""
        with pytest.raises(FileNotFoundError):
            run_command(["nonexistent_command_xyz_12345"])


class TestCommandExists:
    """Tests for command_exists function."""

    @patch("ejectctl.utils.shell.shutil.which", return_value="/usr/sbin/lsof")
    def test_found(self, mock_which: MagicMock) -> None:
        """command_exists is True when the command is on PATH."""
        assert command_exists("lsof") is True
        mock_which.assert_called_once_with("lsof")

    @patch("ejectctl.utils.shell.shutil.which", return_value=None)
    def test_missing(self, mock_which: MagicMock) -> None:
        """command_exists is False when the command is not on PATH."""
        assert command_exists("diskutil") is False
