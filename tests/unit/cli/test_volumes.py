"""Unit tests for the volumes and blockers commands."""

import json
from collections.abc import Callable

import pytest
from ejectctl.cli.main import app
from fakes import FakeRunner
from typer.testing import CliRunner

USB_PATH = "/Volumes/USB STICK"

runner = CliRunner()


@pytest.mark.usefixtures("services")
class TestVolumesCommand:
    """Tests for `ejectctl volumes`."""

    def test_no_volumes(self) -> None:
        """An empty listing says so."""
        result = runner.invoke(app, ["volumes"])

        assert result.exit_code == 0
        assert "No external drives are mounted." in result.output

    def test_table(self, usb_mounted: FakeRunner) -> None:
        """Volumes are shown in a table."""
        result = runner.invoke(app, ["volumes"])

        assert result.exit_code == 0
        assert "USB STICK" in result.output

    def test_json(self, usb_mounted: FakeRunner) -> None:
        """JSON output lists name and path."""
        result = runner.invoke(app, ["volumes", "--format", "json"])

        assert result.exit_code == 0
        assert json.loads(result.stdout) == [{"name": "USB STICK", "path": USB_PATH}]


@pytest.mark.usefixtures("services")
class TestBlockersCommand:
    """Tests for `ejectctl blockers`."""

    def test_nothing_blocking(self, usb_mounted: FakeRunner) -> None:
        """Free volumes report no blockers."""
        result = runner.invoke(app, ["blockers"])

        assert result.exit_code == 0
        assert "Nothing is holding the volumes open." in result.output

    def test_shows_classified_blockers(
        self, usb_mounted: FakeRunner, make_lsof: Callable[..., str]
    ) -> None:
        """Blockers are listed with their safety badge."""
        usb_mounted.set_open_files(USB_PATH, make_lsof(("Finder", 301)))

        result = runner.invoke(app, ["blockers"])

        assert result.exit_code == 0
        assert "Finder" in result.output
        assert "UNSAFE" in result.output

    def test_json(self, usb_mounted: FakeRunner, make_lsof: Callable[..., str]) -> None:
        """JSON output carries safety and category."""
        usb_mounted.set_open_files(USB_PATH, make_lsof(("mds", 88)))

        result = runner.invoke(app, ["blockers", "--format", "json"])

        assert result.exit_code == 0
        assert json.loads(result.stdout) == [
            {
                "volume": "USB STICK",
                "path": USB_PATH,
                "process": "mds",
                "pid": 88,
                "safety": "safe",
                "category": "Spotlight indexing",
            }
        ]

    def test_unknown_volume_name(self, usb_mounted: FakeRunner) -> None:
        """Naming a volume that is not mounted is an error."""
        result = runner.invoke(app, ["blockers", "Missing"])

        assert result.exit_code == 1
        assert "No eligible volume named: Missing" in result.output
