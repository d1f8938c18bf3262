"""Fixtures for CLI command tests."""

from collections.abc import Iterator
from pathlib import Path
from unittest.mock import patch

import pytest
from ejectctl.core.rules import ProcessRuleStore
from ejectctl.core.volumes import VolumeManager
from ejectctl.models.volume import MountInfo
from fakes import FakeRunner

USB_PATH = "/Volumes/USB STICK"


@pytest.fixture
def usb_mounted(fake_runner: FakeRunner) -> FakeRunner:
    """Runner with one external volume mounted."""
    fake_runner.mounts = [
        MountInfo(path=USB_PATH, name="USB STICK", is_internal=False, is_ejectable=True)
    ]
    return fake_runner


@pytest.fixture
def services(
    manager: VolumeManager, rule_store: ProcessRuleStore, isolated_config_home: Path
) -> Iterator[tuple[VolumeManager, ProcessRuleStore]]:
    """Route every command's service factories to in-memory fakes."""
    targets = ["volumes", "blockers", "eject"]
    patchers = [
        patch(f"ejectctl.cli.commands.{name}.get_volume_manager", return_value=manager)
        for name in targets
    ]
    patchers += [
        patch(f"ejectctl.cli.commands.{name}.get_rule_store", return_value=rule_store)
        for name in ("blockers", "eject", "rules")
    ]
    for patcher in patchers:
        patcher.start()
    try:
        yield manager, rule_store
    finally:
        for patcher in patchers:
            patcher.stop()
