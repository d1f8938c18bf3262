"""Pytest configuration and shared fixtures.

This module contains fixtures used across all test modules.
"""

import os
from collections.abc import Callable, Iterator
from pathlib import Path
from unittest.mock import patch

import pytest
from ejectctl.core.config import EjectorConfig
from ejectctl.core.rules import ProcessRuleStore
from ejectctl.core.volumes import VolumeManager
from fakes import FakeRunner, lsof_output


@pytest.fixture
def fake_runner() -> FakeRunner:
    """Empty in-memory process runner."""
    return FakeRunner()


@pytest.fixture
def make_lsof() -> Callable[..., str]:
    """Builder for lsof output from (command, pid) rows."""
    return lsof_output


@pytest.fixture
def sleeps() -> list[float]:
    """Recorded retry delays."""
    return []


@pytest.fixture
def config() -> EjectorConfig:
    """Configuration with macOS mount roots, independent of the host."""
    return EjectorConfig(mount_roots=["/Volumes/"])


@pytest.fixture
def manager(fake_runner: FakeRunner, config: EjectorConfig, sleeps: list[float]) -> VolumeManager:
    """VolumeManager over the fake runner with a recording sleep."""
    return VolumeManager(fake_runner, config, sleep=sleeps.append)


@pytest.fixture
def rule_store(tmp_path: Path) -> ProcessRuleStore:
    """Rule store backed by a temporary settings file."""
    return ProcessRuleStore(tmp_path / "settings.toml")


@pytest.fixture
def isolated_config_home(tmp_path: Path) -> Iterator[Path]:
    """Point XDG_CONFIG_HOME at a temporary directory."""
    with patch.dict(os.environ, {"XDG_CONFIG_HOME": str(tmp_path)}):
        yield tmp_path
