"""Ejector configuration and settings.

This module provides the configuration model and I/O functions for the
volume enumeration policy and the eject retry policy.

Configuration is stored in ~/.config/ejectctl/config.toml
"""

import logging
import os
import platform
import tomllib
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Annotated

import tomli_w
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from ejectctl.core.paths import get_config_path

logger = logging.getLogger(__name__)

# Path prefixes that never hold user-ejectable media.
DEFAULT_RESERVED_PREFIXES: tuple[str, ...] = (
    "/System",
    "/private",
    "/home",
    "/net",
    "/Network",
    "/dev",
    "/Volumes/Recovery",
)


def default_mount_roots() -> list[str]:
    """Get the directories external media is mounted under on this platform.

    Returns:
        ["/Volumes/"] on macOS, the udisks/manual mount roots elsewhere.
    """
    if platform.system() == "Darwin":
        return ["/Volumes/"]
    return ["/media/", "/run/media/", "/mnt/"]


class EjectorConfig(BaseModel):
    """Configuration for volume discovery and ejection.

    Attributes:
        mount_roots: Only mounts below one of these directories are candidates.
        reserved_prefixes: Mounts below any of these prefixes are never candidates.
        require_external_bus: Additionally require an external bus protocol.
        external_bus_patterns: Case-insensitive substrings of accepted bus protocols.
        max_attempts: Eject attempts per volume before giving up.
        initial_delay: Seconds to wait after the first failed attempt.
        backoff_multiplier: Factor applied to the delay after every retry.
        max_delay: Upper bound for a single retry delay in seconds.
        command_timeout: Timeout in seconds for each system command.
    """

    model_config = ConfigDict(extra="forbid")

    mount_roots: Annotated[
        list[str],
        Field(default_factory=default_mount_roots, description="External mount roots"),
    ]
    reserved_prefixes: Annotated[
        list[str],
        Field(
            default_factory=lambda: list(DEFAULT_RESERVED_PREFIXES),
            description="System path prefixes to exclude",
        ),
    ]
    require_external_bus: Annotated[
        bool,
        Field(description="Only list volumes attached via an external bus"),
    ] = False
    external_bus_patterns: Annotated[
        list[str],
        Field(default_factory=lambda: ["usb"], description="Accepted bus protocols"),
    ]
    max_attempts: Annotated[int, Field(ge=1, le=20, description="Eject attempts")] = 4
    initial_delay: Annotated[float, Field(ge=0.0, description="First retry delay")] = 0.4
    backoff_multiplier: Annotated[float, Field(ge=1.0, description="Delay growth")] = 1.5
    max_delay: Annotated[float, Field(ge=0.0, description="Retry delay cap")] = 2.0
    command_timeout: Annotated[
        float,
        Field(gt=0.0, le=600.0, description="Per-command timeout in seconds"),
    ] = 30.0

    @model_validator(mode="after")
    def validate_policy(self) -> "EjectorConfig":
        """Validate cross-field constraints."""
        if not self.mount_roots:
            msg = "mount_roots cannot be empty"
            raise ValueError(msg)
        if self.require_external_bus and not self.external_bus_patterns:
            msg = "external_bus_patterns cannot be empty when require_external_bus is set"
            raise ValueError(msg)
        if self.initial_delay > self.max_delay:
            msg = f"initial_delay ({self.initial_delay}) exceeds max_delay ({self.max_delay})"
            raise ValueError(msg)
        return self

    def retry_delays(self) -> list[float]:
        """Compute the delay slept after each failed, non-final attempt.

        Returns:
            ``max_attempts - 1`` delays: ``min(initial * multiplier**i, max_delay)``.
        """
        return [
            min(self.initial_delay * self.backoff_multiplier**i, self.max_delay)
            for i in range(self.max_attempts - 1)
        ]


class ConfigError(Exception):
    """Base exception for configuration errors."""


class ConfigParseError(ConfigError):
    """Raised when the config file cannot be parsed."""


def load_config(path: Path | None = None) -> EjectorConfig:
    """Load configuration from a TOML file.

    A missing file is not an error: defaults are returned.

    Args:
        path: Path to the config file. If None, uses default config path.

    Returns:
        Validated EjectorConfig object.

    Raises:
        ConfigParseError: If the TOML syntax is invalid.
        ConfigError: If the file cannot be read or doesn't match the schema.
    """
    config_path = path or get_config_path()

    if not config_path.exists():
        logger.debug("No config at %s, using defaults", config_path)
        return EjectorConfig()

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigParseError(f"Invalid TOML syntax in {config_path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read config: {e}") from e

    try:
        return EjectorConfig.model_validate(data)
    except (ValueError, ValidationError) as e:
        raise ConfigError(f"Invalid config content: {e}") from e


def save_config(config: EjectorConfig, path: Path | None = None) -> Path:
    """Save configuration to a TOML file.

    The file is written atomically by first writing to a temporary file
    and then using os.replace() for atomic rename.

    Args:
        config: The EjectorConfig object to save.
        path: Path to save the config. If None, uses default config path.

    Returns:
        Path where the config was saved.

    Raises:
        ConfigError: If the file cannot be written.
    """
    config_path = path or get_config_path()
    data = config.model_dump(mode="json")

    tmp_path: Path | None = None
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with NamedTemporaryFile(
            mode="wb",
            dir=config_path.parent,
            delete=False,
            suffix=".tmp",
        ) as f:
            tmp_path = Path(f.name)
            tomli_w.dump(data, f)
        os.replace(str(tmp_path), str(config_path))
    except OSError as e:
        if tmp_path is not None and tmp_path.exists():
            tmp_path.unlink()
        raise ConfigError(f"Failed to write config: {e}") from e

    return config_path
