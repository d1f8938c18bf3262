"""Data models for ejectctl.

This module exports the core data structures used throughout the application.
"""

from ejectctl.models.rule import ProcessRule, normalize_identifier
from ejectctl.models.safety import ProcessDescriptor, ProcessSafety, VolumeProcessInfo
from ejectctl.models.volume import (
    EjectOutcome,
    MountInfo,
    ProcessInfo,
    Volume,
    VolumeEjectResult,
)

__all__ = [
    "EjectOutcome",
    "MountInfo",
    "ProcessDescriptor",
    "ProcessInfo",
    "ProcessRule",
    "ProcessSafety",
    "Volume",
    "VolumeEjectResult",
    "VolumeProcessInfo",
    "normalize_identifier",
]
