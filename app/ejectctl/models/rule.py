"""Automation rule model."""

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ProcessRule:
    """A process the user approved for silent termination.

    Attributes:
        identifier: Trimmed, lowercased process name (unique key).
        display_name: Trimmed process name as first seen.
    """

    identifier: str
    display_name: str


def normalize_identifier(process_name: str) -> str:
    """Normalize a process name into a rule identifier.

    Args:
        process_name: Raw process name.

    Returns:
        The name with surrounding whitespace removed, lowercased.
    """
    return process_name.strip().lower()
