"""Persistent store of user-approved automation rules.

Rules name processes the user has agreed may be terminated silently
whenever they block an ejection. The store keeps a flat
``identifier -> display name`` map under one namespaced table of the
per-user settings file; other tables in that file are left untouched.

Writes replace the whole map and are serialized by a lock held across
read-modify-write. A settings file that cannot be parsed reads as empty
but is never overwritten. Listeners are notified only when something
changed.
"""

import logging
import os
import threading
import tomllib
from collections.abc import Callable, Iterable
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Any

import tomli_w

from ejectctl.core.paths import get_settings_path
from ejectctl.models.rule import ProcessRule, normalize_identifier
from ejectctl.models.volume import ProcessInfo

logger = logging.getLogger(__name__)

STORAGE_KEY = "ProcessRuleStore.savedRules"

RuleStoreListener = Callable[["ProcessRuleStore"], None]


class RuleStoreError(Exception):
    """Raised when the rule store cannot be written."""


class ProcessRuleStore:
    """Manages automation rules in the settings file.

    Storage location: ~/.config/ejectctl/settings.toml

    Attributes:
        settings_path: Path of the settings file backing the store.
    """

    def __init__(self, settings_path: Path | None = None) -> None:
        """Initialize ProcessRuleStore.

        Args:
            settings_path: Optional override for the settings file.
                Default: ~/.config/ejectctl/settings.toml
        """
        self._settings_path = settings_path if settings_path is not None else get_settings_path()
        self._lock = threading.RLock()
        self._listeners: list[RuleStoreListener] = []

    @property
    def settings_path(self) -> Path:
        """Path of the settings file backing the store."""
        return self._settings_path

    # =========================================================================
    # Change notification
    # =========================================================================

    def subscribe(self, listener: RuleStoreListener) -> Callable[[], None]:
        """Register a callback invoked after every effective change.

        Args:
            listener: Callable receiving this store.

        Returns:
            A function that removes the listener again.
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(self)

    # =========================================================================
    # Queries
    # =========================================================================

    def all_rules(self) -> list[ProcessRule]:
        """Get all rules sorted by display name, case-insensitive.

        Returns:
            List of ProcessRule, ordered for display.
        """
        rules = self._stored_rules()
        return sorted(
            (ProcessRule(identifier=key, display_name=value) for key, value in rules.items()),
            key=lambda rule: (rule.display_name.casefold(), rule.identifier),
        )

    def contains_rule(self, process_name: str) -> bool:
        """Check whether a process name has an automation rule.

        Args:
            process_name: Raw process name; normalized before lookup.

        Returns:
            True if a rule exists for the normalized identifier.
        """
        return normalize_identifier(process_name) in self._stored_rules()

    # =========================================================================
    # Mutations
    # =========================================================================

    def add_rules(self, processes: Iterable[ProcessInfo]) -> list[ProcessRule]:
        """Add rules for processes that do not have one yet.

        Existing rules keep their first-seen display name. Processes whose
        trimmed name is empty are skipped.

        Args:
            processes: Processes approved by the user.

        Returns:
            The rules that were actually added.

        Raises:
            RuleStoreError: If the settings file cannot be written.
        """
        added: list[ProcessRule] = []
        with self._lock:
            rules = self._stored_rules()
            for process in processes:
                display_name = process.name.strip()
                if not display_name:
                    continue
                identifier = normalize_identifier(process.name)
                if identifier in rules:
                    continue
                rules[identifier] = display_name
                added.append(ProcessRule(identifier=identifier, display_name=display_name))
            if added:
                self._write_rules(rules)

        if added:
            logger.info("Added %d automation rule(s)", len(added))
            self._notify()
        return added

    def remove_rule(self, identifier: str) -> bool:
        """Remove a rule by its identifier.

        Args:
            identifier: Exact rule identifier.

        Returns:
            True if a rule was removed.

        Raises:
            RuleStoreError: If the settings file cannot be written.
        """
        return self.remove_rules([identifier]) > 0

    def remove_rules(self, identifiers: Iterable[str]) -> int:
        """Remove rules by identifier.

        Args:
            identifiers: Exact rule identifiers. Unknown ones are ignored.

        Returns:
            Number of rules removed.

        Raises:
            RuleStoreError: If the settings file cannot be written.
        """
        removed = 0
        with self._lock:
            rules = self._stored_rules()
            for identifier in identifiers:
                if rules.pop(identifier, None) is not None:
                    removed += 1
            if removed:
                self._write_rules(rules)

        if removed:
            logger.info("Removed %d automation rule(s)", removed)
            self._notify()
        return removed

    def remove_rule_for(self, process_name: str) -> bool:
        """Remove the rule matching a raw process name.

        Args:
            process_name: Raw process name; normalized before lookup.

        Returns:
            True if a rule was removed.
        """
        return self.remove_rule(normalize_identifier(process_name))

    def clear(self) -> int:
        """Remove every rule.

        Returns:
            Number of rules removed.
        """
        return self.remove_rules(list(self._stored_rules()))

    # =========================================================================
    # Persistence
    # =========================================================================

    def _read_settings(self, *, strict: bool = False) -> dict[str, Any]:
        """Read the whole settings document.

        A missing file reads as empty. An unreadable or corrupt file reads
        as empty unless ``strict`` is set.

        Raises:
            RuleStoreError: If ``strict`` and the file cannot be read or parsed.
        """
        try:
            with self._settings_path.open("rb") as f:
                return tomllib.load(f)
        except FileNotFoundError:
            return {}
        except tomllib.TOMLDecodeError as e:
            if strict:
                msg = f"Refusing to overwrite corrupt settings file {self._settings_path}: {e}"
                raise RuleStoreError(msg) from e
            logger.warning("Ignoring corrupt settings file %s: %s", self._settings_path, e)
            return {}
        except OSError as e:
            if strict:
                msg = f"Cannot read settings file {self._settings_path}: {e}"
                raise RuleStoreError(msg) from e
            logger.warning("Cannot read settings file %s: %s", self._settings_path, e)
            return {}

    def _stored_rules(self) -> dict[str, str]:
        """Snapshot of the stored rule map, string entries only."""
        raw = self._read_settings().get(STORAGE_KEY, {})
        if not isinstance(raw, dict):
            logger.warning("Invalid '%s' table in %s", STORAGE_KEY, self._settings_path)
            return {}
        return {key: value for key, value in raw.items() if isinstance(value, str)}

    def _write_rules(self, rules: dict[str, str]) -> None:
        """Replace the rule map in the settings file atomically.

        The existing document is never replaced when it cannot be parsed.

        Raises:
            RuleStoreError: If the file cannot be parsed or written.
        """
        settings = self._read_settings(strict=True)
        settings[STORAGE_KEY] = dict(rules)

        tmp_path: Path | None = None
        try:
            self._settings_path.parent.mkdir(parents=True, exist_ok=True)
            with NamedTemporaryFile(
                mode="wb",
                dir=self._settings_path.parent,
                delete=False,
                suffix=".tmp",
            ) as f:
                tmp_path = Path(f.name)
                tomli_w.dump(settings, f)
            os.replace(str(tmp_path), str(self._settings_path))
        except OSError as e:
            if tmp_path is not None and tmp_path.exists():
                tmp_path.unlink()
            raise RuleStoreError(f"Failed to write settings: {e}") from e
