"""Unit tests for the rules, classify and config commands."""

import json
from pathlib import Path

import pytest
from ejectctl.cli.main import app
from ejectctl.core.config import load_config
from ejectctl.core.rules import ProcessRuleStore
from ejectctl.models.volume import ProcessInfo
from typer.testing import CliRunner

runner = CliRunner()


@pytest.mark.usefixtures("services")
class TestRulesCommands:
    """Tests for `ejectctl rules`."""

    def test_list_empty(self) -> None:
        """An empty store says so."""
        result = runner.invoke(app, ["rules", "list"])

        assert result.exit_code == 0
        assert "No automation rules saved." in result.output

    def test_add_and_list(self, rule_store: ProcessRuleStore) -> None:
        """Added rules are listed."""
        result = runner.invoke(app, ["rules", "add", "Finder", "mdworker"])

        assert result.exit_code == 0
        assert "Added rule: Finder" in result.output
        assert [r.identifier for r in rule_store.all_rules()] == ["finder", "mdworker"]

        listing = runner.invoke(app, ["rules", "list", "--json"])
        assert json.loads(listing.stdout) == [
            {"identifier": "finder", "display_name": "Finder"},
            {"identifier": "mdworker", "display_name": "mdworker"},
        ]

    def test_add_existing(self, rule_store: ProcessRuleStore) -> None:
        """Re-adding an existing rule changes nothing."""
        rule_store.add_rules([ProcessInfo(name="Finder", pid=1)])

        result = runner.invoke(app, ["rules", "add", "FINDER"])

        assert result.exit_code == 0
        assert "No new rules added." in result.output

    def test_remove(self, rule_store: ProcessRuleStore) -> None:
        """Rules are removed by process name."""
        rule_store.add_rules([ProcessInfo(name="Finder", pid=1)])

        result = runner.invoke(app, ["rules", "remove", " Finder "])

        assert result.exit_code == 0
        assert "Removed 1 rule(s)." in result.output
        assert rule_store.all_rules() == []

    def test_remove_unknown(self) -> None:
        """Removing a rule that does not exist is an error."""
        result = runner.invoke(app, ["rules", "remove", "Finder"])

        assert result.exit_code == 1
        assert "No matching rule" in result.output

    def test_clear(self, rule_store: ProcessRuleStore) -> None:
        """clear --yes removes everything."""
        rule_store.add_rules([ProcessInfo(name="Finder", pid=1), ProcessInfo(name="mds", pid=2)])

        result = runner.invoke(app, ["rules", "clear", "--yes"])

        assert result.exit_code == 0
        assert "Removed 2 rule(s)." in result.output
        assert rule_store.all_rules() == []

    def test_clear_declined(self, rule_store: ProcessRuleStore) -> None:
        """Declining the prompt keeps the rules."""
        rule_store.add_rules([ProcessInfo(name="Finder", pid=1)])

        result = runner.invoke(app, ["rules", "clear"], input="n\n")

        assert result.exit_code == 0
        assert rule_store.contains_rule("finder")


class TestClassifyCommand:
    """Tests for `ejectctl classify`."""

    def test_classifies_names(self) -> None:
        """Each name is shown with its safety tier."""
        result = runner.invoke(app, ["classify", "mdworker_shared", "randomtool123"])

        assert result.exit_code == 0
        assert "SAFE" in result.output
        assert "UNKNOWN" in result.output
        assert "Spotlight indexing" in result.output


class TestConfigCommands:
    """Tests for `ejectctl config`."""

    def test_show_defaults(self, isolated_config_home: Path) -> None:
        """show prints the defaults when no file exists."""
        result = runner.invoke(app, ["config", "show"])

        assert result.exit_code == 0
        assert "built-in defaults" in result.output
        assert "max_attempts = 4" in result.output

    def test_init_writes_file(self, isolated_config_home: Path) -> None:
        """init writes a loadable config file."""
        result = runner.invoke(app, ["config", "init"])

        path = isolated_config_home / "ejectctl" / "config.toml"
        assert result.exit_code == 0
        assert path.exists()
        assert load_config(path).max_attempts == 4

    def test_init_keeps_existing(self, isolated_config_home: Path) -> None:
        """init does not overwrite without --force."""
        path = isolated_config_home / "ejectctl" / "config.toml"
        path.parent.mkdir(parents=True)
        path.write_text("max_attempts = 2\n")

        result = runner.invoke(app, ["config", "init"])

        assert result.exit_code == 0
        assert "already exists" in result.output
        assert load_config(path).max_attempts == 2

    def test_invalid_config_reported(self, isolated_config_home: Path) -> None:
        """A broken config file is reported as an error."""
        path = isolated_config_home / "ejectctl" / "config.toml"
        path.parent.mkdir(parents=True)
        path.write_text("max_attempts = [")

        result = runner.invoke(app, ["config", "show"])

        assert result.exit_code == 1
        assert "Invalid TOML syntax" in result.output
