"""Tests for the command line interface."""

import sys
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

sys.path.insert(0, "src")

from conftest import GHOST_RECORDS
from test_coordinator import ghost_rule

from ghostwatch import __version__
from ghostwatch.cli import app
from ghostwatch.datasources import StaticDataSource
from ghostwatch.engine import RuleEngine

runner = CliRunner()


@pytest.fixture
def engine(settings):
    engine = RuleEngine(settings=settings)
    engine.data_sources.register(StaticDataSource("ghosts", GHOST_RECORDS))
    with (
        patch("ghostwatch.config.configure_logging"),
        patch("ghostwatch.cli.commands.rules.get_engine", return_value=engine),
        patch("ghostwatch.cli.commands.templates.get_engine", return_value=engine),
        patch("ghostwatch.cli.commands.engine.get_engine", return_value=engine),
    ):
        yield engine
    engine.close()


class TestVersion:
    def test_version(self):
        with patch("ghostwatch.config.configure_logging"):
            result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout


class TestRulesCommands:
    """Tests for `ghostwatch rules`."""

    def test_list_empty(self, engine):
        result = runner.invoke(app, ["rules", "list"])
        assert result.exit_code == 0
        assert "No rules found" in result.stdout

    def test_list(self, engine):
        rule = engine.store.create_rule(ghost_rule())
        result = runner.invoke(app, ["rules", "list", "--status", "active"])
        assert result.exit_code == 0
        assert "No rules found" not in result.stdout
        assert engine.service.list_rules(status="ACTIVE")[0].id == rule.id

    def test_run(self, engine):
        rule = engine.store.create_rule(ghost_rule(actions=[]))
        result = runner.invoke(app, ["rules", "run", rule.id, "--matches"])
        assert result.exit_code == 0
        assert "SUCCESS" in result.stdout
        assert "matched=2" in result.stdout
        assert "botuser" in result.stdout

    def test_run_unknown_rule(self, engine):
        result = runner.invoke(app, ["rules", "run", "missing"])
        assert result.exit_code == 1
        assert "not found" in result.stdout

    def test_history(self, engine):
        rule = engine.store.create_rule(ghost_rule(actions=[]))
        engine.execute_now(rule.id)
        result = runner.invoke(app, ["rules", "history", rule.id])
        assert result.exit_code == 0
        assert f"Executions of {rule.id[:8]}" in result.stdout


class TestOtherCommands:
    """Tests for templates and tick."""

    def test_templates_list(self, engine):
        result = runner.invoke(app, ["templates", "list", "--category", "ghosts"])
        assert result.exit_code == 0
        assert "Rule Templates" in result.stdout

    def test_tick_nothing_due(self, engine):
        result = runner.invoke(app, ["tick"])
        assert result.exit_code == 0
        assert "No rules due" in result.stdout
