"""Tests for the toolspace command line interface."""

import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from toolspace import cli
from toolspace.catalog.server import CatalogServer


@pytest.fixture
def fake_server(upstream):
    """Patch the CLI so every CatalogServer it builds talks to the fake upstream."""

    def build(config):
        return CatalogServer(config, upstream=upstream)

    with patch.object(cli, "CatalogServer", side_effect=build):
        yield upstream


@pytest.fixture
def runner(monkeypatch):
    for name in ("TOOLSPACE_UPSTREAM_URL", "TOOLSPACE_CREDENTIAL", "TOOLSPACE_PRELOAD_NAMESPACES"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(cli, "load_dotenv", lambda: None)
    return CliRunner()


def test_list_command(runner, fake_server):
    result = runner.invoke(cli.main, ["--token", "t", "list"])
    assert result.exit_code == 0, result.output
    names = [tool["name"] for tool in json.loads(result.output)]
    assert names[0] == "catalog_help"
    assert "platform__list_tools" in names


def test_call_command(runner, fake_server):
    result = runner.invoke(cli.main, ["--token", "t", "call", "platform__manage_users", "--args", '{"action": "list"}'])
    assert result.exit_code == 0, result.output
    assert json.loads(result.output) == {"payload": {"ok": True}, "is_error": False}
    assert fake_server.executions[0]["parameters"] == {"action": "list"}


def test_call_command_reports_not_found(runner, fake_server):
    result = runner.invoke(cli.main, ["--token", "t", "call", "platform__missing"])
    assert result.exit_code == 2
    assert "Suggestion: Call platform__list_tools" in result.output


def test_call_command_rejects_bad_json(runner, fake_server):
    result = runner.invoke(cli.main, ["--token", "t", "call", "platform__manage_users", "--args", "{oops"])
    assert result.exit_code == 1
    assert "not valid JSON" in result.output


def test_stats_command(runner, fake_server):
    result = runner.invoke(cli.main, ["--token", "t", "stats"])
    assert result.exit_code == 0, result.output
    stats = json.loads(result.output)
    assert stats["namespaces_loaded"] == 2
    assert stats["loaded_namespaces"] == ["company", "platform"]


def test_invalid_upstream_url(runner):
    result = runner.invoke(cli.main, ["--upstream-url", "ftp://nope", "list"])
    assert result.exit_code == 1
    assert "invalid configuration" in result.output
