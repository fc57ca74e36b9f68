"""Tests for the repo-relay CLI."""

import json
from datetime import UTC, datetime, timedelta

import pytest
from click.testing import CliRunner

from repo_relay.server.cli import main


@pytest.fixture
def links_file(tmp_path, monkeypatch):
    from repo_relay import config as config_mod

    monkeypatch.setattr(config_mod, "relay_home", lambda: tmp_path)
    monkeypatch.delenv("REPO_RELAY_LINK_MAX_AGE_DAYS", raising=False)
    path = tmp_path / "links.json"
    monkeypatch.setenv("THREAD_LINKS_FILE", str(path))
    return path


def _write_links(path, ages_in_days):
    now = datetime.now(UTC)
    data = {
        key: {
            "target": "joeeddy/deploy-hub#1",
            "timestamp": (now - timedelta(days=age)).isoformat(),
        }
        for key, age in ages_in_days.items()
    }
    path.write_text(json.dumps(data))


class TestCli:
    def test_help(self):
        result = CliRunner().invoke(main, ["--help"])
        assert result.exit_code == 0
        assert "serve" in result.output
        assert "links" in result.output
        assert "cleanup" in result.output

    def test_serve_help(self):
        result = CliRunner().invoke(main, ["serve", "--help"])
        assert result.exit_code == 0
        assert "--port" in result.output

    def test_links_empty(self, links_file):
        result = CliRunner().invoke(main, ["links"])
        assert result.exit_code == 0
        assert json.loads(result.output) == []

    def test_links(self, links_file):
        _write_links(links_file, {"joeeddy/lab#1": 1, "joeeddy/other#2": 1})

        result = CliRunner().invoke(main, ["links"])
        assert result.exit_code == 0
        keys = sorted(entry["key"] for entry in json.loads(result.output))
        assert keys == ["joeeddy/lab#1", "joeeddy/other#2"]

        result = CliRunner().invoke(main, ["links", "--repo", "joeeddy/lab"])
        assert [e["key"] for e in json.loads(result.output)] == ["joeeddy/lab#1"]

    def test_cleanup(self, links_file):
        _write_links(links_file, {"joeeddy/lab#1": 40, "joeeddy/lab#2": 1})

        result = CliRunner().invoke(main, ["cleanup"])
        assert result.exit_code == 0
        assert "Removed 1 thread link(s) older than 30 day(s)." in result.output
        assert list(json.loads(links_file.read_text())) == ["joeeddy/lab#2"]

    def test_cleanup_max_age(self, links_file):
        _write_links(links_file, {"joeeddy/lab#1": 3, "joeeddy/lab#2": 1})

        result = CliRunner().invoke(main, ["cleanup", "--max-age-days", "2"])
        assert result.exit_code == 0
        assert "Removed 1 thread link(s) older than 2 day(s)." in result.output
