import json

import pytest
from click.testing import CliRunner

from batterystory.cli import cli
from batterystory.config import CONFIG_ENV_VAR


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    return tmp_path


@pytest.fixture
def runner():
    return CliRunner()


def test_context(runner):
    result = runner.invoke(cli, ["context"])
    assert result.exit_code == 0
    assert "Time-Based Control" in result.output


def test_day_json(runner):
    result = runner.invoke(cli, ["day", "--json", "--every", "12"])
    assert result.exit_code == 0
    rows = json.loads(result.output)
    assert len(rows) == 24
    assert rows[1]["minute"] == 60


def test_summary_json(runner):
    result = runner.invoke(cli, ["summary", "--start", "12:00", "--end", "14:00", "--json"])
    assert result.exit_code == 0
    payload = json.loads(result.output)
    assert payload["grid_dominance"] in ("Import dominant", "Export dominant")
    assert payload["grid_export_kwh"] > 0


def test_explain_json_defaults_to_evening_peak(runner):
    result = runner.invoke(cli, ["explain", "--json"])
    assert result.exit_code == 0
    events = json.loads(result.output)
    assert events[0]["category"] == "rate"
    assert events[0]["minute"] == 1020


def test_explain_text(runner):
    result = runner.invoke(cli, ["explain", "--start", "17:00", "--end", "19:00"])
    assert result.exit_code == 0
    assert "Peak rate period" in result.output
    assert "(Peak)" in result.output


def test_explain_empty_window(runner):
    result = runner.invoke(cli, ["explain", "--start", "10:00", "--end", "10:00"])
    assert result.exit_code == 0
    assert "No samples in this window" in result.output


def test_replay_self_powered_json(runner):
    result = runner.invoke(
        cli, ["replay", "--mode", "Self-Powered", "--start", "19:00", "--end", "21:00", "--json"]
    )
    assert result.exit_code == 0
    payload = json.loads(result.output)
    assert payload["mode_used"] == "Self-Powered"
    assert payload["deltas"]["grid_import_kwh"] < 0
    assert 2 <= len(payload["expected_changes"]) <= 4


def test_replay_text(runner):
    result = runner.invoke(cli, ["replay", "--reserve", "50"])
    assert result.exit_code == 0
    assert "Expected changes" in result.output


def test_replay_reserve_out_of_range(runner):
    result = runner.invoke(cli, ["replay", "--reserve", "90"])
    assert result.exit_code == 2


def test_bad_time_option(runner):
    result = runner.invoke(cli, ["summary", "--start", "25:00"])
    assert result.exit_code == 2


def test_invalid_config_file(runner, isolated):
    bad = isolated / "bad.yaml"
    bad.write_text("mode: Backup-Only\n")
    result = runner.invoke(cli, ["--config", str(bad), "context"])
    assert result.exit_code == 1
    assert "Invalid site config" in result.output


def test_config_file_changes_context(runner, isolated):
    site = isolated / "site.yaml"
    site.write_text("mode: Self-Powered\nbackup_reserve_pct: 40\n")
    result = runner.invoke(cli, ["--config", str(site), "context"])
    assert result.exit_code == 0
    assert "Self-Powered" in result.output
    assert "40%" in result.output
