"""Tests for the alertpilot command line."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner
from rich.console import Console

from alertpilot import cli, tables
from alertpilot.cli import main


@pytest.fixture(autouse=True)
def wide_consoles(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep rich from wrapping table cells at 80 columns."""
    monkeypatch.setattr(tables, "_console", Console(width=200))
    monkeypatch.setattr(cli, "console", Console(width=200))


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


def _rule(rule_id: str, **overrides: Any) -> dict[str, Any]:
    rule = {
        "id": rule_id,
        "name": f"errors {rule_id}",
        "query": "ERROR",
        "severity": "high",
        "conditions": {"threshold": 2, "time_window_minutes": 15, "operator": "gt", "aggregation": "count"},
        "notifications": {"channels": [], "cooldown_minutes": 15},
    }
    rule.update(overrides)
    return rule


@pytest.fixture()
def rules_file(tmp_path: Path) -> Path:
    p = tmp_path / "rules.json"
    p.write_text(json.dumps({"rules": [_rule("burst"), _rule("off", enabled=False)]}), encoding="utf-8")
    return p


@pytest.fixture()
def log_file(ndjson_file) -> Path:
    return ndjson_file([
        {"timestamp": f"2024-01-01T11:5{i}:00", "level": "ERROR", "message": f"disk full {i}"}
        for i in range(5)
    ])


class TestNextRun:
    def test_prints_upcoming_runs(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["next-run", "0 9 * * *", "--now", "2024-01-01T10:00:00", "-n", "2"])
        assert result.exit_code == 0, result.output
        assert "Daily at 9:00 AM" in result.output
        assert "2024-01-02 09:00" in result.output
        assert "2024-01-03 09:00" in result.output

    def test_bad_now(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["next-run", "0 9 * * *", "--now", "someday"])
        assert result.exit_code != 0
        assert "Cannot parse date" in result.output


class TestCheck:
    def test_raises_alert(self, runner: CliRunner, rules_file: Path, log_file: Path) -> None:
        result = runner.invoke(
            main, ["check", str(rules_file), str(log_file), "--now", "2024-01-01T12:00:00"]
        )
        assert result.exit_code == 0, result.output
        assert "burst" in result.output
        assert "count(5) > 2" in result.output
        assert "2 rules evaluated against app.ndjson" in result.output

    def test_fail_on_alert(self, runner: CliRunner, rules_file: Path, log_file: Path) -> None:
        result = runner.invoke(
            main,
            ["check", str(rules_file), str(log_file), "--now", "2024-01-01T12:00:00", "--fail-on-alert"],
        )
        assert result.exit_code == 1

    def test_quiet_when_nothing_matches(self, runner: CliRunner, rules_file: Path, log_file: Path) -> None:
        result = runner.invoke(
            main,
            ["check", str(rules_file), str(log_file), "--now", "2024-01-02T12:00:00", "--fail-on-alert"],
        )
        assert result.exit_code == 0, result.output
        assert "No alerts raised" in result.output

    def test_malformed_rules_file(self, runner: CliRunner, tmp_path: Path, log_file: Path) -> None:
        bad = tmp_path / "bad.json"
        bad.write_text(json.dumps([_rule("x", severity="urgent")]), encoding="utf-8")
        result = runner.invoke(main, ["check", str(bad), str(log_file)])
        assert result.exit_code == 1
        assert "malformed" in result.output

    def test_unreadable_rules_file(self, runner: CliRunner, tmp_path: Path, log_file: Path) -> None:
        bad = tmp_path / "bad.json"
        bad.write_text("{not json", encoding="utf-8")
        result = runner.invoke(main, ["check", str(bad), str(log_file)])
        assert result.exit_code == 1
        assert "Cannot read rules" in result.output


class TestTestRule:
    def test_would_trigger(self, runner: CliRunner, rules_file: Path, log_file: Path) -> None:
        result = runner.invoke(
            main, ["test-rule", str(rules_file), str(log_file), "burst", "--now", "2024-01-01T12:00:00"]
        )
        assert result.exit_code == 0, result.output
        assert "WOULD TRIGGER" in result.output
        assert "disk full 4" in result.output

    def test_unknown_rule(self, runner: CliRunner, rules_file: Path, log_file: Path) -> None:
        result = runner.invoke(main, ["test-rule", str(rules_file), str(log_file), "nope"])
        assert result.exit_code == 1
        assert "No rule with id 'nope'" in result.output


class TestRules:
    def test_lists_states(self, runner: CliRunner, rules_file: Path) -> None:
        result = runner.invoke(main, ["rules", str(rules_file), "--now", "2024-01-01T12:00:00"])
        assert result.exit_code == 0, result.output
        assert "eligible" in result.output
        assert "disabled" in result.output
        assert "count > 2 / 15m" in result.output
