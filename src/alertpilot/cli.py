"""alertpilot CLI — entry point.

Commands:
    alertpilot check     <rules> <log>            Evaluate every rule once
    alertpilot test-rule <rules> <log> <rule_id>  Dry-run a single rule
    alertpilot watch     <rules> <log>            Evaluate on a fixed tick until Ctrl+C
    alertpilot rules     <rules>                  Show rules and their current state
    alertpilot next-run  <cron>                   Upcoming runs of a cron expression
"""
from __future__ import annotations

import json
import logging
import sys
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import Any

import click
from rich.console import Console
from rich.logging import RichHandler

from .alerts.archive import RedisAlertArchive
from .alerts.lifecycle import AlertManager
from .alerts.loop import EvaluationLoop
from .alerts.rules import RulesEngine
from .config import settings
from .errors import MalformedRuleError
from .models import AlertRule, parse_timestamp, rule_from_dict, validate_rule
from .notifications.dispatcher import NotificationDispatcher
from .scheduling.cron import describe, next_run
from .sources.file_source import FileLogSource
from .storage import MemoryStore
from .tables import print_alerts_table, print_rules_table, print_summary, print_test_result

console = Console()
err_console = Console(stderr=True)

# ── Helpers ─────────────────────────────────────────────────────────────────


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _parse_now(value: str) -> datetime:
    if not value:
        return datetime.now()
    parsed = parse_timestamp(value)
    if parsed is None:
        raise click.BadParameter(f"Cannot parse date: {value!r}. Use ISO-8601 format.")
    return parsed


def _load_rules(path: Path) -> list[AlertRule]:
    """Read a rules file: a JSON list of rules or ``{"rules": [...]}``."""
    try:
        data: Any = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise click.ClickException(f"Cannot read rules from {path}: {exc}") from exc
    if isinstance(data, dict):
        data = data.get("rules", [])
    if not isinstance(data, list):
        raise click.ClickException(f"{path}: expected a list of rules")

    rules: list[AlertRule] = []
    for raw in data:
        try:
            rule = rule_from_dict(raw)
            validate_rule(rule)
        except MalformedRuleError as exc:
            raise click.ClickException(str(exc)) from exc
        rules.append(rule)
    return rules


def _build_engine(
    rules_file: Path,
    log_file: Path,
    executor: ThreadPoolExecutor | None = None,
) -> tuple[RulesEngine, AlertManager]:
    archive = None
    if settings.redis_url:
        archive = RedisAlertArchive(settings.redis_url, ttl=settings.alert_retention_seconds)
    alerts = AlertManager(archive=archive)
    alerts.restore()

    engine = RulesEngine(
        store=MemoryStore(),
        source=FileLogSource(log_file),
        alerts=alerts,
        dispatcher=NotificationDispatcher.from_settings(settings),
        settings=settings,
        executor=executor,
    )
    for rule in _load_rules(rules_file):
        try:
            engine.add_rule(rule)
        except ValueError as exc:
            raise click.ClickException(f"{rules_file}: {exc}") from exc
    return engine, alerts


# ── CLI root ─────────────────────────────────────────────────────────────────


@click.group()
@click.version_option(version="1.0.0", prog_name="alertpilot")
@click.option("--log-level", default="", help="Override ALERTPILOT_LOG_LEVEL (DEBUG, INFO, ...).")
def main(log_level: str) -> None:
    """alertpilot — rule-based log alerting and notification engine."""
    _setup_logging(log_level or settings.log_level)


# ── check ────────────────────────────────────────────────────────────────────


@main.command()
@click.argument("rules_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("log_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--now", "now_str", default="", help="Evaluate as of this time (ISO-8601). Default: now.")
@click.option("--fail-on-alert", is_flag=True, help="Exit with status 1 when any alert is raised.")
def check(rules_file: Path, log_file: Path, now_str: str, fail_on_alert: bool) -> None:
    """Evaluate every rule once against a log file.

    \b
    Examples:
      alertpilot check rules.json app.ndjson
      alertpilot check rules.json app.ndjson --now 2025-12-01T10:00:00
      alertpilot check rules.json app.ndjson --fail-on-alert
    """
    now = _parse_now(now_str)
    engine, alerts = _build_engine(rules_file, log_file)
    raised = engine.tick(now)

    print_alerts_table(raised, title=f"Alerts raised at {now:%Y-%m-%d %H:%M:%S}")
    print_summary(alerts.summary(engine.rules, now))
    console.print(f"[dim]{len(engine.rules)} rules evaluated against {log_file.name}[/dim]")

    if fail_on_alert and raised:
        sys.exit(1)


# ── test-rule ────────────────────────────────────────────────────────────────


@main.command("test-rule")
@click.argument("rules_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("log_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("rule_id")
@click.option("--now", "now_str", default="", help="Evaluate as of this time (ISO-8601). Default: now.")
def test_rule(rules_file: Path, log_file: Path, rule_id: str, now_str: str) -> None:
    """Dry-run one rule: show what it matches and whether it would fire.

    No alert is raised and no notification is sent.
    """
    now = _parse_now(now_str)
    engine, _ = _build_engine(rules_file, log_file)
    rule = next((r for r in engine.rules if r.id == rule_id), None)
    if rule is None:
        raise click.ClickException(f"No rule with id {rule_id!r} in {rules_file}")
    print_test_result(engine.test_rule(rule, now))


# ── watch ────────────────────────────────────────────────────────────────────


@main.command()
@click.argument("rules_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("log_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--interval", default=None, type=float,
    help="Seconds between evaluations (default: ALERTPILOT_EVALUATION_INTERVAL_SECONDS).",
)
def watch(rules_file: Path, log_file: Path, interval: float | None) -> None:
    """Evaluate rules continuously until interrupted.

    \b
    Examples:
      alertpilot watch rules.json /var/log/app.ndjson
      alertpilot watch rules.json /var/log/app.ndjson --interval 30
    """
    executor = None
    if settings.dispatch_workers > 0:
        executor = ThreadPoolExecutor(
            max_workers=settings.dispatch_workers, thread_name_prefix="alertpilot-dispatch"
        )
    engine, alerts = _build_engine(rules_file, log_file, executor=executor)
    loop = EvaluationLoop(engine, interval_seconds=interval or settings.evaluation_interval_seconds)

    console.print(f"[dim]Watching {log_file} with {len(engine.rules)} rules (Ctrl+C to stop)[/dim]")
    loop.start()
    try:
        while True:
            time.sleep(1.0)
    except KeyboardInterrupt:
        console.print("\n[dim]Stopping…[/dim]")
    finally:
        loop.stop()
        if executor is not None:
            executor.shutdown(wait=True)

    print_alerts_table(alerts.all(), title="Alerts raised this session")
    print_summary(alerts.summary(engine.rules))


# ── rules ────────────────────────────────────────────────────────────────────


@main.command()
@click.argument("rules_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--now", "now_str", default="", help="Classify rules as of this time (ISO-8601).")
def rules(rules_file: Path, now_str: str) -> None:
    """List rules with the state they are in right now."""
    now = _parse_now(now_str)
    print_rules_table(_load_rules(rules_file), now, title=f"Rules in {rules_file.name}")


# ── next-run ─────────────────────────────────────────────────────────────────


@main.command("next-run")
@click.argument("expression")
@click.option("--now", "now_str", default="", help="Compute from this time (ISO-8601). Default: now.")
@click.option("--count", "-n", default=1, type=click.IntRange(1, 100), help="Number of runs to show.", show_default=True)
def next_run_cmd(expression: str, now_str: str, count: int) -> None:
    """Show the next run time(s) of a cron expression.

    \b
    Examples:
      alertpilot next-run "0 9 * * 1"
      alertpilot next-run "*/15 * * * *" --count 4 --now 2025-01-01T10:00:00
    """
    moment = _parse_now(now_str)
    console.print(f"[bold]{expression}[/bold]  [dim]{describe(expression)}[/dim]")
    for _ in range(count):
        moment = next_run(expression, moment)
        click.echo(moment.strftime("%Y-%m-%d %H:%M"))


if __name__ == "__main__":
    main()
