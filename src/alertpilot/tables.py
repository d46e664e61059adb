"""Rich-powered tables for rules, alerts and the alerting summary."""
from __future__ import annotations

from datetime import datetime
from typing import Any

from rich import box
from rich.console import Console
from rich.table import Table

from .alerts.rules import RuleState, RuleTestResult, rule_state
from .models import Alert, AlertRule

_console = Console()

SEVERITY_STYLES: dict[str, str] = {
    "low": "dim",
    "medium": "yellow",
    "high": "red",
    "critical": "bold red",
}

_STATE_STYLES: dict[RuleState, str] = {
    RuleState.ELIGIBLE: "green",
    RuleState.IN_COOLDOWN: "yellow",
    RuleState.OUTSIDE_WINDOW: "cyan",
    RuleState.DISABLED: "dim",
}


def _ts(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value is not None else "-"


def print_rules_table(rules: list[AlertRule], now: datetime, title: str = "Alert rules") -> None:
    """Render rules with the state each one is in at *now*."""
    if not rules:
        _console.print("[yellow]No rules defined.[/yellow]")
        return

    table = Table(title=title, box=box.ROUNDED)
    table.add_column("ID", style="bold", overflow="fold")
    table.add_column("Name", overflow="fold", max_width=40)
    table.add_column("Condition")
    table.add_column("Severity")
    table.add_column("State")
    table.add_column("Triggered", justify="right", style="cyan")
    table.add_column("Last triggered", style="dim")

    for rule in rules:
        cond = rule.conditions
        state = rule_state(rule, now)
        table.add_row(
            rule.id,
            rule.name,
            f"{cond.aggregation} {cond.operator} {cond.threshold:g} / {cond.time_window_minutes}m",
            f"[{SEVERITY_STYLES.get(rule.severity, 'white')}]{rule.severity}[/]",
            f"[{_STATE_STYLES[state]}]{state.value}[/]",
            str(rule.trigger_count),
            _ts(rule.last_triggered_at),
        )
    _console.print(table)


def print_alerts_table(alerts: list[Alert], title: str = "Alerts") -> None:
    if not alerts:
        _console.print("[green]No alerts raised.[/green]")
        return

    table = Table(title=title, box=box.ROUNDED)
    table.add_column("Triggered", style="dim")
    table.add_column("Rule", style="bold", overflow="fold")
    table.add_column("Severity")
    table.add_column("Message", overflow="fold", max_width=60)
    table.add_column("Notifications")

    for alert in alerts:
        sent = [
            f"[green]{r.channel}[/]" if r.success else f"[red]{r.channel}[/]"
            for r in alert.notifications_sent
        ]
        table.add_row(
            _ts(alert.triggered_at),
            alert.rule_id,
            f"[{SEVERITY_STYLES.get(alert.severity, 'white')}]{alert.severity}[/]",
            alert.message,
            " ".join(sent) or "-",
        )
    _console.print(table)


def print_test_result(result: RuleTestResult, max_rows: int = 20) -> None:
    """Render a rule dry run: the verdict, then the entries it saw."""
    verdict = "[bold red]WOULD TRIGGER[/]" if result.would_trigger else "[green]would not trigger[/]"
    _console.print(
        f"\n[bold]{result.rule_id}[/bold]  state=[cyan]{result.state.value}[/cyan]  "
        f"value=[cyan]{result.value:g}[/cyan]  {verdict}"
    )
    if not result.entries:
        _console.print("[dim]No matching log entries in the window.[/dim]")
        return

    table = Table(box=box.SIMPLE_HEAVY)
    table.add_column("Timestamp", style="dim")
    table.add_column("Level")
    table.add_column("Source")
    table.add_column("Message", overflow="fold", max_width=70)
    for entry in result.entries[:max_rows]:
        table.add_row(_ts(entry.timestamp), entry.level, entry.source, entry.message)
    _console.print(table)
    if len(result.entries) > max_rows:
        _console.print(f"[dim]... and {len(result.entries) - max_rows} more entries[/dim]")


def print_summary(summary: dict[str, Any]) -> None:
    table = Table(title="Summary", box=box.MINIMAL_DOUBLE_HEAD)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right", style="cyan")
    for key in ("active_rules", "unacknowledged_alerts", "alerts_per_hour"):
        if key in summary:
            table.add_row(key.replace("_", " "), str(summary[key]))
    _console.print(table)
