"""
CLI: ``alertspine alerts`` — inspect alerts and act on them.
"""

from __future__ import annotations

from datetime import UTC, datetime

import typer

from alertspine.cli.utils import (
    console,
    fail,
    open_engine,
    output_result,
    print_dict,
    print_json,
    print_table,
)
from alertspine.core.errors import AlertNotFoundError
from alertspine.models import AlertFilter, AlertStatus, Severity

app = typer.Typer(no_args_is_help=True)

_LIST_COLUMNS = ["id", "status", "severity", "title", "current_value", "escalation_level", "triggered_at"]


@app.command("list")
def list_alerts(
    server_id: str | None = typer.Option(None, "--server", "-s"),
    status: AlertStatus | None = typer.Option(None, "--status"),
    severity: Severity | None = typer.Option(None, "--severity"),
    rule_id: str | None = typer.Option(None, "--rule", "-r"),
    limit: int = typer.Option(50, "--limit", "-n"),
    offset: int = typer.Option(0, "--offset"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List alerts, newest first."""
    alert_filter = AlertFilter(
        server_id=server_id,
        status=status,
        severity=severity,
        rule_id=rule_id,
        limit=limit,
        offset=offset,
    )
    with open_engine(database) as engine:
        alerts = engine.list_alerts(alert_filter)
        total = engine.count_alerts(alert_filter)

    if json_out:
        print_json({"items": [a.to_dict() for a in alerts], "total": total})
        return
    print_table(alerts, columns=_LIST_COLUMNS, title="Alerts")
    if alerts:
        console.print(f"\n[dim]Showing {len(alerts)} of {total} (offset {offset})[/dim]")


@app.command("show")
def show_alert(
    alert_id: str = typer.Argument(..., help="Alert ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show an alert and its per-channel delivery history."""
    with open_engine(database) as engine:
        try:
            alert = engine.get_alert(alert_id)
        except AlertNotFoundError as e:
            fail(e.code, e.message)
        deliveries = engine.delivery_history(alert_id)

    if json_out:
        print_json({"alert": alert.to_dict(), "deliveries": [d.to_dict() for d in deliveries]})
        return
    print_dict(alert.to_dict(), title="Alert")
    print_table(deliveries, title="Deliveries")


@app.command("ack")
def acknowledge(
    alert_id: str = typer.Argument(..., help="Alert ID"),
    by: str = typer.Option(..., "--by", "-b", help="Operator acknowledging"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Acknowledge an active alert (stops escalation)."""
    with open_engine(database) as engine:
        result = engine.acknowledge(alert_id, by)
    output_result(result, as_json=json_out, title="Acknowledged")


@app.command("resolve")
def resolve(
    alert_id: str = typer.Argument(..., help="Alert ID"),
    by: str = typer.Option(..., "--by", "-b", help="Operator resolving"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Resolve an open alert."""
    with open_engine(database) as engine:
        result = engine.resolve(alert_id, by)
    output_result(result, as_json=json_out, title="Resolved")


@app.command("suppress")
def suppress(
    alert_id: str = typer.Argument(..., help="Alert ID"),
    by: str = typer.Option(..., "--by", "-b", help="Operator suppressing"),
    reason: str | None = typer.Option(None, "--reason"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Suppress an open alert."""
    with open_engine(database) as engine:
        result = engine.suppress(alert_id, by, reason)
    output_result(result, as_json=json_out, title="Suppressed")


@app.command("stats")
def stats(
    since: datetime | None = typer.Option(None, "--since", help="Only alerts triggered since"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Totals per status and severity, resolution rate, mean time to resolve."""
    if since is not None and since.tzinfo is None:
        since = since.replace(tzinfo=UTC)
    with open_engine(database) as engine:
        report = engine.stats(since).to_dict()

    if json_out:
        print_json(report)
        return
    print_dict(report, title="Alert statistics")
