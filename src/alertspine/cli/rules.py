"""
CLI: ``alertspine rules`` — validate and load rule definitions.
"""

from __future__ import annotations

from pathlib import Path

import typer

from alertspine.cli.utils import console, fail, open_engine, print_json, print_table
from alertspine.config import load_definitions
from alertspine.core.errors import ConfigurationError
from alertspine.models import AlertRule

app = typer.Typer(no_args_is_help=True)


def _rule_row(rule: AlertRule) -> dict[str, str]:
    condition = rule.condition
    expression = (
        f"{condition.aggregation.value}({rule.metric}) {condition.operator.symbol} {rule.threshold:g}"
    )
    return {
        "id": rule.id,
        "server": rule.server_id,
        "condition": expression,
        "window": f"{condition.time_window:g}s",
        "for": f"{rule.duration:g}s",
        "severity": rule.severity.value,
        "channels": ", ".join(rule.channel_ids),
        "enabled": "yes" if rule.enabled else "no",
    }


@app.command("validate")
def validate(
    path: Path = typer.Argument(..., help="YAML definitions file"),
) -> None:
    """Check a definitions file without applying it."""
    try:
        definitions = load_definitions(path)
    except FileNotFoundError as e:
        fail("NOT_FOUND", str(e))
    except ConfigurationError as e:
        fail(e.code, e.message)

    print_table([_rule_row(rule) for rule in definitions.rules], title="Rules")
    console.print(
        f"[bold green]OK[/bold green] {len(definitions.channels)} channel(s), "
        f"{len(definitions.rules)} rule(s) in {path}"
    )


@app.command("load")
def load(
    path: Path = typer.Argument(..., help="YAML definitions file"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Create or replace the channels and rules defined in a file."""
    with open_engine(database) as engine:
        try:
            report = engine.load_definitions(path)
        except FileNotFoundError as e:
            fail("NOT_FOUND", str(e))
        except ConfigurationError as e:
            fail(e.code, e.message)

    if json_out:
        print_json(report.to_dict())
        return
    for label, ids in report.to_dict().items():
        console.print(f"  [cyan]{label.replace('_', ' ')}[/cyan]: {', '.join(ids) or '-'}")


@app.command("list")
def list_rules(
    server_id: str | None = typer.Option(None, "--server", "-s"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List live rules."""
    with open_engine(database) as engine:
        rules = engine.rules.list_rules(server_id=server_id)

    if json_out:
        print_json([rule.to_dict() for rule in rules])
        return
    print_table([_rule_row(rule) for rule in rules], title="Rules")
