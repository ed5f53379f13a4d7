"""
Root Typer application for the alertspine CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

from alertspine import __version__

app = Typer(
    name="alertspine",
    help="alertspine — threshold alerting for server metrics.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"alertspine {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """alertspine CLI — manage rules, inspect and act on alerts, serve the API."""


# ── Sub-command registration ─────────────────────────────────────────────

from alertspine.cli.alerts import app as alerts_app  # noqa: E402
from alertspine.cli.rules import app as rules_app  # noqa: E402
from alertspine.cli.serve import serve  # noqa: E402

app.add_typer(rules_app, name="rules", help="Validate and load rule definitions.")
app.add_typer(alerts_app, name="alerts", help="Inspect alerts and act on them.")
app.command("serve")(serve)


if __name__ == "__main__":
    app()
