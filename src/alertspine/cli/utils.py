"""
CLI utility helpers: engine construction and output formatting.
"""

from __future__ import annotations

import json
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, NoReturn

import typer
from rich.console import Console
from rich.table import Table

from alertspine.commands import CommandResult
from alertspine.core.logging import configure_logging
from alertspine.core.settings import EngineSettings
from alertspine.engine import AlertEngine

console = Console()
err_console = Console(stderr=True)

DEFAULT_DATABASE = Path.home() / ".alertspine" / "alertspine.db"


# ── Engine helper ────────────────────────────────────────────────────────


def load_settings(database: str | None = None) -> EngineSettings:
    """Settings from the environment, with the database defaulting to
    ``~/.alertspine/alertspine.db`` so CLI calls share state."""
    settings = EngineSettings()
    if database is not None:
        settings = settings.model_copy(update={"database_path": Path(database)})
    elif settings.database_path is None:
        settings = settings.model_copy(update={"database_path": DEFAULT_DATABASE})
    configure_logging(level=settings.log_level, json_format=settings.json_logs, stream=sys.stderr)
    return settings


@contextmanager
def open_engine(database: str | None = None) -> Iterator[AlertEngine]:
    """An engine over the CLI database that is never started (no ticking)."""
    engine = AlertEngine(settings=load_settings(database))
    try:
        yield engine
    finally:
        engine.stop()


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def print_json(payload: Any) -> None:
    console.print_json(json.dumps(payload, default=str))


def fail(code: str, message: str) -> NoReturn:
    """Print an error line and exit with status 1."""
    err_console.print(f"[bold red]Error[/bold red] ({code}): {message}")
    raise typer.Exit(code=1)


def output_result(result: CommandResult, *, as_json: bool = False, title: str = "") -> None:
    """Render a ``CommandResult`` to the terminal."""
    if not result.success:
        err = result.error
        fail(err.code if err else "ERROR", err.message if err else "Unknown error")

    if as_json:
        print_json(result.to_dict())
        return
    print_dict(_to_dict(result.data), title=title)


def print_table(
    items: list[Any], *, columns: list[str] | None = None, title: str = ""
) -> None:
    """Render a list of objects (or dicts) as a Rich table."""
    if not items:
        console.print("[dim]No items.[/dim]")
        return
    rows = [_to_dict(item) for item in items]
    columns = columns or list(rows[0])
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in columns:
        table.add_column(col, overflow="fold")
    for row in rows:
        table.add_row(*("" if row.get(col) is None else str(row.get(col)) for col in columns))
    console.print(table)


def print_dict(data: dict[str, Any], *, title: str = "") -> None:
    """Render a single dict as key-value pairs."""
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")
