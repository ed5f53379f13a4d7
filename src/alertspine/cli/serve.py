"""
CLI: ``alertspine serve`` — run the engine behind the REST API.
"""

from __future__ import annotations

import typer
import uvicorn

from alertspine.api import create_app
from alertspine.cli.utils import console, load_settings


def serve(
    host: str | None = typer.Option(None, "--host", "-h", help="Bind address"),
    port: int | None = typer.Option(None, "--port", "-p", help="Bind port"),
    database: str | None = typer.Option(None, "--database", "-d"),
    definitions: str | None = typer.Option(
        None, "--definitions", "-f", help="YAML definitions applied before serving"
    ),
) -> None:
    """Start the alert engine and its REST API."""
    settings = load_settings(database)
    app = create_app(settings=settings)
    if definitions:
        app.state.engine.load_definitions(definitions)

    bind_host = host or settings.host
    bind_port = port or settings.port
    console.print(f"[bold green]Starting alertspine[/bold green] on {bind_host}:{bind_port}")
    uvicorn.run(app, host=bind_host, port=bind_port, log_level=settings.log_level.lower())
