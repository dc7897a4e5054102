"""
perfsync CLI - Serve command.

Run the build request API server.
"""

import logging
import os
from pathlib import Path

import typer
from rich.console import Console

from perfsync.core.config import clear_cache, load_config

console = Console()
logger = logging.getLogger(__name__)


def serve(
    ctx: typer.Context,
    host: str | None = typer.Option(
        None,
        "--host",
        help="Interface to bind (default from config: 127.0.0.1)",
    ),
    port: int | None = typer.Option(
        None,
        "--port",
        "-p",
        help="Port to run the server on (default from config: 8080)",
    ),
    db: Path | None = typer.Option(
        None,
        "--db",
        help="Path to the SQLite database",
    ),
) -> None:
    """
    Start the API server.

    Serves GET /api/build-requests/<triggerable> from the configured
    SQLite database.

    Examples:
        perfsync serve                       # Defaults from config
        perfsync serve --port 9000
        perfsync serve --db /var/lib/perfsync/perfsync.db
    """
    debug = ctx.obj.get("debug", False) if ctx.obj else False

    if db is not None:
        # Routes read the database path from configuration
        os.environ["PERFSYNC_DB_PATH"] = str(db)
        clear_cache()

    config = load_config()
    bind_host = host or config.server.host
    bind_port = port or config.server.port

    try:
        import uvicorn

        from perfsync.core.api.app import app as fastapi_app
    except ImportError as e:
        console.print(f"[red]Error:[/red] Server dependencies not installed. Missing module: {e.name}")
        raise typer.Exit(1)

    console.print(f"[bold cyan]Serving build requests from {config.database.path}[/bold cyan]")
    console.print(f"[dim]API: http://{bind_host}:{bind_port}/api/build-requests/<triggerable>[/dim]")
    logger.info("Starting API server on %s:%d", bind_host, bind_port)

    try:
        uvicorn.run(
            fastapi_app,
            host=bind_host,
            port=bind_port,
            log_level="debug" if debug else "info",
        )
    except KeyboardInterrupt:
        console.print("\n[yellow]Server stopped[/yellow]")
        raise typer.Exit(0)
