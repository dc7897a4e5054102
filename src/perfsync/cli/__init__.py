"""
perfsync CLI - Main application entry point.

This module sets up the Typer CLI application with all subcommands.
"""

import logging
from pathlib import Path

import typer
from rich.console import Console

from perfsync import __version__
from perfsync.cli import check_config, requests, serve, sync
from perfsync.core.config import load_config, load_layered_env
from perfsync.core.store import Store

app = typer.Typer(
    name="perfsync",
    help="Build request API and buildbot synchronization for performance testing",
    no_args_is_help=True,
    add_completion=True,
    context_settings={"help_option_names": ["--help", "-h"]},
)

console = Console()


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"perfsync version: {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug output with detailed logging",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit",
    ),
) -> None:
    """
    perfsync - performance test build coordination.

    Serves the pending build requests of test groups and keeps them
    moving through buildbot.

    Quick Start:
        perfsync init-db                         # Create the database
        perfsync serve                           # Serve /api/build-requests
        perfsync sync -c buildbot.json -t build-webkit
    """
    # Precedence: OS env > project .env > user .env
    load_layered_env()

    if debug:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

    ctx.obj = {"debug": debug}


def init_db_command(
    db: Path | None = typer.Option(None, "--db", help="Path to the SQLite database"),
    force: bool = typer.Option(False, "--force", help="Drop and recreate all tables"),
) -> None:
    """Create the SQLite database and its tables."""
    store = Store(db or Path(load_config().database.path))
    store.initialize(force_recreate=force)
    console.print(f"[green]✓[/green] Database ready at {store.db_path}")


app.command(name="init-db")(init_db_command)
app.command(name="serve")(serve.serve)
app.command(name="requests")(requests.requests_command)
app.command(name="sync")(sync.sync)
app.command(name="check-config")(check_config.check_config)


def cli_main() -> None:
    """Entry point for the perfsync console script."""
    app()


if __name__ == "__main__":
    cli_main()
