"""
perfsync CLI - Requests command.

Show the pending build requests of a triggerable.
"""

import asyncio
import json
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from perfsync.core.api.models import build_requests_response
from perfsync.core.config import load_config
from perfsync.core.exceptions import TriggerableNotFound
from perfsync.core.models import BuildRequest, ModelRegistry, fetch_for_triggerable
from perfsync.core.store import Store

console = Console()


def _render_table(triggerable: str, requests: list[BuildRequest]) -> Table:
    table = Table(title=f"Build requests for {triggerable}")
    table.add_column("ID", justify="right")
    table.add_column("Group", justify="right")
    table.add_column("Order", justify="right")
    table.add_column("Platform")
    table.add_column("Test")
    table.add_column("Status")
    table.add_column("Revisions")

    for request in requests:
        revisions = ", ".join(
            f"{commit.repository.name}: {commit.revision}" for commit in request.root_set.commits
        )
        table.add_row(
            str(request.id),
            str(request.test_group.id),
            str(request.order),
            request.platform.name,
            request.test.full_name() if request.test else "",
            request.status_label(),
            revisions,
        )
    return table


def requests_command(
    triggerable: Annotated[
        str,
        typer.Argument(help="Triggerable name (e.g., build-webkit)"),
    ],
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the SQLite database"),
    ] = None,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print the API response instead of a table"),
    ] = False,
    legacy: Annotated[
        bool,
        typer.Option("--legacy", help="Resolve ids to names in --json output"),
    ] = False,
) -> None:
    """
    Show the build requests of a triggerable that still have work pending.

    Examples:
        perfsync requests build-webkit
        perfsync requests build-webkit --json --legacy
    """
    store = Store(db or Path(load_config().database.path))
    if not store.db_path.exists():
        console.print(f"[red]Error:[/red] Database not found: {store.db_path}")
        raise typer.Exit(1)

    try:
        requests = asyncio.run(fetch_for_triggerable(store, ModelRegistry(), triggerable))
    except TriggerableNotFound as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if as_json:
        payload = build_requests_response(requests, legacy).to_json()
        console.print(
            json.dumps(payload, indent=2), markup=False, highlight=False, soft_wrap=True
        )
        return

    if not requests:
        console.print(f"[dim]No pending build requests for {triggerable}[/dim]")
        return

    console.print(_render_table(triggerable, requests))
